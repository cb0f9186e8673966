"""Configuration settings for the scheduler."""
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Storage budget of a browser-style local store
DEFAULT_CAPACITY_BYTES = 5 * 1024 * 1024


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocabsrs.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class StorageSettings:
    """Progress store settings."""
    capacity_bytes: int = int(os.getenv("STORAGE_CAPACITY_BYTES", str(DEFAULT_CAPACITY_BYTES)))


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class SchedulingSettings:
    """SM-2 style scheduling constants."""
    initial_ease: str = os.getenv("INITIAL_EASE", "2.5")
    min_ease: str = os.getenv("MIN_EASE", "1.3")
    fail_penalty: str = os.getenv("FAIL_PENALTY", "0.2")
    hard_delta: str = os.getenv("HARD_DELTA", "0.15")
    easy_delta: str = os.getenv("EASY_DELTA", "0.15")
    first_interval: int = int(os.getenv("FIRST_INTERVAL", "1"))
    second_interval: int = int(os.getenv("SECOND_INTERVAL", "6"))
    max_interval: int = int(os.getenv("MAX_INTERVAL", "36500"))  # about a century


@dataclass
class SessionSettings:
    """Study session settings."""
    limit: int = int(os.getenv("SESSION_LIMIT", "20"))
    max_commit_retries: int = int(os.getenv("MAX_COMMIT_RETRIES", "3"))
    history_size: int = int(os.getenv("SESSION_HISTORY_SIZE", "100"))


@dataclass
class MonitoringSettings:
    """Metrics exporter settings."""
    port: int = int(os.getenv("METRICS_PORT", "0"))  # 0 disables the exporter


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_storage_settings() -> StorageSettings:
    """Get storage settings."""
    return StorageSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_scheduling_settings() -> SchedulingSettings:
    """Get scheduling settings."""
    return SchedulingSettings()


def get_session_settings() -> SessionSettings:
    """Get session settings."""
    return SessionSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    storage: StorageSettings = field(default_factory=get_storage_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    scheduling: SchedulingSettings = field(default_factory=get_scheduling_settings)
    session: SessionSettings = field(default_factory=get_session_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.logging.level.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL {self.logging.level!r} is not a logging level")

        if self.storage.capacity_bytes < 1:
            raise ValueError("STORAGE_CAPACITY_BYTES must be positive")

        if self.session.limit < 1:
            raise ValueError("SESSION_LIMIT must be positive")

        if self.session.max_commit_retries < 1:
            raise ValueError("MAX_COMMIT_RETRIES must be positive")

        if self.session.history_size < 1:
            raise ValueError("SESSION_HISTORY_SIZE must be positive")

        if self.scheduling.first_interval < 1:
            raise ValueError("FIRST_INTERVAL must be positive")

        if self.scheduling.second_interval < self.scheduling.first_interval:
            raise ValueError("SECOND_INTERVAL cannot be less than FIRST_INTERVAL")

        if self.scheduling.max_interval < self.scheduling.second_interval:
            raise ValueError("MAX_INTERVAL cannot be less than SECOND_INTERVAL")

        if self.monitoring.port < 0:
            raise ValueError("METRICS_PORT cannot be negative")


# Create global settings instance
settings = Settings()
settings.validate()
