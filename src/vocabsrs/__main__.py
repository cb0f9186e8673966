"""Main entry point for the scheduler."""
from vocabsrs.cli import run

if __name__ == "__main__":
    run()
