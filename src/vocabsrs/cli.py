"""
Command line front end for the review scheduler.

Commands:
    vocabsrs add <text> <translation>  - Add a vocabulary item
    vocabsrs remove <id>               - Remove an item and its progress
    vocabsrs list                      - List items with their schedule
    vocabsrs due                       - Show items due now
    vocabsrs study                     - Run an interactive study session
    vocabsrs export                    - Export progress as JSON
"""
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from vocabsrs.app import StudyApp
from vocabsrs.config import settings
from vocabsrs.errors import CapacityExceeded, ConcurrentModification, InvalidGrade
from vocabsrs.logging_config import setup_logging
from vocabsrs.models.base import make_engine
from vocabsrs.models.progress_models import Grade

console = Console()

app = typer.Typer(
    name="vocabsrs",
    help="Spaced-repetition review scheduler for vocabulary flashcards",
    no_args_is_help=True,
)

GRADE_KEYS = {"1": Grade.FAIL, "2": Grade.HARD, "3": Grade.GOOD, "4": Grade.EASY}


def _app(ctx: typer.Context) -> StudyApp:
    return ctx.obj


@app.callback()
def main(
    ctx: typer.Context,
    db_url: str = typer.Option(settings.database.url, "--db-url", help="SQLAlchemy database URL"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    """Open the database and wire up the scheduler."""
    setup_logging(level=log_level)
    study_app = StudyApp(bind=make_engine(db_url, echo=settings.database.echo))
    study_app.start()
    ctx.obj = study_app
    ctx.call_on_close(study_app.stop)


@app.command("add")
def add_item(ctx: typer.Context, text: str, translation: str) -> None:
    """Add a vocabulary item."""
    item = _app(ctx).vocabulary.add_item(text, translation)
    console.print(f"[green]Added[/green] #{item.id} {item.text} = {item.translation}")


@app.command("remove")
def remove_item(ctx: typer.Context, item_id: int) -> None:
    """Remove an item together with its progress."""
    study_app = _app(ctx)
    if not study_app.vocabulary.remove_item(item_id, study_app.coordinator):
        console.print(f"[red]Error:[/red] item {item_id} not found")
        raise typer.Exit(code=1)
    console.print(f"Removed #{item_id}")


@app.command("list")
def list_items(ctx: typer.Context) -> None:
    """List items with their schedule."""
    study_app = _app(ctx)
    records = study_app.store.get_many()

    table = Table(title="Vocabulary")
    table.add_column("ID", justify="right")
    table.add_column("Text")
    table.add_column("Translation")
    table.add_column("Streak", justify="right")
    table.add_column("Ease", justify="right")
    table.add_column("Next review")

    for item in study_app.vocabulary.list_items():
        record = records.get(item.id) or study_app.store.default(item.id)
        next_review = record.next_review_at.strftime("%Y-%m-%d %H:%M") if record.next_review_at else "new"
        table.add_row(
            str(item.id),
            item.text,
            item.translation,
            str(record.streak),
            str(record.ease_factor),
            next_review,
        )
    console.print(table)


@app.command("due")
def due_items(ctx: typer.Context, limit: Optional[int] = typer.Option(None, "--limit", "-n")) -> None:
    """Show items due now, most urgent first."""
    study_app = _app(ctx)
    due = study_app.selector.due_items(limit=limit)
    if not due:
        console.print("[green]Nothing due. All caught up![/green]")
        return
    for item_id in due:
        item = study_app.vocabulary.get_item(item_id)
        console.print(f"#{item_id} {item.text}")


@app.command("study")
def study(
    ctx: typer.Context,
    limit: int = typer.Option(settings.session.limit, "--limit", "-n", help="Maximum items in the session"),
) -> None:
    """Run an interactive study session over the items due now."""
    study_app = _app(ctx)
    coordinator = study_app.coordinator
    session = coordinator.start_session(limit)
    if not session.items:
        coordinator.end_session()
        console.print("[green]Nothing due. All caught up![/green]")
        return

    try:
        for item_id in session.items:
            item = study_app.vocabulary.get_item(item_id)
            console.print(f"\n[bold]{item.text}[/bold]")
            typer.prompt("Press Enter to reveal", default="", show_default=False)
            console.print(f"[cyan]{item.translation}[/cyan]")
            while True:
                key = typer.prompt("Grade 1=fail 2=hard 3=good 4=easy")
                try:
                    grade = GRADE_KEYS.get(key.strip()) or Grade.coerce(key)
                    break
                except InvalidGrade:
                    console.print("[yellow]Please answer 1, 2, 3 or 4[/yellow]")
            record = coordinator.submit_review(item_id, grade)
            console.print(f"Next review in {record.interval_days} day(s)")
    except CapacityExceeded as e:
        console.print(f"[red]Storage full:[/red] {e}")
        console.print("Free some space or run [bold]vocabsrs export[/bold] to save your progress.")
        raise typer.Exit(code=1)
    except ConcurrentModification as e:
        console.print(f"[red]Progress changed elsewhere:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        stats = coordinator.end_session()
        console.print(
            f"\nReviewed {stats.reviewed}: {stats.passed} passed, {stats.failed} failed"
        )


@app.command("export")
def export_progress(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout"),
) -> None:
    """Export every progress record as JSON."""
    data = json.dumps(_app(ctx).store.export(), indent=2, sort_keys=True)
    if output is None:
        typer.echo(data)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(data, encoding="utf-8")
    console.print(f"Exported progress to {output}")


def run() -> None:
    """Console script entry point."""
    app()
