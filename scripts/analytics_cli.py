# ABOUTME: Command-line front end that scores a JSON snapshot of platform data.
# ABOUTME: Runs dropout prediction, leaderboard ranking and engagement listings with Rich tables.

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.common.config import EngineConfig, load_engine_config
from src.common.errors import AnalyticsError, NotFoundError
from src.common.sources import InMemoryLearningData
from src.common.store import InMemoryRecordStore
from src.dropout.predictor import DropoutService
from src.scoring.engagement import EngagementService
from src.scoring.leaderboard import LeaderboardService

console = Console()
app = typer.Typer(help="Score learning-platform telemetry: drop-off, leaderboard and engagement.")


def _setup(data_path: Path, config_path: Optional[Path], verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    if not data_path.exists():
        console.print(f"[red]Missing data snapshot at {data_path}[/red]")
        raise typer.Exit(code=1)
    with open(data_path) as f:
        payload = json.load(f)
    config = load_engine_config(config_path) if config_path else EngineConfig()
    return payload, InMemoryLearningData.from_dict(payload), config


@app.command()
def dropout(
    course_id: str = typer.Option(..., "--course-id", help="Course whose lectures are scored."),
    data_path: Path = typer.Option(Path("data/snapshot.json"), "--data", help="JSON snapshot of courses, lectures and progress."),
    method: str = typer.Option("polynomial_regression", "--method", help="polynomial_regression or moving_average."),
    window: Optional[int] = typer.Option(None, "--window", help="Moving average window; defaults to the config value."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Analytics YAML config."),
    verbose: bool = typer.Option(False, "--verbose", help="Log every recompute."),
) -> None:
    """
    Predict where students drop off in a course.
    """
    _, source, config = _setup(data_path, config_path, verbose)
    service = DropoutService(InMemoryRecordStore(), source, config.dropout)
    try:
        result = service.recompute_batch(course_id, method=method, window=window)
    except NotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    except AnalyticsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)

    console.rule(f"[bold blue]Drop-off prediction: {course_id}[/bold blue]")
    if not result.ok:
        console.print(f"[yellow]No prediction ({result.status}); {result.valid_points} lectures have progress data.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Pos")
    table.add_column("Lecture")
    table.add_column("Completion %")
    table.add_column("Drop-off %")
    table.add_column("Confidence")
    table.add_column("Interventions")
    for p in result.predictions:
        table.add_row(
            str(p.position),
            p.lecture_id,
            f"{p.historical_completion_rate:.0f}",
            f"{p.dropoff_probability:.1f}",
            str(p.confidence),
            ", ".join(i.value for i in p.interventions) or "-",
        )
    console.print(table)

    summary = service.summary(course_id)
    console.print(
        f"[bold]High risk:[/] {summary['high_risk_count']} of {summary['total_predictions']}"
        f"  [bold]Average drop-off:[/] {summary['average_dropoff_probability']}"
    )


@app.command()
def leaderboard(
    data_path: Path = typer.Option(Path("data/snapshot.json"), "--data", help="JSON snapshot of courses."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Number of courses to show."),
    category: Optional[str] = typer.Option(None, "--category", help="Only courses of this category."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Analytics YAML config."),
    verbose: bool = typer.Option(False, "--verbose", help="Log every recompute."),
) -> None:
    """
    Rank every published course by composite score.
    """
    _, source, config = _setup(data_path, config_path, verbose)
    service = LeaderboardService(InMemoryRecordStore(), source, config.leaderboard)
    try:
        service.recompute_batch()
        entries = service.get_many(limit=limit, category=category)
    except AnalyticsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Rank", "Course", "Revenue", "Rating", "Views", "Enrollments", "Composite"):
        table.add_column(column)
    for entry in entries:
        table.add_row(
            str(entry.rank),
            entry.course_id,
            str(entry.revenue_score),
            str(entry.rating_score),
            str(entry.views_score),
            str(entry.enrollments_score),
            str(entry.composite_score),
        )
    console.rule("[bold blue]Course leaderboard[/bold blue]")
    console.print(table)


@app.command()
def engagement(
    course_id: str = typer.Option(..., "--course-id", help="Course to summarize."),
    data_path: Path = typer.Option(Path("data/snapshot.json"), "--data", help="JSON snapshot with an 'engagement' list."),
    verbose: bool = typer.Option(False, "--verbose", help="Log every recompute."),
) -> None:
    """
    Score student engagement counters and show the course distribution.
    """
    payload, source, _ = _setup(data_path, None, verbose)
    service = EngagementService(InMemoryRecordStore(), source)
    try:
        for row in payload.get("engagement", []):
            row = dict(row)
            if row.get("course_id") != course_id:
                continue
            student_id = row.pop("student_id")
            row.pop("course_id")
            service.ingest(student_id, course_id, row)
        summary = service.summary(course_id)
        at_risk = service.at_risk(course_id)
    except NotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    except AnalyticsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)

    console.rule(f"[bold blue]Engagement: {course_id}[/bold blue]")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Category")
    table.add_column("Students")
    for category, count in summary["engagement_distribution"].items():
        table.add_row(category, str(count))
    console.print(table)
    console.print(f"[bold]Average score:[/] {summary['average_engagement_score']}")

    if at_risk:
        console.print()
        console.print("[bold yellow]At risk[/bold yellow]")
        risk_table = Table(show_header=True, header_style="bold magenta")
        risk_table.add_column("Student")
        risk_table.add_column("Score")
        risk_table.add_column("Completion %")
        for record in at_risk:
            risk_table.add_row(record.student_id, str(record.engagement_score), f"{record.completion_percentage:.0f}")
        console.print(risk_table)
    for rec in service.recommendations(course_id):
        console.print(f"({rec['priority']}) {rec['message']}: {rec['action']}")


if __name__ == "__main__":
    app()
