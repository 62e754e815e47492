"""
Typer CLI for the adaptive learning engine.

Commands:
    adaptive-engine schedule 4 --interval 6 --ease 2.5 --repetitions 2
                                        - Preview one SM-2 step
    adaptive-engine items add ITEM      - Add or replace a catalog item
    adaptive-engine review LEARNER ITEM QUALITY
                                        - Record a review result
    adaptive-engine recommend LEARNER   - Show the next practice batch
    adaptive-engine stats LEARNER       - Show a learner's progress
    adaptive-engine patterns            - Show what the pattern learner has learned

Usage:
    adaptive-engine --help
    adaptive-engine --database-url sqlite:///study.db review alice el-pico 4
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from adaptive_engine.adaptive.recommendations import RecommendationOptions
from adaptive_engine.core.log_config import configure_logging
from adaptive_engine.core.mastery import MasteryLevel
from adaptive_engine.delivery.scheduler import ReviewScheduler, SM2Config
from adaptive_engine.delivery.state_store import DifficultyRange, LearnableItem
from adaptive_engine.engine import AdaptiveLearningEngine
from config import Settings, get_settings

T = TypeVar("T")

app = typer.Typer(
    help="Adaptive learning engine: SM-2 reviews, recommendations and pattern learning",
    no_args_is_help=True,
)
items_app = typer.Typer(help="Manage the learnable item catalog", no_args_is_help=True)
app.add_typer(items_app, name="items")

console = Console()


class CLIContext:
    """Settings for the invoked command, with command-line overrides applied."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        if database_url:
            settings = settings.model_copy(update={"database_url": database_url})
        self.settings: Settings = settings

    def run(self, action: Callable[[AdaptiveLearningEngine], Awaitable[T]]) -> T:
        """Run ``action`` against a started engine, closing it afterwards."""

        async def _main() -> T:
            async with AdaptiveLearningEngine.from_settings(self.settings) as engine:
                return await action(engine)

        return asyncio.run(_main())


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL for this command"
    ),
):
    """Adaptive learning engine CLI."""
    cli = CLIContext(database_url)
    configure_logging(cli.settings, level="WARNING")
    ctx.obj = cli


# ========================================
# Scheduling
# ========================================


@app.command()
def schedule(
    ctx: typer.Context,
    quality: float = typer.Argument(..., help="Recall quality (0-5, clamped)"),
    interval: int = typer.Option(0, "--interval", "-i", help="Current interval in days"),
    ease: float | None = typer.Option(None, "--ease", "-e", help="Current ease factor"),
    repetitions: int = typer.Option(0, "--repetitions", "-r", help="Successful reviews in a row"),
):
    """Preview one SM-2 step without touching the database."""
    settings: Settings = ctx.obj.settings
    scheduler = ReviewScheduler(
        SM2Config(
            initial_easiness=settings.sm2_initial_ease,
            minimum_easiness=settings.sm2_minimum_ease,
        )
    )
    current_ease = ease if ease is not None else settings.sm2_initial_ease
    result = scheduler.compute_next_review(quality, interval, current_ease, repetitions)

    table = Table(title="SM-2 Step")
    table.add_column("Field", style="cyan")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right", style="bold")
    table.add_row("Interval (days)", str(interval), str(result.new_interval))
    table.add_row("Ease factor", f"{current_ease:.2f}", f"{result.new_ease:.2f}")
    table.add_row("Repetitions", str(repetitions), str(result.new_repetitions))
    table.add_row("Mastery delta", "", f"{result.mastery_delta:+.0f}")
    table.add_row("Next review", "", result.next_date.strftime("%Y-%m-%d %H:%M UTC"))
    console.print(table)
    console.print("[green]Passed[/green]" if result.passed else "[red]Failed - relearn tomorrow[/red]")


# ========================================
# Catalog
# ========================================


@items_app.command("add")
def items_add(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Item identifier"),
    item_type: str | None = typer.Option(None, "--type", "-t", help="anatomical, behavioral, color..."),
    difficulty: int = typer.Option(1, "--difficulty", "-d", min=1, max=5),
    label: str | None = typer.Option(None, "--label", "-l"),
    hidden: bool = typer.Option(False, "--hidden", help="Exclude from new-item recommendations"),
):
    """Add or replace a learnable item."""
    item = LearnableItem(
        item_id=item_id,
        item_type=item_type,
        difficulty=difficulty,
        visible=not hidden,
        label=label,
    )
    ctx.obj.run(lambda engine: engine.add_items([item]))
    console.print(f"[green]Added item[/green] {item_id} (difficulty {difficulty})")


# ========================================
# Reviews
# ========================================


@app.command()
def review(
    ctx: typer.Context,
    learner_id: str = typer.Argument(...),
    item_id: str = typer.Argument(...),
    quality: float = typer.Argument(..., help="Recall quality (0-5, clamped)"),
    response_ms: int | None = typer.Option(None, "--response-ms", help="Time taken to answer"),
):
    """Record a review result."""
    state = ctx.obj.run(
        lambda engine: engine.record_review(learner_id, item_id, quality, response_ms)
    )
    level = MasteryLevel.from_score(state.mastery_score)
    console.print(
        f"[bold]{item_id}[/bold]: mastery [{level.color}]{state.mastery_score:.0f}[/{level.color}] "
        f"({level.display_name}), next review in {state.interval_days} day(s) "
        f"on {state.next_review_at:%Y-%m-%d}"
    )


@app.command()
def recommend(
    ctx: typer.Context,
    learner_id: str = typer.Argument(...),
    count: int = typer.Option(5, "--count", "-n", min=1),
    focus_type: str | None = typer.Option(None, "--focus-type", help="Restrict weak items to a type"),
    min_difficulty: int = typer.Option(1, "--min-difficulty", min=1, max=5),
    max_difficulty: int = typer.Option(5, "--max-difficulty", min=1, max=5),
    include_new: bool = typer.Option(True, "--new/--no-new", help="Include unseen items"),
):
    """Show the next practice batch."""
    options = RecommendationOptions(
        focus_type=focus_type,
        difficulty_range=DifficultyRange(min_difficulty, max_difficulty),
        include_new=include_new,
    )
    batch = ctx.obj.run(lambda engine: engine.get_recommendations(learner_id, count, options))

    if not batch:
        console.print("[yellow]Nothing to practice right now.[/yellow]")
        return

    table = Table(title=f"Recommendations for {learner_id}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Item", style="bold")
    table.add_column("Reason", style="cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Mastery", justify="right")
    for position, candidate in enumerate(batch, start=1):
        mastery = f"{candidate.state.mastery_score:.0f}" if candidate.state else "-"
        table.add_row(
            str(position),
            candidate.item_id,
            candidate.reason.value,
            str(candidate.priority),
            mastery,
        )
    console.print(table)


@app.command()
def stats(ctx: typer.Context, learner_id: str = typer.Argument(...)):
    """Show a learner's progress."""
    summary = ctx.obj.run(lambda engine: engine.get_user_stats(learner_id))

    table = Table(title=f"Progress for {learner_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="bold")
    table.add_row("Items practiced", str(summary.total_items))
    table.add_row("Mastered", str(summary.mastered))
    table.add_row("Learning", str(summary.learning))
    table.add_row("Due for review", str(summary.due_for_review))
    table.add_row("Weak", str(summary.weak_count))
    table.add_row("Average mastery", f"{summary.average_mastery:.1f}")
    table.add_row("Streak (days)", str(summary.streak))
    console.print(table)

    if summary.by_level:
        for level in MasteryLevel:
            count = summary.by_level.get(level.value, 0)
            if count:
                console.print(f"  [{level.color}]{level.display_name}[/{level.color}]: {count}")


# ========================================
# Pattern learning
# ========================================


@app.command()
def patterns(ctx: typer.Context, limit: int = typer.Option(10, "--limit", "-n", min=1)):
    """Show what the pattern learner has learned."""

    async def _analytics(engine: AdaptiveLearningEngine) -> dict:
        return engine.patterns.analytics()

    analytics = ctx.obj.run(_analytics)

    console.print(
        f"[bold]{analytics['totalPatterns']}[/bold] patterns, "
        f"[bold]{analytics['speciesTracked']}[/bold] species, "
        f"[bold]{analytics['correctionsTracked']}[/bold] corrections tracked"
    )
    if not analytics["topFeatures"]:
        console.print("[yellow]No patterns learned yet.[/yellow]")
        return

    table = Table(title="Top Features")
    table.add_column("Feature", style="bold")
    table.add_column("Species", style="cyan")
    table.add_column("Observations", justify="right")
    table.add_column("Confidence", justify="right")
    for feature in analytics["topFeatures"][:limit]:
        table.add_row(
            feature["feature"],
            feature["species"] or "-",
            str(feature["observations"]),
            f"{feature['confidence']:.2f}",
        )
    console.print(table)

    if analytics["rejectionCategories"]:
        console.print("\n[bold]Rejections by category[/bold]")
        for category, count in sorted(analytics["rejectionCategories"].items(), key=lambda kv: -kv[1]):
            console.print(f"  {category}: {count}")


def run() -> None:
    """Entry point for the adaptive-engine command."""
    app()


if __name__ == "__main__":
    run()
