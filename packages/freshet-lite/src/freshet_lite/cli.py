"""CLI entry point for Freshet."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from pathlib import Path
from typing import Annotated, TypeVar

import typer
import yaml
from rich import print as rprint
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from freshet_core.clock import utcnow
from freshet_core.config import FreshetConfig, load_config
from freshet_core.config.loader import DEFAULT_CONFIG_TEMPLATE
from freshet_core.engine import EngineDependencies, FreshnessEngine
from freshet_core.errors import FreshetError, ValidationError
from freshet_core.freshness.models import PriorityLevel
from freshet_core.logging_setup import configure_logging
from freshet_core.plugins import PluginLoader, PluginNotFoundError
from freshet_core.queue.models import RefreshType
from freshet_core.queue.refresh_queue import parse_refresh_type
from freshet_core.regeneration.models import BatchProgress, RegenerationOptions, RegenerationResult
from freshet_core.sources.retrying import RetryingSource
from freshet_core.versions.models import TriggerReason

T = TypeVar("T")

app = typer.Typer(
    name="freshet",
    help="Keep scraped content fresh: score staleness, detect changes, regenerate, roll back.",
)

config_app = typer.Typer(help="Manage Freshet configuration.")
app.add_typer(config_app, name="config")

# Global state
_config: FreshetConfig | None = None


def _get_config() -> FreshetConfig:
    if _config is None:
        return load_config()
    return _config


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to freshet.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    configure_logging(_config)


def build_engine(cfg: FreshetConfig) -> FreshnessEngine:
    """Wire the engine from configured (or Lite default) plugins."""
    loader = PluginLoader(cfg)
    store_cls = loader.load_store()
    source_cls = loader.load_source()
    store = store_cls(db_path=cfg.store.db_path)
    source = source_cls(
        timeout=cfg.source.timeout,
        user_agent=cfg.source.user_agent,
        max_images=cfg.source.max_images,
    )
    retrying = RetryingSource(
        source,
        max_attempts=cfg.source.max_attempts,
        retry_delay=cfg.source.retry_delay,
        max_delay=cfg.source.max_delay,
    )
    return FreshnessEngine(EngineDependencies(store=store, source=retrying, config=cfg))


def _run(action: Callable[[FreshnessEngine], Awaitable[T]]) -> T:
    """Build the engine, run one async action, and map engine errors to exit 1."""
    try:
        engine = build_engine(_get_config())
    except PluginNotFoundError as e:
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    try:
        return asyncio.run(action(engine))
    except FreshetError as e:
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    finally:
        close = getattr(engine.store, "close", None)
        if close is not None:
            close()


def _parse_refresh_type(value: str) -> RefreshType:
    try:
        return parse_refresh_type(value)
    except ValidationError as e:
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _display_result(result: RegenerationResult) -> None:
    if not result.success:
        rprint(f"[red]Failed[/red] {result.item_id}: {escape(result.error or '')} ({result.error_type})")
        return
    if not result.changes_detected:
        rprint(f"[green]Up to date[/green] {result.item_id} ({result.processing_time_ms} ms)")
        return
    significance = "significant" if result.significant_changes else "minor"
    panel_text = (
        f"[bold]{result.item_id}[/bold] -> version {result.version_number}\n\n"
        f"[dim]Change score:[/dim] {result.change_score:.2f} ({significance})\n"
        f"[dim]Metadata:[/dim]     {', '.join(result.metadata_changes) or '-'}\n"
        f"[dim]Images:[/dim]       {', '.join(result.image_changes) or '-'}\n"
        f"[dim]Duration:[/dim]     {result.processing_time_ms} ms"
    )
    rprint(Panel(panel_text, title="Regenerated", border_style="green"))


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(mode="json"), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default freshet.yaml in current directory."""
    target = Path("freshet.yaml")
    if target.exists() and not force:
        rprint("[yellow]freshet.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")


# ---------------------------------------------------------------------------
# Freshness commands
# ---------------------------------------------------------------------------


@app.command()
def track(
    item_id: str = typer.Argument(..., help="Item identifier"),
    url: str = typer.Argument(..., help="Source URL to keep fresh"),
    priority: PriorityLevel = typer.Option(PriorityLevel.normal, "--priority", help="Item priority"),
    policy: str | None = typer.Option(None, "--policy", help="Freshness policy name"),
) -> None:
    """Start tracking an item. Its first regeneration fetches the baseline."""
    record = _run(lambda engine: engine.track_item(item_id, url, priority=priority, policy=policy))
    rprint(f"[green]Tracking[/green] {record.item_id} (score {record.score:.2f})")


@app.command()
def check(
    item_id: str = typer.Argument(..., help="Item identifier"),
) -> None:
    """Recompute an item's freshness score."""
    result = _run(lambda engine: engine.check_submission_freshness(item_id))
    colour = "red" if result.is_stale else "green"
    rprint(
        f"{result.item_id}: [{colour}]{result.display_score:.2f}[/{colour}] "
        f"(was {result.previous_score:.2f}); "
        f"needs update: {'yes' if result.needs_update else 'no'}"
    )


@app.command(name="run-check")
def run_check(
    batch_size: int | None = typer.Option(None, "--batch-size", help="Max items to check"),
    rescore: bool = typer.Option(True, "--rescore/--no-rescore", help="Rescore all items first"),
) -> None:
    """Check the stalest items and queue refreshes for those that need one."""
    report = _run(lambda engine: engine.run_freshness_check(batch_size, rescore))
    rprint(
        f"[green]Checked[/green] {report.checked}, scheduled {report.scheduled}, "
        f"errors {report.errors}"
    )


@app.command()
def schedule(
    item_id: str = typer.Argument(..., help="Item identifier"),
    refresh_type: str = typer.Option("metadata", "--type", help="Refresh type"),
    priority: int = typer.Option(5, "--priority", min=1, max=10, help="1 (urgent) to 10"),
) -> None:
    """Queue a refresh for an item."""
    rtype = _parse_refresh_type(refresh_type)
    entry = _run(lambda engine: engine.schedule_refresh(item_id, rtype, priority))
    rprint(f"[green]Queued[/green] {entry.id} ({entry.refresh_type.value}, priority {entry.priority})")


@app.command()
def rescore() -> None:
    """Recompute every tracked item's score."""
    count = _run(lambda engine: engine.rescore_all())
    rprint(f"[green]Rescored[/green] {count} item(s).")


@app.command()
def archive(
    hours: float | None = typer.Option(None, "--hours", help="Archive stale items unchecked this long"),
) -> None:
    """Archive stale items that have not been checked recently."""
    result = _run(lambda engine: engine.archive_stale_items(hours))
    rprint(f"[green]Archived[/green] {result.archived_count} item(s) (threshold {result.threshold_hours:g}h).")


@app.command()
def stats(
    days: int = typer.Option(7, "--days", help="Regeneration history window"),
) -> None:
    """Show freshness and regeneration statistics."""

    async def _collect(engine: FreshnessEngine):
        end = utcnow()
        return (
            await engine.get_freshness_statistics(),
            await engine.regeneration_stats(end - timedelta(days=days), end),
            await engine.queue.stats(),
        )

    freshness, regen, queue = _run(_collect)

    table = Table(title="Freshness")
    table.add_column("metric", style="cyan")
    table.add_column("value", justify="right", style="green")
    table.add_row("tracked", str(freshness.total))
    table.add_row("fresh", f"{freshness.fresh} ({freshness.fresh_percentage}%)")
    table.add_row("stale", f"{freshness.stale} ({freshness.stale_percentage}%)")
    table.add_row("average score", f"{freshness.average_score:.2f}")
    rprint(table)

    table = Table(title=f"Regeneration (last {days} days)")
    table.add_column("metric", style="cyan")
    table.add_column("value", justify="right", style="green")
    table.add_row("total", str(regen.total_regenerations))
    table.add_row("successful", str(regen.successful_regenerations))
    table.add_row("failed", str(regen.failed_regenerations))
    table.add_row("success rate", f"{regen.success_rate}%")
    table.add_row("change rate", f"{regen.change_detection_rate}%")
    table.add_row("avg duration", f"{regen.average_processing_time_ms} ms")
    rprint(table)

    table = Table(title="Queue")
    table.add_column("status", style="cyan")
    table.add_column("count", justify="right", style="green")
    for status, count in queue.items():
        table.add_row(status, str(count))
    rprint(table)


# ---------------------------------------------------------------------------
# Regeneration commands
# ---------------------------------------------------------------------------


@app.command()
def regenerate(
    item_id: str = typer.Argument(..., help="Item identifier"),
    refresh_type: str = typer.Option("metadata", "--type", help="Refresh type"),
    rewrite: bool = typer.Option(True, "--rewrite/--no-rewrite", help="Update rewritten content"),
) -> None:
    """Fetch fresh content for one item and version it if it changed."""
    options = RegenerationOptions(
        refresh_type=_parse_refresh_type(refresh_type),
        trigger_reason=TriggerReason.manual,
        update_rewritten_content=rewrite,
    )
    result = _run(lambda engine: engine.regenerate(item_id, options))
    _display_result(result)
    if not result.success:
        raise typer.Exit(1)


@app.command()
def batch(
    item_ids: list[str] = typer.Argument(..., help="Item identifiers"),
    concurrency: int | None = typer.Option(None, "--concurrency", help="Items per chunk"),
) -> None:
    """Regenerate many items with bounded concurrency."""
    with Progress(TextColumn("[bold]Regenerating"), BarColumn(), TextColumn("{task.completed}/{task.total}")) as progress:
        task = progress.add_task("batch", total=len(item_ids))

        def _on_progress(p: BatchProgress) -> None:
            progress.update(task, completed=p.processed)

        result = _run(lambda engine: engine.batch_regenerate(item_ids, concurrency, _on_progress))

    rprint(
        f"[green]Done.[/green] {result.successful}/{result.total_processed} succeeded, "
        f"{result.changes_detected} changed, {result.failed} failed "
        f"({result.processing_time_ms} ms)."
    )
    for err in result.errors:
        rprint(f"  [red]error:[/red] {err.item_id}: {escape(err.error)}")


@app.command()
def drain(
    limit: int = typer.Option(10, "--limit", help="Max queue entries to claim"),
    worker_id: str | None = typer.Option(None, "--worker-id", help="Worker identity recorded on claims"),
) -> None:
    """Process pending refreshes from the queue."""
    report = _run(lambda engine: engine.process_queue(limit, worker_id))
    if report.claimed == 0 and report.lost_claims == 0:
        rprint("[yellow]Queue is empty.[/yellow]")
        return
    rprint(
        f"[green]Done.[/green] Claimed {report.claimed}: {report.completed} completed, "
        f"{report.failed} failed, {report.lost_claims} lost to other workers."
    )
    for err in report.errors:
        rprint(f"  [red]error:[/red] {err.item_id}: {escape(err.error)}")


# ---------------------------------------------------------------------------
# Version commands
# ---------------------------------------------------------------------------


@app.command()
def versions(
    item_id: str = typer.Argument(..., help="Item identifier"),
) -> None:
    """List stored versions of an item."""
    snapshots = _run(lambda engine: engine.list_versions(item_id))
    if not snapshots:
        rprint(f"[yellow]No stored versions for '{item_id}'.[/yellow] Version 1 is the baseline.")
        raise typer.Exit(0)

    table = Table(title=f"Versions: {item_id}")
    table.add_column("version", justify="right", style="cyan")
    table.add_column("created", style="dim")
    table.add_column("score", justify="right", style="green")
    table.add_column("changes")
    for v in snapshots:
        table.add_row(
            str(v.version_number),
            v.created_at.strftime("%Y-%m-%d %H:%M"),
            f"{v.change_score:.2f}",
            v.change_summary,
        )
    rprint(table)


@app.command()
def rollback(
    item_id: str = typer.Argument(..., help="Item identifier"),
    version: int = typer.Argument(..., help="Stored version to restore"),
) -> None:
    """Restore an item's content from a stored version."""
    result = _run(lambda engine: engine.rollback_submission(item_id, version))
    rprint(f"[green]Rolled back[/green] {result.item_id} to version {result.rolled_back_to_version}")
