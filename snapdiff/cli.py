"""CLI entry point for snapdiff."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from snapdiff.engine.errors import ImageDiffError
from snapdiff.engine.pipeline import compare_images
from snapdiff.engine.significance import is_significant
from snapdiff.models.comparison import ErrorType, IgnoreRegion
from snapdiff.models.config import DiffConfig
from snapdiff.models.snapshot import Snapshot, SnapshotStatus
from snapdiff.review.snapshot_store import SnapshotNotFoundError, SnapshotStore

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "snapdiff.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> DiffConfig:
    try:
        return DiffConfig.load(path)
    except FileNotFoundError:
        logger.debug("No config at %s, using defaults", path)
        return DiffConfig()


def _parse_regions(ctx: click.Context, param: click.Parameter, values: tuple[str, ...]) -> list[IgnoreRegion]:
    try:
        return [IgnoreRegion.parse(v) for v in values]
    except ValueError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


def _status_style(status: SnapshotStatus) -> str:
    return {
        SnapshotStatus.APPROVED: "green",
        SnapshotStatus.REJECTED: "red",
        SnapshotStatus.FAILED: "red",
        SnapshotStatus.PENDING: "yellow",
        SnapshotStatus.NEW: "blue",
    }[status]


def _print_snapshot(snapshot: Snapshot) -> None:
    style = _status_style(snapshot.status)
    diff = "-" if snapshot.diff_percentage is None else f"{snapshot.diff_percentage:.2f}%"
    console.print(f"[bold]{snapshot.id}[/bold] {snapshot.name}: [{style}]{snapshot.status.value}[/{style}] ({diff})")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression image diff engine"""
    setup_logging(verbose)


@cli.command()
@click.argument("baseline")
@click.argument("current")
@click.option("--ignore", "regions", multiple=True, callback=_parse_regions,
              help="Ignore region as x,y,width,height (repeatable)")
@click.option("--ignore-colors/--no-ignore-colors", default=None, help="Compare luminance only")
@click.option("--ignore-antialiasing/--no-ignore-antialiasing", default=None,
              help="Skip pixels that look like edge smoothing")
@click.option("--ignore-alpha/--no-ignore-alpha", default=None, help="Leave the alpha channel out")
@click.option("--no-scale", is_flag=True, help="Compare the overlap instead of rescaling mismatched sizes")
@click.option("--error-type", type=click.Choice([e.value for e in ErrorType]), default=None,
              help="How changed pixels are rendered")
@click.option("--transparency", type=click.FloatRange(0.0, 1.0), default=None,
              help="Opacity of unchanged pixels in the diff image")
@click.option("--output", "-o", default=None, help="Write the diff image to this PNG path")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def compare(
    baseline: str,
    current: str,
    regions: list[IgnoreRegion],
    ignore_colors: bool | None,
    ignore_antialiasing: bool | None,
    ignore_alpha: bool | None,
    no_scale: bool,
    error_type: str | None,
    transparency: float | None,
    output: str | None,
    as_json: bool,
    config: str,
) -> None:
    """Compare a BASELINE image against a CURRENT image (paths or URLs)."""
    cfg = _load_config(config)
    overrides = {
        "ignore_colors": ignore_colors,
        "ignore_antialiasing": ignore_antialiasing,
        "ignore_alpha": ignore_alpha,
        "scale_to_same_size": False if no_scale else None,
        "error_type": ErrorType(error_type) if error_type else None,
        "transparency": transparency,
    }
    policy = cfg.policy.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    try:
        result = asyncio.run(compare_images(
            baseline,
            current,
            [*cfg.ignore_regions, *regions],
            policy,
            timeout=cfg.fetch_timeout_seconds,
            fill_color=cfg.mask_fill_color,
            output_path=output,
        ))
    except ImageDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    significant = is_significant(result.diff_percentage, cfg.significance_threshold)
    if as_json:
        click.echo(json.dumps({**result.to_payload(), "isSignificant": significant}, indent=2))
    else:
        table = Table(title="Comparison Result")
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        colour = "red" if significant else "green"
        table.add_row("Mismatch", f"[{colour}]{result.diff_percentage:.2f}%[/{colour}]")
        table.add_row("Changed pixels", f"{result.mismatched_pixels}/{result.total_pixels}")
        table.add_row("Same dimensions", "yes" if result.is_same_dimensions else "no")
        if result.dimension_difference:
            dd = result.dimension_difference
            table.add_row("Size difference", f"{dd.width:+d} x {dd.height:+d}")
        table.add_row("Sampled", "yes" if result.sampled else "no")
        table.add_row("Analysis time", f"{result.analysis_time_ms:.1f}ms")
        console.print(table)
        if output:
            console.print(f"  Diff image: [blue]{output}[/blue]")

    if significant:
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def init(config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    DiffConfig().save(config_path)
    console.print(f"[green]Created {config_path}[/green]")


@cli.group()
def snapshot() -> None:
    """Review snapshots against their baselines."""
    pass


@snapshot.command("add")
@click.option("--test-id", required=True, help="Owning test ID")
@click.option("--project-id", required=True, help="Owning project ID")
@click.option("--name", required=True, help="Snapshot name")
@click.option("--current", required=True, help="Current screenshot path or URL")
@click.option("--baseline", default=None, help="Baseline screenshot path or URL")
@click.option("--browser", default="", help="Browser the screenshot was taken in")
@click.option("--viewport", default="", help="Viewport, e.g. 1920x1080")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def snapshot_add(
    test_id: str, project_id: str, name: str, current: str, baseline: str | None,
    browser: str, viewport: str, config: str,
) -> None:
    """Register a captured screenshot."""
    cfg = _load_config(config)
    store = SnapshotStore(Path(cfg.store_path))
    registry = store.load()
    snap = store.add_snapshot(
        registry, test_id=test_id, project_id=project_id, name=name,
        current_url=current, baseline_url=baseline, browser=browser, viewport=viewport,
    )
    store.save(registry)
    _print_snapshot(snap)


@snapshot.command("list")
@click.option("--test-id", default=None, help="Only show snapshots of this test")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def snapshot_list(test_id: str | None, config: str) -> None:
    """List registered snapshots."""
    cfg = _load_config(config)
    store = SnapshotStore(Path(cfg.store_path))
    snapshots = store.list_snapshots(store.load(), test_id)
    if not snapshots:
        console.print("[yellow]No snapshots registered[/yellow]")
        return
    for snap in snapshots:
        _print_snapshot(snap)


@snapshot.command("compare")
@click.argument("snapshot_id")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def snapshot_compare(snapshot_id: str, config: str) -> None:
    """Diff a snapshot against its baseline."""
    cfg = _load_config(config)
    store = SnapshotStore(Path(cfg.store_path))
    registry = store.load()
    try:
        result = asyncio.run(store.compare_snapshot(registry, snapshot_id, cfg))
    except SnapshotNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except ImageDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    store.save(registry)
    if result is None:
        console.print("[yellow]No baseline yet; approve or set this snapshot as baseline first[/yellow]")
    _print_snapshot(store.get(registry, snapshot_id))


def _transition(snapshot_id: str, config: str, action: str) -> None:
    cfg = _load_config(config)
    store = SnapshotStore(Path(cfg.store_path))
    registry = store.load()
    try:
        snap = getattr(store, action)(registry, snapshot_id)
    except SnapshotNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    store.save(registry)
    _print_snapshot(snap)


@snapshot.command("approve")
@click.argument("snapshot_id")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def snapshot_approve(snapshot_id: str, config: str) -> None:
    """Approve a snapshot."""
    _transition(snapshot_id, config, "approve")


@snapshot.command("reject")
@click.argument("snapshot_id")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def snapshot_reject(snapshot_id: str, config: str) -> None:
    """Reject a snapshot."""
    _transition(snapshot_id, config, "reject")


@snapshot.command("baseline")
@click.argument("snapshot_id")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def snapshot_baseline(snapshot_id: str, config: str) -> None:
    """Promote a snapshot's current image to its baseline."""
    _transition(snapshot_id, config, "set_as_baseline")


if __name__ == "__main__":
    cli()
