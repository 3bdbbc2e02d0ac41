"""Typer CLI entrypoint for case-harvester."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .browser import PlaywrightResourceManager
from .config import ConfigRepository, HarvestSettings
from .engine import ListProviderError
from .logging_conf import available_batch_logs, configure_logging, log_dir, tail_log
from .orchestrator import HarvestResult, run_manifest
from .report import FileReportAssembler
from .ui import ProgressReporter

app = typer.Typer(
    help="case-harvester command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="Settings commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log viewing commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    settings: HarvestSettings
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    settings = repository.load_settings()
    configure_logging(verbose=verbose, level=settings.log_level)
    return AppState(repository=repository, settings=settings, verbose=verbose)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _progress_default_enabled() -> bool:
    return bool(getattr(sys.stdout, "isatty", lambda: False)())


def _render_result_table(label: str, result: HarvestResult) -> Table:
    summary = result.summary()
    table = Table(title=f"{label} harvest", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Items", str(summary["items"]))
    table.add_row("Ordered", str(summary["ordered"]))
    table.add_row("Unparsed", str(summary["unparsed"]))
    table.add_row("Errors", str(summary["errors"]))
    table.add_row("Mode", "concurrent" if result.concurrent else "sequential")
    if result.report_path:
        table.add_row("Report", str(result.report_path))
    return table


def _render_errors_table(result: HarvestResult) -> Table:
    table = Table(title="Failed items", box=box.SIMPLE_HEAD)
    table.add_column("Kind", style="magenta")
    table.add_column("Locator", style="cyan", overflow="fold")
    table.add_column("Error", style="red", overflow="fold")
    for record in result.timeline.errors:
        table.add_row(record.kind.value, record.source_locator, record.error_message or "")
    return table


app.add_typer(config_app, name="config", help="Show or initialise settings.yaml")
app.add_typer(log_app, name="log", help="Inspect log files")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("collect", help="Collect every related record listed in a manifest.")
def collect(
    ctx: typer.Context,
    manifest_path: Path = typer.Argument(..., help="Manifest file (YAML or JSON)."),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", min=1, help="Pages open at once per batch."
    ),
    threshold: Optional[int] = typer.Option(
        None, "--threshold", min=0, help="Run batches side by side up to this many items."
    ),
    fmt: Optional[str] = typer.Option(None, "--format", help="Report format: json, csv or txt."),
    cdp_url: Optional[str] = typer.Option(
        None, "--cdp-url", help="Attach to a running browser over CDP."
    ),
    quiet: bool = typer.Option(False, "--quiet", help="Print a one-line summary only."),
) -> None:
    state = _get_state(ctx)
    try:
        manifest = state.repository.load_manifest(manifest_path)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"Cannot load manifest: {exc}", style="red")
        raise typer.Exit(code=1)

    overrides: dict[str, object] = {}
    if concurrency is not None:
        overrides["concurrency_limit"] = concurrency
    if threshold is not None:
        overrides["concurrent_threshold"] = threshold
    if fmt is not None:
        overrides["output_format"] = fmt
    if cdp_url is not None:
        overrides["browser"] = state.settings.browser.model_copy(
            update={"cdp_url": cdp_url, "user_data_dir": None}
        )
    try:
        settings = HarvestSettings.model_validate(
            {**state.settings.model_dump(), **overrides}
        )
    except ValueError as exc:
        console.print(f"Invalid option: {exc}", style="red")
        raise typer.Exit(code=1)

    label = manifest_path.stem
    report = FileReportAssembler(
        state.repository.outputs_dir(settings), label, settings.output_format
    )
    progress = ProgressReporter(
        enabled=settings.enable_progress_bar and _progress_default_enabled() and not quiet
    )
    progress.set_label(label)
    script_root = state.repository.locator.project_root

    def _resources(settings: HarvestSettings, correlator):
        return PlaywrightResourceManager(settings, correlator, script_root=script_root)

    try:
        result = asyncio.run(
            run_manifest(
                manifest,
                settings,
                report=report,
                progress=progress,
                resources_factory=_resources,
            )
        )
    except ListProviderError as exc:
        console.print(f"Listing failed, nothing collected: {exc}", style="red")
        raise typer.Exit(code=2)

    summary = result.summary()
    if quiet:
        console.print(
            f"Collected {summary['items']} items: {summary['ordered']} ordered, "
            f"{summary['unparsed']} unparsed, {summary['errors']} errors"
        )
        return
    console.print(_render_result_table(label, result))
    if result.timeline.errors:
        console.print(_render_errors_table(result))


@config_app.command("show", help="Print the effective settings.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(f"# {state.repository.locator.settings_path()}", style="dim")
    console.print(
        yaml.safe_dump(state.settings.model_dump(mode="json"), allow_unicode=True, sort_keys=False)
    )


@config_app.command("init", help="Write default settings.yaml.")
def config_init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite existing settings."),
) -> None:
    state = _get_state(ctx)
    path = state.repository.locator.settings_path()
    if path.exists() and not force:
        console.print(f"{path} already exists; pass --force to overwrite.", style="yellow")
        raise typer.Exit(code=1)
    written = state.repository.save_settings(HarvestSettings())
    console.print(f"Default settings written to {written}", style="green")


@log_app.command("list", help="List available log files.")
def log_list() -> None:
    logs = list(available_batch_logs())
    console.print("Log files:", style="cyan")
    if not logs:
        console.print("No batch logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the latest lines of a log.")
def log_show(
    batch: Optional[str] = typer.Option(
        None, "--batch", help="Item kind whose batch log to show (global log when empty)."
    ),
    tail: int = typer.Option(100, "--tail", min=1, help="Show the last N lines."),
) -> None:
    if batch:
        path = log_dir() / "batches" / f"{batch}.log"
    else:
        path = log_dir() / "harvester.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    header = f"{'Batch log ' + batch if batch else 'Global log'} · last {len(lines)} lines"
    console.print(header, style="cyan")
    console.print("".join(lines))


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
