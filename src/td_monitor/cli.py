"""CLI entry point for td-monitor."""

import logging
import os
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path

import click
from rich.console import Console

from . import __version__
from .config import (
    CONFIG_FILE,
    LOG_DIR,
    STATE_DIRNAME,
    Config,
    UIStateStore,
    load_config,
    new_session_id,
    save_config,
)
from .effects import EffectRunner
from .keymap import KeymapRegistry
from .monitor import MonitorModel
from .store import IssueStore, MemoryStore, StoreError
from .tui_textual import TDMonitorApp

console = Console()

STORE_FILENAME = "issues.json"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(debug_logging: bool) -> None:
    """Send debug logs to a rotating file, or keep only warnings."""
    if debug_logging:
        log_file = LOG_DIR / "debug.log"
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
        )
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, handlers=[handler])
        logging.info("td-monitor starting (debug logging enabled)")
    else:
        # Default: only warn+ so TUI stays clean
        logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)


def open_project_store(project_dir: Path) -> MemoryStore:
    """Open the issue store of the td project at ``project_dir``.

    Raises click.ClickException when there is no readable project there.
    """
    state_dir = project_dir / STATE_DIRNAME
    if not state_dir.is_dir():
        raise click.ClickException(
            f"No td project in {project_dir} (missing {STATE_DIRNAME}/). Run 'td init' first."
        )
    if not os.access(state_dir, os.R_OK | os.W_OK):
        raise click.ClickException(f"Cannot read and write {state_dir}")
    try:
        return MemoryStore(state_dir / STORE_FILENAME)
    except StoreError as e:
        raise click.ClickException(str(e)) from e


def build_app(project_dir: Path, config: Config, store: IssueStore, session_id: str = "") -> TDMonitorApp:
    ui_store = UIStateStore(project_dir)
    registry = KeymapRegistry()
    for problem in registry.load_overrides(config.keymap):
        console.print(f"[yellow]Warning:[/yellow] {problem}")

    model = MonitorModel(
        config,
        session_id or config.session_id or new_session_id(),
        ui_state=ui_store.load(),
        registry=registry,
    )
    return TDMonitorApp(model, EffectRunner(store, ui_store), refresh_interval=config.refresh_interval)


def run_monitor(app: TDMonitorApp) -> None:
    try:
        app.run()
    except KeyboardInterrupt:
        pass


@click.group(invoke_without_command=True)
@click.option(
    "--dir", "project_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="td project directory (default: current directory)",
)
@click.option("--embedded", is_flag=True, default=False, help="Hide the footer when hosted inside another TUI")
@click.option("--refresh", type=click.FloatRange(min=0.0, min_open=True), default=None, help="Seconds between auto refreshes")
@click.option("--debug-logging/--no-debug-logging", default=None, help="Enable debug logging to file")
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def main(ctx: click.Context, project_dir: Path, embedded: bool, refresh: float | None, debug_logging: bool | None, version: bool) -> None:
    """td-monitor - An interactive terminal dashboard for the td issue tracker."""
    if version:
        console.print(f"td-monitor v{__version__}")
        return

    ctx.ensure_object(dict)
    config = load_config()
    # Apply CLI overrides (not saved to config file)
    if embedded:
        config.embedded = True
    if refresh is not None:
        config.refresh_interval = refresh
    if debug_logging is not None:
        config.debug_logging = debug_logging
    ctx.obj["config"] = config

    # If no subcommand, run the monitor
    if ctx.invoked_subcommand is None:
        setup_logging(config.debug_logging)
        project_dir = project_dir.resolve()
        store = open_project_store(project_dir)
        run_monitor(build_app(project_dir, config, store))


@main.command()
@click.option("--refresh", type=click.FloatRange(min=0.0, min_open=True), default=None, help="Seconds between auto refreshes")
@click.option("--debug-logging/--no-debug-logging", default=None, help="Enable debug logging to file")
@click.option("--embedded/--no-embedded", default=None, help="Hide the footer by default")
@click.option("--show", is_flag=True, help="Show current configuration")
def config(refresh: float | None, debug_logging: bool | None, embedded: bool | None, show: bool) -> None:
    """Configure td-monitor settings.

    Examples:
      td-monitor config --refresh 5          # Refresh every 5 seconds
      td-monitor config --debug-logging      # Enable debug logging
      td-monitor config --show               # Show current config
    """
    current_config = load_config()

    if show:
        console.print("\n[bold]Current Configuration:[/bold]")
        console.print(f"  Refresh Interval: [cyan]{current_config.refresh_interval}s[/cyan]")
        console.print(f"  Debug Logging:    [cyan]{current_config.debug_logging}[/cyan]")
        console.print(f"  Embedded:         [cyan]{current_config.embedded}[/cyan]")
        console.print(f"  Session:          [cyan]{current_config.session_id or '(new per run)'}[/cyan]")
        if current_config.keymap:
            console.print("\n[bold]Key Overrides:[/bold]")
            for key, command in sorted(current_config.keymap.items()):
                console.print(f"  {key:<24} [cyan]{command}[/cyan]")

        console.print(f"\nConfig file: [dim]{CONFIG_FILE}[/dim]")

        for name in ("TD_MONITOR_REFRESH_INTERVAL", "TD_MONITOR_DEBUG_LOGGING", "TD_MONITOR_SESSION"):
            if os.getenv(name):
                console.print(f"[yellow]Note:[/yellow] {name} is set: {os.getenv(name)}")
        return

    if refresh is None and debug_logging is None and embedded is None:
        console.print("Use --refresh, --debug-logging or --embedded to change settings.")
        console.print("Use --show to view current configuration.")
        return

    if refresh is not None:
        current_config.refresh_interval = refresh
    if debug_logging is not None:
        current_config.debug_logging = debug_logging
    if embedded is not None:
        current_config.embedded = embedded
    save_config(current_config)

    console.print("\n[green]Configuration saved![/green]")
    console.print(f"  Refresh Interval: [cyan]{current_config.refresh_interval}s[/cyan]")
    console.print(f"  Debug Logging:    [cyan]{current_config.debug_logging}[/cyan]")
    console.print(f"  Embedded:         [cyan]{current_config.embedded}[/cyan]")
    console.print(f"\nSaved to: [dim]{CONFIG_FILE}[/dim]")


@main.command()
@click.option("--empty", is_flag=True, help="Start with no issues (shows the getting started guide)")
@click.option("--sync-prompt", is_flag=True, help="Show the sync prompt on start")
@click.pass_context
def demo(ctx: click.Context, empty: bool, sync_prompt: bool) -> None:
    """Run the monitor on a sample project held in memory.

    Nothing is written to a td project; UI state goes to a temporary
    directory that is removed on exit.

    Examples:
      td-monitor demo              # Sample issues, boards and activity
      td-monitor demo --empty      # Empty project
    """
    from .demo import DEMO_SESSION, seed_demo_store

    config: Config = ctx.obj["config"]
    setup_logging(config.debug_logging)

    store = MemoryStore()
    if not empty:
        seed_demo_store(store, DEMO_SESSION)
    if sync_prompt:
        store.request_sync_prompt()

    with tempfile.TemporaryDirectory(prefix="td-monitor-demo-") as tmp:
        run_monitor(build_app(Path(tmp), config, store, session_id=DEMO_SESSION))


if __name__ == "__main__":
    main()
