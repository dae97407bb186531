"""CLI commands for acron."""

import asyncio
import signal
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from acron import __logo__, __version__

app = typer.Typer(
    name="acron",
    help=f"{__logo__} acron - periodic job runner",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} acron v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """acron - periodic job runner."""
    pass


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _load_or_exit(config_path: Path):
    from acron.config.loader import ConfigError, load_config

    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    config_path: Path = typer.Option(Path("acron.yml"), "--config", "-c", help="Config file"),
    dashboard: bool = typer.Option(True, "--dashboard/--no-dashboard", help="Serve the web dashboard"),
    host: str = typer.Option("127.0.0.1", "--host", help="Dashboard host"),
    port: int = typer.Option(8080, "--port", "-p", help="Dashboard port"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Run the scheduler (and dashboard) until interrupted."""
    from acron.cron.service import Scheduler
    from acron.runlog import RunLog

    _configure_logging(verbose)
    logger.info("Using configuration {}", config_path)
    config = _load_or_exit(config_path)

    run_log = RunLog.open(config.log_file)
    scheduler = Scheduler(
        config.definitions(),
        run_log=run_log,
        history_limit=config.history_limit,
        max_concurrency=config.max_concurrency,
    )
    tick_interval = config.tick_interval()

    console.print(f"{__logo__} Starting acron with {len(scheduler.jobs)} job(s), tick every {tick_interval:g}s")

    server = None
    if dashboard:
        import uvicorn

        from acron.dashboard.app import create_app

        server = uvicorn.Server(
            uvicorn.Config(create_app(scheduler, config), host=host, port=port, log_level="info")
        )
        console.print(f"[green]✓[/green] Dashboard on http://{host}:{port}/")

    async def _run():
        await scheduler.start(tick_interval)
        try:
            if server is not None:
                await server.serve()
            else:
                await asyncio.Event().wait()
        finally:
            await scheduler.stop()
            run_log.close()

    previous_sigterm = signal.getsignal(signal.SIGTERM)

    def _sigterm_as_keyboard_interrupt(_signum, _frame) -> None:
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _sigterm_as_keyboard_interrupt)
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)


# ============================================================================
# Check
# ============================================================================


@app.command()
def check(
    config_path: Path = typer.Option(Path("acron.yml"), "--config", "-c", help="Config file"),
):
    """Validate a config file and list its jobs."""
    from acron.cron.duration import parse_duration

    config = _load_or_exit(config_path)

    if not config.jobs:
        console.print("No jobs configured.")
        return

    table = Table(title="Jobs")
    table.add_column("#", style="cyan")
    table.add_column("Name")
    table.add_column("Command")
    table.add_column("Rate")
    table.add_column("Startup Delay")
    table.add_column("Status")

    problems = 0
    for index, job in enumerate(config.jobs):
        notes = []
        for label, value in (("rate", job.rate), ("startup_delay", job.startup_delay), ("timeout", job.timeout)):
            if not value:
                continue
            try:
                parse_duration(value)
            except ValueError as e:
                notes.append(f"{label}: {e}")
        if not job.command:
            notes.append("missing command")
        problems += len(notes)

        if notes:
            status = f"[yellow]{'; '.join(notes)}[/yellow]"
        elif job.disabled:
            status = "[dim]disabled[/dim]"
        else:
            status = "[green]enabled[/green]"

        table.add_row(
            str(index),
            job.name or job.command,
            " ".join([job.command, *job.args]),
            job.rate or "every tick",
            job.startup_delay or "",
            status,
        )

    console.print(table)
    if problems:
        console.print(f"[yellow]{problems} problem(s) found; affected fields fall back to defaults.[/yellow]")
