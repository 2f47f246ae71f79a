import asyncio
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from keystone.constants import VERSION
from keystone.engine import Engine
from keystone.errors import KeystoneError
from keystone.usecase import ConfigLoader
from keystone.util.logging import configure_logging
from keystone.util.shutdown_coordinator import ShutdownCoordinator

# Create Typer app
app = typer.Typer(
    help="keystone CLI - build, inspect and run engines from YAML configuration.",
    add_completion=False,
)

# Console for rich output
console = Console()

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Enum for log levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def print_styled(
    message: str, style: str = "green", bold: bool = False, panel: bool = False
):
    """Print styled message using Rich"""
    text = Text(message)
    text.stylize(style)
    if bold:
        text.stylize("bold")

    if panel:
        console.print(Panel(text))
    else:
        console.print(text)


@app.command("run")
def run_command(
    config: Path = typer.Argument(..., help="Path to the engine YAML configuration"),
    log_level: Optional[LogLevel] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (defaults to KEYSTONE_LOG_LEVEL or the settings file)",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Dispose the engine after this many seconds instead of waiting for Ctrl+C",
    ),
):
    """Initialise an engine from a configuration file and run until interrupted."""
    configure_logging(log_level=log_level.value if log_level else None)
    logger.info(f"Starting keystone with configuration: {config}")

    options = ConfigLoader().load(str(config))
    if options is None:
        print_styled(f"Could not load configuration '{config}'", style="red", bold=True)
        raise typer.Exit(code=1)

    async def run_engine() -> bool:
        # built inside the loop so auto_start can schedule itself
        engine = Engine(options)
        coordinator = ShutdownCoordinator(engine)
        coordinator.register_signal_handlers()

        if engine.autostart_task is not None:
            await engine.autostart_task
        else:
            await engine.init()

        print_styled(
            f"Engine running with {len(engine.registry.service_ids())} services. "
            "Press Ctrl+C to stop.",
            style="blue",
            bold=True,
            panel=True,
        )
        await coordinator.wait_for_shutdown(timeout)
        return await coordinator.shutdown_application()

    try:
        result = asyncio.run(run_engine())
    except KeystoneError as e:
        logger.error(f"Error running engine: {e}")
        print_styled(f"Error: {e}", style="red", bold=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        raise typer.Exit(code=0)

    if not result:
        logger.error("Engine did not shut down cleanly")
        raise typer.Exit(code=1)


@app.command("check")
def check_command(
    config: Path = typer.Argument(..., help="Path to the engine YAML configuration"),
):
    """Build an engine without initialising it and show its services and plugins."""
    options = ConfigLoader().load(str(config))
    if options is None:
        print_styled(f"Could not load configuration '{config}'", style="red", bold=True)
        raise typer.Exit(code=1)

    try:
        engine = Engine(options)
        order = engine.registry.resolve_order()
    except KeystoneError as e:
        print_styled(f"Invalid configuration: {e}", style="red", bold=True)
        raise typer.Exit(code=1)

    runtime = engine.options.options
    print_styled(
        f"Engine configuration OK (performance={runtime.performance.value}, "
        f"lifecycle={runtime.lifecycle.value}, debug={runtime.debug})",
        style="green",
        bold=True,
    )

    table = Table(title="Services (init order)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Service", style="cyan")
    table.add_column("Depends on")
    for index, service_id in enumerate(order, start=1):
        dependencies = engine.registry.dependencies_of(service_id)
        table.add_row(
            str(index),
            str(service_id),
            ", ".join(str(d) for d in dependencies) or "-",
        )
    console.print(table)

    plugins = engine.plugins.names()
    if plugins:
        console.print(f"Plugins ({len(plugins)}):")
        for name in plugins:
            console.print(f"   - {name}")
    else:
        console.print("No plugins installed.")


@app.command("version")
def version_command():
    """Display the keystone version."""
    console.print(f"keystone version: {VERSION}", style="green bold")


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        print_styled("Process interrupted by user. Exiting...", style="red", bold=True)
        sys.exit(0)


if __name__ == "__main__":
    main()
