"""Command line entry point: argument parsing, logging setup and the run summary."""

import argparse
import datetime
import logging
import os
import sys
import tempfile
from pathlib import Path

from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from . import __version__
from . import steps  # noqa: F401  (registers the installer steps)
from .config import LOG_DIR, LOG_FILE_PREFIX, LOGGER_NAME, InstallerConfig
from .pipeline import EXIT_SUCCESS, InstallerContext, installer_steps, run_pipeline
from .prompts import AutoPrompter, ConsolePrompter
from .runner import CommandRunner
from .ui import InstallerUI

logger = logging.getLogger(LOGGER_NAME)

EXIT_INTERRUPTED = 130
EXIT_CRASHED = 2


class InstallerError(Exception):
    """Problem detected before the pipeline starts."""


def build_parser():
    parser = argparse.ArgumentParser(
        prog="docker-installer",
        description="Installs and configures Docker Engine on Ubuntu and Pop!_OS.",
    )
    parser.add_argument(
        "--non-interactive", "-y",
        action="store_true",
        help="Run in non-interactive mode, assuming yes to confirmations (use with caution!).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Where to write the detailed log (default: a timestamped file under /var/log).",
    )
    parser.add_argument(
        "--service-timeout",
        type=float,
        help="Seconds to wait for the Docker service to become active (0 = check once).",
    )
    parser.add_argument(
        "--skip-smoke-test",
        action="store_true",
        help="Do not offer to run the hello-world test.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def default_log_file(now=None):
    """Timestamped log file under /var/log, or the temp dir when that is not writable."""
    now = now or datetime.datetime.now()
    name = f"{LOG_FILE_PREFIX}_{now.strftime('%Y%m%d_%H%M%S')}.log"
    log_dir = LOG_DIR if os.access(LOG_DIR, os.W_OK) else Path(tempfile.gettempdir())
    return log_dir / name


def setup_logging(log_file):
    """Sends DEBUG and above to the log file, overwriting it."""
    log_file = Path(log_file)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise InstallerError(f"Cannot create log directory {log_file.parent}: {e}") from e
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        filename=str(log_file),
        filemode="w",
        force=True,
    )


def config_from_args(args):
    if args.service_timeout is not None and args.service_timeout < 0:
        raise InstallerError("--service-timeout must not be negative")
    return InstallerConfig().with_overrides(
        log_file=args.log_file or default_log_file(),
        service_timeout=args.service_timeout,
        non_interactive=args.non_interactive,
        skip_smoke_test=args.skip_smoke_test,
    )


def print_summary(ui, config, started):
    duration = datetime.datetime.now() - started
    ui.console.print(Panel(
        Text("Installation completed successfully!", justify="center", style="bold green"),
        title="Finished!",
        subtitle=f"Duration: {str(duration).split('.')[0]}",
        border_style="green",
        expand=False,
    ))
    ui.success("Docker is now installed and working")
    ui.console.print(Rule("[bold yellow]Useful commands[/bold yellow]"))
    width = max(len(cmd) for cmd, _ in config.useful_commands)
    for cmd, what in config.useful_commands:
        ui.console.print(f"  [white on black] {cmd.ljust(width)} [/white on black]  [dim]# {what}[/dim]")
    ui.console.print()
    ui.info(f"Documentation: {config.docs_url}")
    if config.log_file:
        ui.console.print(f"Installation log: [dim]{config.log_file}[/dim]")


def run(config, ui, is_root=None):
    """Builds the context and runs every registered step. Returns the exit code."""
    is_root = os.geteuid() == 0 if is_root is None else is_root
    prompter = AutoPrompter() if config.non_interactive else ConsolePrompter(ui.console)
    ctx = InstallerContext(
        config=config,
        runner=CommandRunner(ui, use_sudo=not is_root),
        prompter=prompter,
        ui=ui,
        is_root=is_root,
    )

    started = datetime.datetime.now()
    ui.banner("Smart Docker Installation", subtitle=f"Started: {started.strftime('%Y-%m-%d %H:%M:%S')}")
    if config.log_file:
        ui.console.print(f"Logging detailed output to: [dim]{config.log_file}[/dim]")
    logger.info(f"Installer started at {started}, effective UID {os.geteuid()}")
    logger.info(f"Configuration: {config}")
    if config.non_interactive:
        ui.warning("Running in non-interactive mode: every prompt is answered 'yes'")

    outcome = run_pipeline(ctx, installer_steps)
    if outcome.exit_code != EXIT_SUCCESS:
        html_log = ui.save_html(config.log_file)
        if html_log:
            ui.console.print(f"\n[yellow]Tip:[/yellow] Console output saved to [dim]'{html_log}'[/dim] for review.")
        return outcome.exit_code
    if outcome.failed_step is None:
        print_summary(ui, config, started)
        logger.info("Installation completed successfully")
    return EXIT_SUCCESS


def main(argv=None):
    args = build_parser().parse_args(argv)
    ui = InstallerUI()
    try:
        config = config_from_args(args)
        setup_logging(config.log_file)
        logger.info(f"Command line arguments: {sys.argv}")
        return run(config, ui)
    except InstallerError as e:
        ui.error(str(e))
        return 1
    except KeyboardInterrupt:
        ui.console.print("\n[bold yellow]Installation interrupted by user (Ctrl+C).[/bold yellow]")
        logger.warning("Installation interrupted by user (KeyboardInterrupt).")
        return EXIT_INTERRUPTED
    except Exception:
        ui.console.print("\n[bold red]An unexpected critical error occurred outside of step execution:[/bold red]")
        logger.critical("Unexpected critical error during main execution.", exc_info=True)
        ui.console.print_exception(show_locals=False, word_wrap=True)
        return EXIT_CRASHED
