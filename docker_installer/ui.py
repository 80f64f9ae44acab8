"""
Console output for the installer: leveled status lines, banners, step rules and
the host summary table. Every status line is mirrored to the log file.
"""

import datetime
import logging
import os
import platform
from pathlib import Path

import psutil
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from .config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

LEVEL_STYLES = {
    "info": ("[INFO]", "bold blue", logging.INFO),
    "success": ("[SUCCESS]", "bold green", logging.INFO),
    "warning": ("[WARNING]", "bold yellow", logging.WARNING),
    "error": ("[ERROR]", "bold red", logging.ERROR),
}


class InstallerUI:
    """Thin wrapper around a rich Console so tests can capture everything printed."""

    def __init__(self, console=None):
        # Record=True allows saving console output as HTML after a failure
        self.console = console or Console(record=True, log_time_format="[%Y-%m-%d %H:%M:%S]")

    # --- Leveled status lines ---

    def _status(self, level, message):
        tag, style, log_level = LEVEL_STYLES[level]
        self.console.print(Text.assemble((tag, style), " ", message))
        logger.log(log_level, message)

    def info(self, message):
        self._status("info", message)

    def success(self, message):
        self._status("success", message)

    def warning(self, message):
        self._status("warning", message)

    def error(self, message):
        self._status("error", message)

    # --- Structure ---

    def banner(self, title, subtitle=None, style="blue"):
        self.console.print(Panel(
            Text(title, justify="center", style=f"bold {style}"),
            subtitle=subtitle,
            border_style=style,
            expand=False,
        ))

    def step_rule(self, title, number, total, finished=False):
        if finished:
            self.console.print(Rule(f"[bold green]Finished: {title}[/bold green]"))
        else:
            self.console.print(Rule(f"[bold cyan]Starting: {title}[/bold cyan] ({number}/{total})"))

    def failure_panel(self, step_title, message, log_file=None):
        body = f"[bold red]Error during step: '{step_title}'.[/bold red]\n{escape(message)}\nInstallation cannot continue."
        if log_file:
            body += f"\nPlease check the output above and logs for details:\n[dim]{log_file}[/dim]"
        self.console.print(Panel(body, title="Installation Failed", border_style="red", expand=False))

    def command_line(self, description, cmd_display):
        """Logs a command about to run, dimmed, with a timestamp."""
        self.console.log(f"{escape(description)}: [dim]{escape(cmd_display)}[/dim]")

    def file_preview(self, path, content):
        """Shows file content before it is written."""
        path = Path(path)
        syntax = Syntax(content, "text", theme="default", line_numbers=True, word_wrap=False)
        self.console.print(Panel(syntax, title=f"Content for {path.name}", border_style="dim"))

    def status(self, message):
        """Spinner context manager for long-running commands."""
        return self.console.status(f"[bold cyan]{message}", spinner="dots")

    def host_summary(self, host):
        """Prints a table describing the machine the engine is about to be installed on."""
        table = Table(title="System Information", show_header=True, header_style="bold magenta")
        table.add_column("Component", style="cyan", width=20)
        table.add_column("Details", style="yellow")

        memory = psutil.virtual_memory()
        disk = psutil.disk_usage("/")
        gib = 1024 ** 3

        rows = [
            ("Distribution", f"{host.name} {host.version_id}".strip()),
            ("Architecture", platform.machine()),
            ("Kernel", platform.release()),
            ("CPU Cores", f"{psutil.cpu_count(logical=True)} logical"),
            ("Memory", f"{memory.total // gib} GB total, {memory.available // gib} GB available"),
            ("Disk Space", f"{disk.free // gib} GB free of {disk.total // gib} GB"),
            ("Effective UID", str(os.geteuid())),
        ]
        for component, details in rows:
            table.add_row(component, details)
        self.console.print(table)
        logger.debug(f"Host summary: {rows}")

    def save_html(self, log_file):
        """Saves the recorded console next to the log file. Returns the path or None."""
        if not self.console.record:
            logger.debug("Console is not recording; no HTML copy saved")
            return None
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        target_dir = Path(log_file).parent if log_file else Path.cwd()
        html_log = target_dir / f"installer_error_console_{timestamp}.html"
        try:
            self.console.save_html(str(html_log))
        except OSError as save_err:
            logger.warning(f"Could not save console HTML log on failure: {save_err}")
            return None
        return html_log
