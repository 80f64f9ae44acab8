"""
Command execution for the installer.

Every external tool goes through `CommandRunner.run`, which never raises on a
failing command: it returns a `CommandResult` and leaves the fatal-or-advisory
decision to the caller.
"""

import logging
import os
import shlex
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from rich.markup import escape

from .config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = 124


@dataclass(frozen=True)
class CommandResult:
    args: Tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(arg)) for arg in command)


class CommandRunner:
    """
    Runs commands, escalating with sudo when asked to and when the process is
    not already root.
    """

    def __init__(self, ui, use_sudo: bool = True):
        self.ui = ui
        self.use_sudo = use_sudo

    def build_command(self, command: Sequence[str], sudo: bool = False,
                      env: Optional[Dict[str, str]] = None) -> list:
        cmd = [str(arg) for arg in command]
        if sudo and self.use_sudo:
            # sudo resets the environment, so extra variables go through env(1)
            prefix = ["sudo"]
            if env:
                prefix += ["env"] + [f"{k}={v}" for k, v in env.items()]
            return prefix + cmd
        return cmd

    def run(self, command: Sequence[str], description: str = "Running command", *,
            sudo: bool = False, input: Optional[str] = None,
            env: Optional[Dict[str, str]] = None, capture_output: bool = True,
            timeout: Optional[float] = None, show_output: bool = False,
            quiet: bool = False) -> CommandResult:
        """
        Runs a command and returns its outcome. Missing executables and
        timeouts are reported as results (127 and 124), not exceptions.

        `quiet` is for queries where a non-zero exit is an answer, not a
        failure: it is logged at DEBUG and stderr is not echoed.
        """
        cmd_to_run = self.build_command(command, sudo=sudo, env=env)
        cmd_str_display = format_command(cmd_to_run)

        logger.info(f"Executing: {cmd_str_display}")
        self.ui.command_line(description, cmd_str_display)

        full_env = None
        if env and not (sudo and self.use_sudo):
            full_env = os.environ.copy()
            full_env.update(env)

        result = self._execute(cmd_to_run, input=input, env=full_env,
                               capture_output=capture_output, timeout=timeout)

        logger.debug(f"Return Code: {result.returncode}")
        if result.stdout: logger.debug(f"Stdout:\n{result.stdout.strip()}")
        if result.stderr: logger.debug(f"Stderr:\n{result.stderr.strip()}")

        if show_output and result.stdout:
            self.ui.console.print(f"[dim]{escape(result.stdout.strip())}[/dim]")

        if not result.ok and quiet:
            logger.debug(f"Query returned {result.returncode}: {cmd_str_display}")
        elif not result.ok:
            logger.warning(f"Command failed with return code {result.returncode}: {cmd_str_display}")
            if result.stderr:
                self.ui.console.print(f"[yellow]Stderr:[/yellow] {escape(result.stderr.strip())}", highlight=False)
        return result

    def _execute(self, cmd_to_run, input=None, env=None, capture_output=True, timeout=None) -> CommandResult:
        args = tuple(cmd_to_run)
        try:
            completed = subprocess.run(
                cmd_to_run,
                check=False,
                capture_output=capture_output,
                text=True,
                input=input,
                env=env,
                timeout=timeout,
            )
        except FileNotFoundError:
            logger.error(f"Command executable not found: '{cmd_to_run[0]}'")
            return CommandResult(args, COMMAND_NOT_FOUND, "", f"{cmd_to_run[0]}: command not found")
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {timeout} seconds: {format_command(cmd_to_run)}")
            return CommandResult(args, COMMAND_TIMED_OUT, "", f"timed out after {timeout} seconds")
        return CommandResult(args, completed.returncode, completed.stdout or "", completed.stderr or "")

    # --- Privileged filesystem helpers ---

    def make_dir(self, path: Path, mode: int = 0o755) -> CommandResult:
        """Creates a directory with the given mode, like `install -m MODE -d`."""
        path = Path(path)
        if self.use_sudo:
            return self.run(["install", "-m", format(mode, "04o"), "-d", str(path)],
                            f"Creating directory {path}", sudo=True)
        try:
            path.mkdir(mode=mode, parents=True, exist_ok=True)
            os.chmod(path, mode)
        except OSError as e:
            logger.error(f"Failed creating directory {path}: {e}")
            return CommandResult(("mkdir", str(path)), 1, "", str(e))
        logger.debug(f"Ensured directory exists: {path}")
        return CommandResult(("mkdir", str(path)), 0)

    def make_world_readable(self, path: Path) -> CommandResult:
        """Adds read permission for everyone, like `chmod a+r`."""
        path = Path(path)
        if self.use_sudo:
            return self.run(["chmod", "a+r", str(path)], f"Making {path.name} world-readable", sudo=True)
        try:
            current = path.stat().st_mode
            os.chmod(path, stat.S_IMODE(current) | 0o444)
        except OSError as e:
            logger.error(f"Failed setting permissions on {path}: {e}")
            return CommandResult(("chmod", "a+r", str(path)), 1, "", str(e))
        logger.info(f"Made {path} world-readable")
        return CommandResult(("chmod", "a+r", str(path)), 0)

    def write_file(self, path: Path, content: str, permissions: str = "0644",
                   show_content: bool = True) -> CommandResult:
        """
        Writes content to a root-owned file. Goes through `sudo tee` when not
        running as root, otherwise writes directly.
        """
        path = Path(path)
        logger.info(f"Attempting to write file: {path}")
        if show_content:
            self.ui.file_preview(path, content)

        if self.use_sudo:
            result = self.run(["tee", str(path)], f"Writing {path}", sudo=True, input=content)
            if not result.ok:
                return result
            return self.run(["chmod", permissions, str(path)], f"Setting permissions on {path.name}", sudo=True)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            os.chmod(path, int(permissions, 8))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write or configure file {path}: {e}")
            return CommandResult(("write", str(path)), 1, "", str(e))
        logger.info(f"Successfully wrote content to {path}")
        self.ui.console.log(f"[green]✓[/green] File written: [cyan]{path}[/cyan]")
        return CommandResult(("write", str(path)), 0)
