"""
The installer pipeline: step registration, the per-run context handed to each
step, and the driver that runs steps in order and stops at the first fatal one.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .config import LOGGER_NAME, InstallerConfig
from .host import HostIdentity
from .prompts import Prompter
from .runner import CommandRunner
from .ui import InstallerUI

logger = logging.getLogger(LOGGER_NAME)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class StepStatus(str, Enum):
    OK = "OK"
    SKIPPED = "SKIPPED"
    FATAL = "FATAL"
    ABORTED = "ABORTED"  # operator chose to stop; not an error


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    message: str = ""

    @classmethod
    def ok(cls, message=""):
        return cls(StepStatus.OK, message)

    @classmethod
    def skipped(cls, message=""):
        return cls(StepStatus.SKIPPED, message)

    @classmethod
    def fatal(cls, message):
        return cls(StepStatus.FATAL, message)

    @classmethod
    def aborted(cls, message=""):
        return cls(StepStatus.ABORTED, message)


@dataclass
class InstallerContext:
    """State shared by the steps of one run."""

    config: InstallerConfig
    runner: CommandRunner
    prompter: Prompter
    ui: InstallerUI
    is_root: bool = False
    host: Optional[HostIdentity] = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)


# --- Installer Steps Definition ---
installer_steps = []


def installer_step(title):
    """Decorator to register a function as an installer step."""
    def decorator(func):
        logger.debug(f"Registering installer step: {title}")
        installer_steps.append({"title": title, "func": func})
        return func
    return decorator


@dataclass
class PipelineOutcome:
    exit_code: int
    completed: list = field(default_factory=list)
    failed_step: Optional[str] = None
    result: Optional[StepResult] = None


def run_pipeline(ctx: InstallerContext, steps=None) -> PipelineOutcome:
    """Runs the steps in order. Stops at the first FATAL or ABORTED result."""
    steps = installer_steps if steps is None else steps
    total_steps = len(steps)
    outcome = PipelineOutcome(exit_code=EXIT_SUCCESS)

    for i, step_info in enumerate(steps):
        step_title = step_info["title"]
        step_func = step_info["func"]
        step_number = i + 1

        ctx.ui.step_rule(step_title, step_number, total_steps)
        logger.info(f"Starting step ({step_number}/{total_steps}): {step_title}")

        try:
            result = step_func(ctx)
        except Exception as step_exception:
            logger.exception(f"Critical error occurred within step: {step_title}")
            ctx.ui.console.print_exception(show_locals=False, word_wrap=True)
            result = StepResult.fatal(f"Unexpected error: {step_exception}")

        outcome.result = result

        if result.status is StepStatus.FATAL:
            ctx.ui.error(result.message)
            ctx.ui.failure_panel(step_title, result.message, ctx.config.log_file)
            logger.critical(f"Failed step: {step_title}. Aborting installation.")
            outcome.failed_step = step_title
            outcome.exit_code = EXIT_FAILURE
            return outcome

        if result.status is StepStatus.ABORTED:
            ctx.ui.info(result.message or "Stopping the installer")
            logger.warning(f"Installation stopped by operator during step: {step_title}")
            outcome.failed_step = step_title
            return outcome

        outcome.completed.append(step_title)
        logger.info(f"Completed step: {step_title} ({result.status.value})")
        ctx.ui.step_rule(step_title, step_number, total_steps, finished=True)

    return outcome
