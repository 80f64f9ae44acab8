"""
Operator prompts. Steps only see the `Prompter` protocol so a run can be
answered from the terminal, answered automatically, or scripted in tests.

Answers are accepted in English or French.
"""

import logging
from typing import Optional, Protocol

from rich.markup import escape
from rich.prompt import Prompt

from .config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

AFFIRMATIVE = frozenset({"yes", "y", "oui", "o"})
NEGATIVE = frozenset({"no", "n", "non"})


class Prompter(Protocol):
    def ask(self, question: str) -> str:
        ...


class ConsolePrompter:
    """Reads answers from the terminal through rich."""

    def __init__(self, console=None):
        self.console = console

    def ask(self, question: str) -> str:
        return Prompt.ask(escape(question), console=self.console, default="", show_default=False)


class AutoPrompter:
    """Answers every question with the same reply (used by --non-interactive)."""

    def __init__(self, reply: str = "yes"):
        self.reply = reply

    def ask(self, question: str) -> str:
        logger.info(f"Non-interactive answer '{self.reply}' to: {question}")
        return self.reply


def parse_answer(text: Optional[str]) -> Optional[bool]:
    """True for a yes, False for a no, None for anything else."""
    if text is None:
        return None
    answer = text.strip().lower()
    if answer in AFFIRMATIVE:
        return True
    if answer in NEGATIVE:
        return False
    return None


def confirm(prompter: Prompter, question: str, default: bool) -> bool:
    """
    Asks once. Only the answer opposite to the default changes the outcome;
    an empty or unrecognised answer keeps the default.
    """
    hint = "[Y/n]" if default else "[y/N]"
    reply = prompter.ask(f"{question} {hint}")
    decision = parse_answer(reply)
    logger.debug(f"Prompt '{question}' answered {reply!r} -> {decision}")
    return default if decision is None else decision


def ask_until_answered(prompter: Prompter, question: str, on_invalid=None) -> bool:
    """Asks until the reply is a recognised yes or no."""
    while True:
        reply = prompter.ask(f"{question} (yes/no)")
        decision = parse_answer(reply)
        if decision is not None:
            return decision
        logger.debug(f"Unrecognised answer {reply!r} to '{question}'")
        if on_invalid:
            on_invalid(reply)
