import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from .errors import JobAbortedError

logger = logging.getLogger(__name__)

MISSING_PARENT_LOOKUPS = "missing_parent_lookups"
CSV_ISSUES = "csv_issues"


class Prompter(ABC):
    @abstractmethod
    def ask_continue(self, reason: str, message: str) -> bool:
        """Return True to continue the job, False to abort it."""


class ConsolePrompter(Prompter):
    """Asks on stdin; anything but yes aborts."""

    def __init__(self, input_func: Optional[Callable[[str], str]] = None) -> None:
        self._input = input_func or input

    def ask_continue(self, reason: str, message: str) -> bool:
        answer = self._input(f"{message}\nContinue the job? (y/n) ")
        return answer.strip().lower() in ("y", "yes")


class StaticPrompter(Prompter):
    """Gives the same answer every time; keeps track of what was asked."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.asked: List[Tuple[str, str]] = []

    def ask_continue(self, reason: str, message: str) -> bool:
        self.asked.append((reason, message))
        return self.answer


def abort_with_prompt(prompter: Prompter, enabled: bool, reason: str, message: str,
                      on_abort: Optional[Callable[[], None]] = None) -> None:
    """
    Ask whether to go on. A negative answer runs ``on_abort`` (to save the
    reports collected so far) and raises :class:`JobAbortedError`. When
    prompting is disabled the message is only logged.
    """
    if not enabled:
        logger.warning(message)
        return
    if prompter.ask_continue(reason, message):
        return
    if on_abort is not None:
        on_abort()
    raise JobAbortedError(reason)
