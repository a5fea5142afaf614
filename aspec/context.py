"""
Run context shared by the components of a single extraction invocation.
"""

import logging
import threading
from typing import Optional
from dataclasses import dataclass, field

from .errors import ExtractionCancelled


@dataclass
class RunContext:
    """
    Capabilities injected into each component for one invocation.

    Holds the logger components write to and the cooperative cancellation
    signal that is checked before every provider call. Nothing in here is
    shared across invocations.
    """

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("aspec"))
    cancel_event: threading.Event = field(default_factory=threading.Event)
    parent: Optional["RunContext"] = field(default=None, repr=False)

    def cancel(self) -> None:
        """Request cancellation of the run."""
        self.cancel_event.set()

    def child(self) -> "RunContext":
        """
        Create a context for a sub-task of this run.

        The child is cancelled whenever this context is, but cancelling the
        child leaves this context untouched.
        """
        return RunContext(logger=self.logger, parent=self)

    @property
    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.parent is not None and self.parent.cancelled

    def check_cancelled(self, where: str = "") -> None:
        """
        Raise if the caller has asked to cancel.

        Args:
            where: Short description of the step about to run, for the error message
        """
        if self.cancelled:
            message = "extraction cancelled"
            if where:
                message += f" before {where}"
            self.logger.warning(message)
            raise ExtractionCancelled(message)


def ensure_context(context: Optional[RunContext], logger: Optional[logging.Logger] = None) -> RunContext:
    """Return the given context, or a fresh one writing to the given module logger."""
    if context is not None:
        return context
    if logger is not None:
        return RunContext(logger=logger)
    return RunContext()
