"""Progress and diagnostic reporting for unfolding runs."""
from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class UnfoldObserver:
    """
    Receives notifications from a solve.

    Subclass and override the hooks of interest; the base implementation
    ignores every event.
    """

    def on_start(self, name: str, **info: Any) -> None:
        """Called before any numerical work of ``name`` begins."""

    def on_complete(self, name: str, **info: Any) -> None:
        """Called once ``name`` produced its result."""

    def on_warn(self, name: str, message: str) -> None:
        """Called for non-fatal problems such as optimizer non-convergence."""


class NullObserver(UnfoldObserver):
    """Observer that discards all events."""


class LoggingObserver(UnfoldObserver):
    """
    Observer that forwards events to the :mod:`logging` module.

    Parameters
    ----------
    log : logging.Logger, optional
        Target logger, default: the ``statunfold.observers`` logger.
    """

    def __init__(self, log: logging.Logger | None = None):
        self.log = log if log is not None else logger

    def on_start(self, name: str, **info: Any) -> None:
        self.log.info("Starting %s...", name)
        if info:
            self.log.debug("%s parameters: %s", name, info)

    def on_complete(self, name: str, **info: Any) -> None:
        self.log.info("Ending %s...", name)
        if info:
            self.log.debug("%s result: %s", name, info)

    def on_warn(self, name: str, message: str) -> None:
        self.log.warning("%s: %s", name, message)
