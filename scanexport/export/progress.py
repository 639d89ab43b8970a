"""Ordered progress stream for a single export call."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from scanexport.core.models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Emit progress events that never move backwards and end exactly once.

    ``current`` is clamped to be non-decreasing and within ``total``. After a
    terminal event (completion or error) further updates are dropped until
    ``start`` is called again. ``reset`` returns the tracker to its idle state.
    """

    def __init__(self, listeners: Optional[List[ProgressListener]] = None) -> None:
        self._listeners: List[ProgressListener] = list(listeners or [])
        self.events: List[ProgressEvent] = []
        self.latest: Optional[ProgressEvent] = None
        self.total = 0
        self.is_active = False
        self._terminal = False

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self, total: int, status: str = "Starting export...") -> None:
        self.events = []
        self.latest = None
        self.total = max(int(total), 0)
        self.is_active = True
        self._terminal = False
        self._emit(ProgressEvent(current=0, total=self.total, status=status))

    def report(self, current: int, total: int, status: str) -> None:
        """Record a phase; ``current`` is rescaled when ``total`` differs from the export's."""

        if self._terminal:
            logger.debug("Dropping progress update after terminal event: %s", status)
            return
        if total and total != self.total:
            current = round(current / total * self.total)
        floor = self.latest.current if self.latest else 0
        current = min(max(int(current), floor), self.total)
        self._emit(ProgressEvent(current=current, total=self.total, status=status))

    def complete(self, status: str = "Export completed!") -> None:
        if self._terminal:
            return
        self._terminal = True
        self._emit(ProgressEvent(current=self.total, total=self.total, status=status, done=True))

    def fail(self, message: str) -> None:
        if self._terminal:
            return
        self._terminal = True
        self._emit(ProgressEvent(error=message))

    def reset(self) -> None:
        self.latest = None
        self.is_active = False

    def _emit(self, event: ProgressEvent) -> None:
        self.latest = event
        self.events.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Progress listener failed for %s", event)
