from dataclasses import dataclass
from typing import Callable

import structlog

from blockwatch.models import NotificationState, Severity

logger = structlog.get_logger()

_PRIORITY = {"error": 2, "info": 1}


@dataclass(frozen=True)
class SourceStatus:
    severity: Severity
    message: str
    order: int


class StatusAggregator:
    """Single notification derived from per-source reports.

    Errors win over info; among equal severities the most recent report is
    shown. Clearing one source never hides another source's error.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceStatus] = {}
        self._counter = 0
        self._state = NotificationState()
        self._subscribers: list[Callable[[NotificationState], None]] = []

    @property
    def state(self) -> NotificationState:
        return NotificationState(self._state.active, self._state.severity, self._state.message)

    def subscribe(self, callback: Callable[[NotificationState], None]) -> None:
        self._subscribers.append(callback)

    def source_state(self, source: str) -> SourceStatus | None:
        return self._sources.get(source)

    def notify(self, source: str, severity: Severity, message: str) -> None:
        if severity not in _PRIORITY:
            raise ValueError(f"unknown severity: {severity}")
        self._counter += 1
        self._sources[source] = SourceStatus(severity, message, self._counter)
        if severity == "error":
            logger.warning("status_raised", source=source, message=message)
        self._recompute()

    def clear(self, source: str) -> None:
        if self._sources.pop(source, None) is None:
            return
        logger.debug("status_cleared", source=source)
        self._recompute()

    def _recompute(self) -> None:
        if self._sources:
            top = max(self._sources.values(), key=lambda s: (_PRIORITY[s.severity], s.order))
            self._state = NotificationState(True, top.severity, top.message)
        else:
            self._state = NotificationState(False, self._state.severity, self._state.message)
        for callback in list(self._subscribers):
            callback(self.state)
