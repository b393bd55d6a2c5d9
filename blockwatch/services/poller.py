"""Repeating scheduler with stale-result suppression.

Each tick issues a new invocation with a higher sequence number. Ticks do
not wait for earlier invocations, so a slow call may still be pending when
the next one starts; whichever settles, only outcomes newer than the last
delivered one (and newer than the last stop/retarget) reach the subscriber.
"""

import asyncio
from typing import Awaitable, Callable, Generic, TypeVar

import structlog

from blockwatch.log import log_error
from blockwatch.models import ErrorInfo, Result

logger = structlog.get_logger()

T = TypeVar("T")

Operation = Callable[[], Awaitable[Result]]
Subscriber = Callable[[Result], None]


class Poller(Generic[T]):
    def __init__(self, operation: Operation, interval: float, subscriber: Subscriber, name: str = "") -> None:
        self.interval = interval
        self.name = name
        self._operation = operation
        self._subscriber = subscriber
        self._sequence = 0
        self._floor = 0
        self._timer: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None

    @property
    def sequence(self) -> int:
        return self._sequence

    def start(self) -> None:
        if self._timer is not None:
            return
        logger.debug("poller_started", poller=self.name, interval=self.interval)
        self._timer = asyncio.ensure_future(self._tick_forever())

    def stop(self) -> None:
        # Everything issued so far becomes stale; in-flight calls keep running.
        self._floor = self._sequence
        if self._timer is None:
            return
        timer, self._timer = self._timer, None
        timer.cancel()
        logger.debug("poller_stopped", poller=self.name, sequence=self._sequence)

    def retarget(self, operation: Operation) -> None:
        self.stop()
        self._operation = operation
        self.start()

    async def _tick_forever(self) -> None:
        while True:
            self._invoke()
            await asyncio.sleep(self.interval)

    def _invoke(self) -> None:
        self._sequence += 1
        task = asyncio.ensure_future(self._call(self._sequence, self._operation))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _call(self, sequence: int, operation: Operation) -> None:
        try:
            outcome = await operation()
        except Exception as exc:
            log_error(logger, exc, {"poller": self.name, "sequence": sequence})
            outcome = Result.failure(ErrorInfo(str(exc) or type(exc).__name__))
        self._publish(sequence, outcome)

    def _publish(self, sequence: int, outcome: Result) -> None:
        if self._timer is None or sequence <= self._floor:
            logger.debug("poll_result_dropped", poller=self.name, sequence=sequence, current=self._sequence)
            return
        self._floor = sequence
        if not outcome.ok:
            logger.info("poll_failed", poller=self.name, sequence=sequence, error=outcome.error.message)
        try:
            self._subscriber(outcome)
        except Exception:
            logger.exception("poll_subscriber_raised", poller=self.name, sequence=sequence)
