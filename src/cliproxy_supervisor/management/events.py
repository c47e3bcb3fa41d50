"""Lifecycle and log events emitted while supervising a proxy process."""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Deque, List, Optional, Union

import structlog

logger = structlog.get_logger(__name__)


class LifecycleState(str, Enum):
    """Lifecycle states of a supervised process."""

    STARTING = "starting"
    READY = "ready"
    EXITED = "exited"


@dataclass(frozen=True)
class LogLine:
    """One line of child process output."""

    source: str
    text: str


@dataclass(frozen=True)
class StatusEvent:
    """A lifecycle transition; exit_code is set only for EXITED."""

    state: LifecycleState
    exit_code: Optional[int] = None
    timestamp: float = field(default_factory=time.time)


Event = Union[StatusEvent, LogLine]
StatusCallback = Callable[[LifecycleState, Optional[int]], None]
LogConsumer = Callable[[LogLine], None]


DEFAULT_HISTORY_LIMIT = 1000


class EventChannel:
    """Ordered record of status and log events for one supervised run.

    Events are kept in ``history`` and can be consumed once, in order, with
    ``async for``. Iteration ends after the channel is closed, which the
    lifecycle controller does right after publishing EXITED. Registered
    callbacks are invoked synchronously; their failures are logged and
    ignored.

    Only the most recent ``history_limit`` events are retained, both in
    ``history`` and for iteration; older ones are dropped. Status events are
    additionally kept in full, so ``states()`` always reports every
    transition of the run.
    """

    def __init__(
        self,
        on_status: Optional[StatusCallback] = None,
        log_consumer: Optional[LogConsumer] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.history_limit = history_limit
        self._history: Deque[Event] = deque(maxlen=history_limit)
        self._statuses: List[StatusEvent] = []
        self._queue: "asyncio.Queue[Optional[Event]]" = asyncio.Queue()
        self._dropped = 0
        self._status_listeners: List[StatusCallback] = []
        self._log_listeners: List[LogConsumer] = []
        self._closed = False
        if on_status is not None:
            self.add_status_listener(on_status)
        if log_consumer is not None:
            self.add_log_listener(log_consumer)

    @property
    def closed(self) -> bool:
        """Whether the terminal event has been published."""
        return self._closed

    @property
    def history(self) -> List[Event]:
        """The most recent events, in order."""
        return list(self._history)

    @property
    def pending(self) -> int:
        """Number of events waiting to be consumed by iteration."""
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        """Number of events discarded before an iterator consumed them."""
        return self._dropped

    def add_status_listener(self, callback: StatusCallback) -> None:
        self._status_listeners.append(callback)

    def add_log_listener(self, callback: LogConsumer) -> None:
        self._log_listeners.append(callback)

    def states(self) -> List[LifecycleState]:
        """Lifecycle states published so far."""
        return [e.state for e in self._statuses]

    def status_events(self) -> List[StatusEvent]:
        return list(self._statuses)

    def log_lines(self, source: Optional[str] = None) -> List[LogLine]:
        """Retained log lines, optionally filtered by source."""
        return [
            e
            for e in self._history
            if isinstance(e, LogLine) and (source is None or e.source == source)
        ]

    def publish_status(
        self, state: LifecycleState, exit_code: Optional[int] = None
    ) -> StatusEvent:
        """Record a lifecycle transition and notify status listeners."""
        event = StatusEvent(state=state, exit_code=exit_code)
        self._statuses.append(event)
        self._record(event)
        for callback in self._status_listeners:
            try:
                callback(state, exit_code)
            except Exception as e:
                logger.warning(
                    "Status listener failed", state=state.value, error=str(e)
                )
        return event

    def publish_log(self, line: LogLine) -> None:
        """Record a line of process output and notify log listeners."""
        self._record(line)
        for callback in self._log_listeners:
            try:
                callback(line)
            except Exception as e:
                logger.warning(
                    "Log consumer failed", source=line.source, error=str(e)
                )

    def close(self) -> None:
        """Mark the channel complete; pending iterators finish."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def _record(self, event: Event) -> None:
        self._history.append(event)
        if self._closed:
            return
        if self._queue.qsize() >= self.history_limit:
            self._queue.get_nowait()
            self._dropped += 1
            if self._dropped == 1:
                logger.debug(
                    "Event backlog full, dropping oldest events",
                    limit=self.history_limit,
                )
        self._queue.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
