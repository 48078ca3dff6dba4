"""Run event hub.

The runtime reports progress through an explicit :class:`Publisher` passed to
the orchestrator and the stage executor.  Publishing is fire-and-forget: it
never blocks the pipeline and never raises.  :class:`QueuePublisher` buffers
events in a bounded ``asyncio.Queue`` and a background consumer hands them to
a sink (the log by default).  When the queue is full, new events are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Protocol, Self, runtime_checkable

from loguru import logger

from agentloop.agent_runtime.models.events import RunEvent

type EventSink = Callable[[RunEvent], None]


@runtime_checkable
class Publisher(Protocol):
    """Fire-and-forget progress emission."""

    def publish(self, event: RunEvent) -> None:
        """Emit *event*.  Must not block and must not raise."""
        ...


class NullPublisher:
    """Publisher that discards every event."""

    def publish(self, event: RunEvent) -> None:
        return None


def log_event(event: RunEvent) -> None:
    """Default sink: log the message with the event type and input label bound.

    ``log.format_record`` renders bound records as ``<event> [<label>] - <message>``.
    """
    logger.bind(event=event.event_type.value, label=event.label or "").info("{}", event.message)


class QueuePublisher:
    """Bounded-queue publisher drained by a background consumer task.

    Use as an async context manager around the run::

        async with QueuePublisher(maxsize=100) as publisher:
            await run_command_agent(..., services=RunServices(publisher=publisher))

    On exit the remaining buffered events are delivered before the consumer
    stops.
    """

    def __init__(self, maxsize: int = 100, sink: EventSink | None = None) -> None:
        self._queue: asyncio.Queue[RunEvent] = asyncio.Queue(maxsize=maxsize)
        self._sink: EventSink = sink or log_event
        self._consumer: asyncio.Task[None] | None = None
        self._dropped = 0

    # -- Publishing ------------------------------------------------------------

    def publish(self, event: RunEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1

    @property
    def dropped_count(self) -> int:
        """Number of events dropped because the queue was full."""
        return self._dropped

    # -- Consumer --------------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._sink(event)
            except Exception:
                logger.exception("Event sink failed for {}", event.event_type)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume(), name="agentloop-event-consumer")

    async def aclose(self) -> None:
        """Deliver buffered events, then stop the consumer."""
        if self._consumer is None:
            return
        await self._queue.join()
        self._consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._consumer
        self._consumer = None
        if self._dropped:
            logger.warning("Event hub dropped {} events (queue full)", self._dropped)

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
