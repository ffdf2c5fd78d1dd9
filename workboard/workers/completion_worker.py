"""
Background consumer for task-completion events.

Task status writes publish a ``TaskCompletedEvent`` once they have committed.
The worker runs the completion cascade for each event in its own database
session. Failures are logged and counted; they never reach the request that
published the event.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..services.completion_service import CompletionService
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TaskCompletedEvent:
    task_id: int
    organization_id: Optional[int] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CompletionEventPublisher(Protocol):
    def publish(self, event: TaskCompletedEvent) -> bool: ...


@dataclass
class WorkerStats:
    published: int = 0
    processed: int = 0
    failed: int = 0
    dropped: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "published": self.published,
            "processed": self.processed,
            "failed": self.failed,
            "dropped": self.dropped,
        }


CascadeHandler = Callable[[AsyncSession, TaskCompletedEvent], Awaitable[None]]


async def run_completion_cascade(db: AsyncSession, event: TaskCompletedEvent) -> None:
    await CompletionService(db).handle_task_status_change(event.task_id)


class CompletionWorker:
    """In-process queue plus a single consumer task."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_queue_size: int = 1000,
        handler: CascadeHandler = run_completion_cascade
    ) -> None:
        self._session_factory = session_factory
        self._handler = handler
        self._queue: "asyncio.Queue[TaskCompletedEvent]" = asyncio.Queue(maxsize=max_queue_size)
        self._consumer: Optional[asyncio.Task] = None
        self.stats = WorkerStats()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> None:
        if self.running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="completion-worker")
        logger.info("Completion worker started")

    async def stop(self) -> None:
        """Finish queued events, then stop the consumer."""
        if not self.running:
            return
        await self._queue.join()
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None
        logger.info("Completion worker stopped (%s)", self.stats.as_dict())

    def publish(self, event: TaskCompletedEvent) -> bool:
        """Queue an event without waiting; returns False if it had to be dropped."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning(
                "Completion queue full, dropping event for task %s; "
                "run a project completion check to reconcile", event.task_id
            )
            return False
        self.stats.published += 1
        return True

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            finally:
                self._queue.task_done()

    async def process(self, event: TaskCompletedEvent) -> None:
        try:
            async with self._session_factory() as session:
                await self._handler(session, event)
            self.stats.processed += 1
            logger.debug("Completion cascade finished for task %s", event.task_id)
        except Exception as e:
            self.stats.failed += 1
            logger.error("Completion cascade failed for task %s: %s", event.task_id, str(e))


class InlineCompletionPublisher:
    """Publisher used when the worker is disabled: runs each cascade as a background task."""

    def __init__(self, session_factory: async_sessionmaker, add_task: Callable[..., None]) -> None:
        self._session_factory = session_factory
        self._add_task = add_task

    def publish(self, event: TaskCompletedEvent) -> bool:
        self._add_task(self._run, event)
        return True

    async def _run(self, event: TaskCompletedEvent) -> None:
        try:
            async with self._session_factory() as session:
                await run_completion_cascade(session, event)
        except Exception as e:
            logger.error("Completion cascade failed for task %s: %s", event.task_id, str(e))
