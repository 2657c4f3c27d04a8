"""
Deferred retry scheduling.

A retry chain is a sequence of independently scheduled attempts. Two backends:
- AsyncioScheduler: runs the callback in-process after the delay (lost on restart)
- DatabaseScheduler: persists a RetryTask row drained by the retry worker

Execution is at-least-once; the log store's (provider, external_id)
constraint absorbs duplicates.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookwarden.models.retry_task import RetryTask
from hookwarden.utils.logging import webhook_extra
from hookwarden.utils.webhook_signatures import compute_payload_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryAttempt:
    """Everything needed to run one verification attempt later."""

    provider: str
    event: str
    payload: bytes
    signature: str
    attempt: int = 0
    external_id: Optional[str] = None

    def next(self) -> "RetryAttempt":
        # Retries never carry the external id - only attempt 0 claims it.
        return replace(self, attempt=self.attempt + 1, external_id=None)

    @classmethod
    def from_task(cls, task: RetryTask) -> "RetryAttempt":
        return cls(
            provider=task.provider,
            event=task.event,
            payload=task.payload,
            signature=task.signature,
            attempt=task.attempt,
            external_id=task.external_id,
        )


RetryCallback = Callable[[RetryAttempt], Awaitable[object]]


class Scheduler(Protocol):
    async def schedule(self, delay_seconds: float, callback: RetryCallback, task: RetryAttempt) -> str:
        """Arrange for callback(task) to run after delay_seconds. Returns a task id."""
        ...


class AsyncioScheduler:
    def __init__(self):
        self._tasks: set[asyncio.Task] = set()
        self._counter = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def schedule(self, delay_seconds: float, callback: RetryCallback, task: RetryAttempt) -> str:
        self._counter += 1
        task_id = f"retry-{self._counter}"
        runner = asyncio.create_task(self._run(delay_seconds, callback, task), name=task_id)
        self._tasks.add(runner)
        runner.add_done_callback(self._tasks.discard)
        logger.debug(
            "Retry scheduled in-process: %s:%s attempt=%d delay=%ss",
            task.provider, task.event, task.attempt, delay_seconds,
        )
        return task_id

    async def _run(self, delay_seconds: float, callback: RetryCallback, task: RetryAttempt) -> None:
        await asyncio.sleep(delay_seconds)
        try:
            await callback(task)
        except Exception as e:
            logger.warning(
                "Scheduled retry %s:%s attempt=%d ended with %s: %s",
                task.provider, task.event, task.attempt, type(e).__name__, str(e),
            )

    async def shutdown(self) -> None:
        """Cancel pending retries. Used on application shutdown."""
        for runner in list(self._tasks):
            runner.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


class DatabaseScheduler:
    """
    Persists retries as RetryTask rows. The callback is not stored: the retry
    worker feeds due rows back through ValidationOrchestrator.run_attempt.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def schedule(self, delay_seconds: float, callback: RetryCallback, task: RetryAttempt) -> str:
        scheduled_at = datetime.now(timezone.utc)
        if delay_seconds > 0:
            scheduled_at = scheduled_at + timedelta(seconds=delay_seconds)

        row = RetryTask(
            provider=task.provider,
            event=task.event,
            payload=task.payload,
            payload_hash=compute_payload_hash(task.payload),
            signature=task.signature,
            attempt=task.attempt,
            external_id=task.external_id,
            scheduled_at=scheduled_at,
        )

        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
            task_id = str(row.id)

        logger.info(
            "Retry enqueued: %s:%s attempt=%d delay=%ss id=%s",
            task.provider, task.event, task.attempt, delay_seconds, task_id[:8],
            extra=webhook_extra(
                task.provider, task.event, attempt=task.attempt, delay_seconds=delay_seconds,
            ),
        )
        return task_id
