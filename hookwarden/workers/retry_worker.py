"""
Retry worker - drains persisted verification retries.

Polls webhook_retry_tasks for due pending rows and feeds each one through
ValidationOrchestrator.run_attempt, which logs the attempt and schedules the
next one if the chain is not finished. Rows left in processing by a crashed
worker are reclaimed once their lease expires, so execution is at-least-once.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookwarden.errors import WebhookError
from hookwarden.models.retry_task import RetryTask
from hookwarden.services.scheduler import RetryAttempt
from hookwarden.utils.logging import webhook_extra

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5
MAX_TASKS_PER_CYCLE = 20
# A processing row older than this is assumed orphaned by a crashed worker
PROCESSING_LEASE_SECONDS = 300


class RetryWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        orchestrator,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        batch_size: int = MAX_TASKS_PER_CYCLE,
        lease_seconds: float = PROCESSING_LEASE_SECONDS,
    ):
        self._session_factory = session_factory
        self._orchestrator = orchestrator
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._lease_seconds = lease_seconds

    async def run(self) -> None:
        """Main loop - poll every few seconds until cancelled."""
        logger.info("Retry worker started (poll every %ss)", self._poll_interval)
        while True:
            try:
                await self.process_cycle()
            except Exception as e:
                logger.error("Retry worker cycle error: %s", str(e))
            await asyncio.sleep(self._poll_interval)

    async def process_cycle(self) -> int:
        """Run every due retry. Returns the number of rows processed."""
        claimed = await self._claim_due_tasks()
        if not claimed:
            return 0

        logger.info("Processing %d due webhook retries", len(claimed))
        for task_id, attempt in claimed:
            await self._execute(task_id, attempt)
        return len(claimed)

    async def _claim_due_tasks(self) -> list[tuple]:
        now = datetime.now(timezone.utc)
        lease_expired = now - timedelta(seconds=self._lease_seconds)
        async with self._session_factory() as db:
            result = await db.execute(
                select(RetryTask)
                .where(
                    or_(
                        and_(
                            RetryTask.status == "pending",
                            RetryTask.scheduled_at <= now,
                        ),
                        and_(
                            RetryTask.status == "processing",
                            RetryTask.started_at < lease_expired,
                        ),
                    )
                )
                .order_by(RetryTask.scheduled_at)
                .limit(self._batch_size)
                .with_for_update(skip_locked=True)
            )
            rows = result.scalars().all()
            claimed = []
            for row in rows:
                if row.status == "processing":
                    logger.warning(
                        "Reclaiming retry task %s stuck in processing since %s",
                        str(row.id)[:8], row.started_at,
                        extra=webhook_extra(row.provider, row.event, attempt=row.attempt),
                    )
                row.status = "processing"
                row.started_at = now
                claimed.append((row.id, RetryAttempt.from_task(row)))
            await db.commit()
        return claimed

    async def _execute(self, task_id, attempt: RetryAttempt) -> None:
        status, error_message = "completed", None
        try:
            await self._orchestrator.run_attempt(attempt)
        except WebhookError as e:
            # The attempt itself was logged; the row only tracks execution.
            error_message = e.message
        except Exception as e:
            status, error_message = "failed", str(e)
            logger.error(
                "Retry task %s crashed: %s", str(task_id)[:8], error_message,
                extra=webhook_extra(attempt.provider, attempt.event, attempt=attempt.attempt),
            )

        async with self._session_factory() as db:
            row = await db.get(RetryTask, task_id)
            if row is not None:
                row.status = status
                row.error_message = error_message
                row.completed_at = datetime.now(timezone.utc)
                await db.commit()
