"""
Webhook log store - append-only record of every verification attempt.

Each operation opens its own session from the injected factory, so the store
can be shared by request handlers, retry tasks and the failure detector
without holding a connection across retry delays.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookwarden.errors import DuplicateDeliveryError
from hookwarden.models.webhook_log import STATUS_FAILED, STATUS_SUCCESS, WebhookLog
from hookwarden.utils.logging import webhook_extra

logger = logging.getLogger(__name__)

VALID_STATUSES = (STATUS_SUCCESS, STATUS_FAILED)


class WebhookLogStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(
        self,
        provider: str,
        event: str,
        status: str,
        payload: Any,
        error_message: Optional[str] = None,
        attempt: int = 0,
        external_id: Optional[str] = None,
    ) -> WebhookLog:
        """
        Insert one log entry.

        Raises DuplicateDeliveryError when (provider, external_id) is already
        recorded - the unique constraint is the only dedup authority, so two
        concurrent deliveries cannot both be written.
        """
        if status not in VALID_STATUSES:
            raise ValueError(f"Unknown webhook log status: {status}")
        if status == STATUS_FAILED and not error_message:
            raise ValueError("Failed webhook log entries require an error message")
        if status == STATUS_SUCCESS and error_message is not None:
            raise ValueError("Successful webhook log entries cannot carry an error message")
        if attempt < 0:
            raise ValueError("attempt must be non-negative")

        now = datetime.now(timezone.utc)
        entry = WebhookLog(
            provider=provider,
            event=event,
            status=status,
            payload=payload,
            error_message=error_message,
            attempt=attempt,
            external_id=external_id,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as db:
            db.add(entry)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                if external_id is None:
                    raise
                raise DuplicateDeliveryError(provider, external_id)

        logger.info(
            "Webhook %s logged: %s:%s attempt=%d",
            status, provider, event, attempt,
            extra=webhook_extra(
                provider, event,
                status=status, attempt=attempt, external_id=external_id, log_id=str(entry.id),
            ),
        )
        return entry

    async def log_success(
        self,
        provider: str,
        event: str,
        payload: Any,
        attempt: int = 0,
        external_id: Optional[str] = None,
    ) -> WebhookLog:
        return await self.append(
            provider, event, STATUS_SUCCESS, payload,
            attempt=attempt, external_id=external_id,
        )

    async def log_failure(
        self,
        provider: str,
        event: str,
        payload: Any,
        error_message: str,
        attempt: int = 0,
        external_id: Optional[str] = None,
    ) -> WebhookLog:
        return await self.append(
            provider, event, STATUS_FAILED, payload,
            error_message=error_message, attempt=attempt, external_id=external_id,
        )

    async def get(self, log_id) -> Optional[WebhookLog]:
        async with self._session_factory() as db:
            return await db.get(WebhookLog, log_id)

    async def exists_for_external_id(self, provider: str, external_id: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                select(WebhookLog.id)
                .where(
                    WebhookLog.provider == provider,
                    WebhookLog.external_id == external_id,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    def _filtered(
        self,
        stmt,
        provider: Optional[str] = None,
        status: Optional[str] = None,
        event: Optional[str] = None,
        attempt: Optional[int] = None,
        retried: Optional[bool] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ):
        if provider:
            stmt = stmt.where(WebhookLog.provider == provider)
        if status:
            stmt = stmt.where(WebhookLog.status == status)
        if event:
            stmt = stmt.where(WebhookLog.event == event)
        if attempt is not None:
            stmt = stmt.where(WebhookLog.attempt == attempt)
        if retried is True:
            stmt = stmt.where(WebhookLog.attempt > 0)
        elif retried is False:
            stmt = stmt.where(WebhookLog.attempt == 0)
        if since is not None:
            stmt = stmt.where(WebhookLog.created_at >= since)
        if until is not None:
            stmt = stmt.where(WebhookLog.created_at <= until)
        return stmt

    async def query(
        self,
        limit: int = 50,
        offset: int = 0,
        **filters,
    ) -> list[WebhookLog]:
        """Entries matching the filters, newest first."""
        stmt = self._filtered(select(WebhookLog), **filters)
        stmt = (
            stmt.order_by(WebhookLog.created_at.desc(), WebhookLog.attempt.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def count(self, **filters) -> int:
        stmt = self._filtered(select(func.count(WebhookLog.id)), **filters)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar() or 0

    async def count_failures(
        self,
        provider: str,
        event: str,
        since: Optional[datetime] = None,
        after: Optional[datetime] = None,
    ) -> int:
        """Failed entries for the pair, optionally bounded by a window start and a strict lower bound."""
        stmt = select(func.count(WebhookLog.id)).where(
            WebhookLog.provider == provider,
            WebhookLog.event == event,
            WebhookLog.status == STATUS_FAILED,
        )
        if since is not None:
            stmt = stmt.where(WebhookLog.created_at >= since)
        if after is not None:
            stmt = stmt.where(WebhookLog.created_at > after)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar() or 0

    async def latest(
        self,
        provider: str,
        event: str,
        status: Optional[str] = None,
    ) -> Optional[WebhookLog]:
        entries = await self.query(provider=provider, event=event, status=status, limit=1)
        return entries[0] if entries else None
