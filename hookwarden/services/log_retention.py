"""
Log retention - delete webhook logs older than a cutoff.

The only code path that removes webhook_logs rows. Run from
scripts/cleanup_webhook_logs.py, never from request handling.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookwarden.models.webhook_log import WebhookLog

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    cutoff: datetime
    matched: int
    deleted: int
    dry_run: bool
    breakdown: dict[tuple[str, str], int] = field(default_factory=dict)


def _conditions(cutoff: datetime, status: Optional[str], provider: Optional[str]) -> list:
    conditions = [WebhookLog.created_at < cutoff]
    if status:
        conditions.append(WebhookLog.status == status)
    if provider:
        conditions.append(WebhookLog.provider == provider)
    return conditions


async def cleanup_webhook_logs(
    session_factory: async_sessionmaker[AsyncSession],
    days: int,
    status: Optional[str] = None,
    provider: Optional[str] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> CleanupResult:
    if days < 1:
        raise ValueError("days must be at least 1")

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    conditions = _conditions(cutoff, status, provider)

    async with session_factory() as db:
        result = await db.execute(
            select(WebhookLog.provider, WebhookLog.status, func.count(WebhookLog.id))
            .where(*conditions)
            .group_by(WebhookLog.provider, WebhookLog.status)
        )
        breakdown = {(row[0], row[1]): row[2] for row in result.all()}
        matched = sum(breakdown.values())

        deleted = 0
        if not dry_run and matched:
            result = await db.execute(delete(WebhookLog).where(*conditions))
            await db.commit()
            deleted = result.rowcount or 0

    logger.info(
        "Webhook log cleanup: %d matched, %d deleted (older than %s, dry_run=%s)",
        matched, deleted, cutoff.isoformat(), dry_run,
    )
    return CleanupResult(
        cutoff=cutoff,
        matched=matched,
        deleted=deleted,
        dry_run=dry_run,
        breakdown=breakdown,
    )
