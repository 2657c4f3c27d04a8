"""
Webhook log endpoints - read-only listing for dashboards and operators.

- GET /api/v1/webhook-logs       - filtered, paginated listing (newest first)
- GET /api/v1/webhook-logs/{id}  - single entry
"""
import logging
import math
import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from hookwarden.api.deps import get_log_store
from hookwarden.schemas.webhook_logs import (
    PaginationMeta,
    WebhookLogItem,
    WebhookLogListResponse,
)
from hookwarden.services.webhook_log_store import WebhookLogStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhook-logs", tags=["webhook-logs"])


def _day_start(value: Optional[date]) -> Optional[datetime]:
    return datetime.combine(value, time.min, tzinfo=timezone.utc) if value else None


def _day_end(value: Optional[date]) -> Optional[datetime]:
    return datetime.combine(value, time.max, tzinfo=timezone.utc) if value else None


@router.get("", response_model=WebhookLogListResponse)
async def list_webhook_logs(
    provider: Optional[str] = None,
    status: Optional[str] = Query(default=None, pattern="^(success|failed)$"),
    event: Optional[str] = None,
    attempt: Optional[int] = Query(default=None, ge=0),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
    store: WebhookLogStore = Depends(get_log_store),
):
    filters = {
        "provider": provider,
        "status": status,
        "event": event,
        "attempt": attempt,
        "since": _day_start(date_from),
        "until": _day_end(date_to),
    }
    total = await store.count(**filters)
    entries = await store.query(limit=per_page, offset=(page - 1) * per_page, **filters)

    return WebhookLogListResponse(
        data=[WebhookLogItem.from_model(entry) for entry in entries],
        meta=PaginationMeta(
            current_page=page,
            per_page=per_page,
            total=total,
            last_page=max(1, math.ceil(total / per_page)),
        ),
    )


@router.get("/{log_id}", response_model=WebhookLogItem)
async def get_webhook_log(
    log_id: str,
    store: WebhookLogStore = Depends(get_log_store),
):
    try:
        parsed_id = uuid.UUID(log_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Webhook log not found")

    entry = await store.get(parsed_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Webhook log not found")
    return WebhookLogItem.from_model(entry)
