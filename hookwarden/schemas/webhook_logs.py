"""
API response schemas for the webhook log endpoints.
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel


class WebhookLogItem(BaseModel):
    id: str
    provider: str
    event: str
    status: str
    payload: Any = None
    error_message: Optional[str] = None
    attempt: int = 0
    external_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, entry) -> "WebhookLogItem":
        return cls(
            id=str(entry.id),
            provider=entry.provider,
            event=entry.event,
            status=entry.status,
            payload=entry.payload,
            error_message=entry.error_message,
            attempt=entry.attempt,
            external_id=entry.external_id,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )


class PaginationMeta(BaseModel):
    current_page: int
    per_page: int
    total: int
    last_page: int


class WebhookLogListResponse(BaseModel):
    data: list[WebhookLogItem]
    meta: PaginationMeta


class WebhookReceivedResponse(BaseModel):
    status: str = "received"
    log_id: str
    provider: str
    event: str
    attempt: int = 0
    metadata: dict = {}
