"""
Webhook log - one row per verification attempt, never updated in place.
(provider, external_id) is unique so duplicate deliveries cannot be recorded twice.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import String, Integer, Text, DateTime, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from hookwarden.database import Base

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # success, failed

    payload: Mapped[Any] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_webhook_logs_provider_external_id"),
        Index("ix_webhook_logs_lookup", "provider", "event", "status", "created_at"),
        Index("ix_webhook_logs_created_at", "created_at"),
    )

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "provider": self.provider,
            "event": self.event,
            "status": self.status,
            "payload": self.payload,
            "error_message": self.error_message,
            "attempt": self.attempt,
            "external_id": self.external_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<WebhookLog {self.provider}:{self.event} #{self.attempt} ({self.status})>"
