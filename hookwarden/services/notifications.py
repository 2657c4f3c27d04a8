"""
Failure notifications - alert operators when a webhook keeps failing.

NotificationSender decides whether to alert and what to send; delivery is
delegated to a Notifier (mail, chat, ...). The default LoggingNotifier writes
the alert to the log so failures are visible even with no transport wired up.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from hookwarden.config import NotificationPolicy
from hookwarden.models.webhook_log import WebhookLog
from hookwarden.services.event_bus import EventDispatcher, WebhookNotificationSent
from hookwarden.services.failure_detector import FailureDetector
from hookwarden.utils.logging import webhook_extra

logger = logging.getLogger(__name__)


def _format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "N/A"


@dataclass(frozen=True)
class FailureSummary:
    provider: str
    event: str
    failure_count: int
    last_error: Optional[str]
    last_attempt_at: Optional[datetime]
    log_id: Optional[str]
    dashboard_url: str

    @classmethod
    def from_log(cls, entry: WebhookLog, failure_count: int, dashboard_url: str) -> "FailureSummary":
        return cls(
            provider=entry.provider,
            event=entry.event,
            failure_count=failure_count,
            last_error=entry.error_message,
            last_attempt_at=entry.created_at,
            log_id=str(entry.id) if entry.id else None,
            dashboard_url=f"{dashboard_url}?log={entry.id}",
        )

    @property
    def subject(self) -> str:
        return f"Webhook Failure Alert: {self.provider}"

    def to_mail(self) -> dict:
        lines = [
            f"The webhook {self.event} has failed {self.failure_count} times.",
            f"Service: {self.provider}",
            f"Event: {self.event}",
            f"Last attempt: {_format_timestamp(self.last_attempt_at)}",
        ]
        if self.last_error:
            lines.append(f"Error: {self.last_error}")
        lines.append(f"View Dashboard: {self.dashboard_url}")
        lines.append("Please check the webhook configuration and investigate the issue.")
        return {"subject": self.subject, "greeting": "Webhook Failure Detected", "lines": lines}

    def to_slack(self) -> dict:
        return {
            "text": "Webhook Failure Alert: Repeated failures detected",
            "attachments": [
                {
                    "color": "danger",
                    "title": f"Service: {self.provider}",
                    "fields": [
                        {"title": "Event", "value": self.event, "short": True},
                        {"title": "Failure Count", "value": str(self.failure_count), "short": True},
                        {
                            "title": "Last Attempt",
                            "value": _format_timestamp(self.last_attempt_at),
                            "short": True,
                        },
                        {"title": "Error", "value": self.last_error or "N/A", "short": True},
                    ],
                    "actions": [
                        {"type": "button", "text": "View Dashboard", "url": self.dashboard_url},
                    ],
                }
            ],
        }

    def to_dict(self) -> dict:
        return {
            "service": self.provider,
            "event": self.event,
            "failure_count": self.failure_count,
            "last_attempt": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "error_message": self.last_error,
            "log_id": self.log_id,
            "dashboard_url": self.dashboard_url,
        }


class Notifier(Protocol):
    async def deliver(self, channel: str, recipients: tuple[str, ...], summary: FailureSummary) -> None:
        """Deliver the summary on one channel. Raise on delivery failure."""
        ...


class LoggingNotifier:
    """Writes alerts to the log. Used when no mail/chat transport is configured."""

    async def deliver(self, channel: str, recipients: tuple[str, ...], summary: FailureSummary) -> None:
        rendered = summary.to_slack() if channel == "slack" else summary.to_mail()
        logger.error(
            "ALERT [webhook_failure] %s -> %s (%d recipients): %s",
            summary.subject, channel, len(recipients), rendered,
            extra=webhook_extra(
                summary.provider, summary.event,
                failure_count=summary.failure_count, log_id=summary.log_id,
            ),
        )


class NotificationSender:
    def __init__(
        self,
        detector: FailureDetector,
        notifier: Notifier,
        policy: NotificationPolicy,
        events: Optional[EventDispatcher] = None,
    ):
        self._detector = detector
        self._notifier = notifier
        self._policy = policy
        self._events = events

    def is_enabled(self) -> bool:
        return self._policy.enabled

    def channels(self) -> tuple[str, ...]:
        return self._policy.channels or ("mail",)

    async def send_if_needed(self, provider: str, event: str) -> bool:
        """Evaluate recent failures for the pair and alert if the threshold and cooldown allow."""
        if not self.is_enabled():
            return False

        check = await self._detector.check_for_repeated_failures(provider, event)
        if not check.should_notify or check.latest_failure is None:
            return False

        return await self.send(check.latest_failure, check.failure_count)

    async def send(self, entry: WebhookLog, failure_count: int) -> bool:
        """
        Dispatch an alert for a failing entry.

        The cooldown is claimed atomically before dispatch. If no channel
        delivers, the claim is released so the next failure can try again.
        """
        if not self.is_enabled():
            return False

        provider, event = entry.provider, entry.event
        if not await self._detector.reserve_notification(provider, event):
            logger.debug("Notification for %s:%s already sent or in flight", provider, event)
            return False

        summary = FailureSummary.from_log(entry, failure_count, self._policy.dashboard_url)
        delivered = []
        for channel in self.channels():
            recipients = self._policy.recipients_for(channel)
            if not recipients:
                logger.debug("No recipients configured for channel %s - skipping", channel)
                continue
            try:
                await self._notifier.deliver(channel, recipients, summary)
                delivered.append(channel)
            except Exception as e:
                logger.warning(
                    "Failure notification via %s failed for %s:%s: %s",
                    channel, provider, event, str(e),
                )

        if not delivered:
            await self._detector.clear_cooldown(provider, event)
            logger.warning("No channel delivered the failure notification for %s:%s", provider, event)
            return False

        await self._detector.mark_notification_sent(provider, event)
        logger.info(
            "Failure notification sent for %s:%s via %s (%d failures)",
            provider, event, ", ".join(delivered), failure_count,
            extra=webhook_extra(provider, event, failure_count=failure_count),
        )

        if self._events is not None:
            await self._events.publish(
                WebhookNotificationSent(
                    provider=provider,
                    event=event,
                    failure_count=failure_count,
                    log_id=summary.log_id,
                    channels=tuple(delivered),
                )
            )
        return True
