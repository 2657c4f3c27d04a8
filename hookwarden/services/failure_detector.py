"""
Failure detector - decides when repeated webhook failures warrant an alert.

Failures are counted per (provider, event) inside the configured window and
only after the most recent success, so a recovered integration starts from
zero. A cooldown suppresses repeat alerts for the same pair.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from hookwarden.config import NotificationPolicy
from hookwarden.models.webhook_log import STATUS_FAILED, STATUS_SUCCESS, WebhookLog
from hookwarden.services.webhook_log_store import WebhookLogStore
from hookwarden.utils.cooldowns import CooldownStore, make_cooldown_key
from hookwarden.utils.logging import webhook_extra

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureCheck:
    should_notify: bool
    failure_count: int
    latest_failure: Optional[WebhookLog] = None


class FailureDetector:
    def __init__(
        self,
        store: WebhookLogStore,
        cooldowns: CooldownStore,
        policy: NotificationPolicy,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._cooldowns = cooldowns
        self._policy = policy
        self._clock = clock

    @property
    def threshold(self) -> int:
        return self._policy.failure_threshold

    async def check_for_repeated_failures(self, provider: str, event: str) -> FailureCheck:
        failure_count = await self.count_recent_failures(provider, event)
        latest_failure = await self.get_latest_failed_entry(provider, event)

        should_notify = (
            failure_count >= self.threshold
            and latest_failure is not None
            and await self.can_send_notification(provider, event)
        )

        if failure_count >= self.threshold:
            logger.debug(
                "Failure threshold reached for %s:%s (%d >= %d), notify=%s",
                provider, event, failure_count, self.threshold, should_notify,
                extra=webhook_extra(provider, event, failure_count=failure_count),
            )

        return FailureCheck(
            should_notify=should_notify,
            failure_count=failure_count,
            latest_failure=latest_failure,
        )

    async def count_recent_failures(
        self,
        provider: str,
        event: str,
        window_minutes: Optional[int] = None,
    ) -> int:
        """Failed entries inside the window that are newer than the last success."""
        minutes = window_minutes if window_minutes is not None else self._policy.failure_window_minutes
        since = self._clock() - timedelta(minutes=minutes)
        last_success = await self._store.latest(provider, event, status=STATUS_SUCCESS)
        return await self._store.count_failures(
            provider,
            event,
            since=since,
            after=last_success.created_at if last_success else None,
        )

    async def get_latest_failed_entry(self, provider: str, event: str) -> Optional[WebhookLog]:
        return await self._store.latest(provider, event, status=STATUS_FAILED)

    async def can_send_notification(self, provider: str, event: str) -> bool:
        started_at = await self._cooldowns.get(make_cooldown_key(provider, event))
        return started_at is None

    async def reserve_notification(self, provider: str, event: str) -> bool:
        """Atomically claim the right to notify for this pair. False if another caller holds it."""
        return await self._cooldowns.acquire(
            make_cooldown_key(provider, event), self._policy.cooldown_seconds
        )

    async def mark_notification_sent(self, provider: str, event: str) -> None:
        await self._cooldowns.set(make_cooldown_key(provider, event), self._policy.cooldown_seconds)
        logger.info(
            "Notification cooldown started for %s:%s (%d min)",
            provider, event, self._policy.cooldown_minutes,
            extra=webhook_extra(provider, event),
        )

    async def clear_cooldown(self, provider: str, event: str) -> None:
        await self._cooldowns.clear(make_cooldown_key(provider, event))
        logger.info(
            "Notification cooldown cleared for %s:%s", provider, event,
            extra=webhook_extra(provider, event),
        )
