"""
Tests for hookwarden/services/notifications.py - failure alert gating and dispatch.
"""
import pytest
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from hookwarden.config import NotificationPolicy
from hookwarden.services.event_bus import EventDispatcher, WebhookNotificationSent
from hookwarden.services.failure_detector import FailureDetector
from hookwarden.services.notifications import (
    FailureSummary,
    LoggingNotifier,
    NotificationSender,
)


@pytest.fixture
def detector(store, cooldowns, notification_policy):
    return FailureDetector(store, cooldowns, notification_policy)


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.deliver = AsyncMock()
    return mock


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def sender(detector, notifier, notification_policy, events):
    return NotificationSender(detector, notifier, notification_policy, events=events)


async def _fail(store, times=3, event="charge.failed"):
    for i in range(times):
        await store.log_failure("stripe", event, {}, "Invalid Stripe webhook signature.", attempt=i)


def _summary(**overrides):
    defaults = {
        "provider": "stripe",
        "event": "charge.failed",
        "failure_count": 4,
        "last_error": "Invalid Stripe webhook signature.",
        "last_attempt_at": datetime(2026, 3, 1, 12, 30, 0, tzinfo=timezone.utc),
        "log_id": "abc",
        "dashboard_url": "https://hooks.example.com/hookwarden/dashboard?log=abc",
    }
    defaults.update(overrides)
    return FailureSummary(**defaults)


# ---------------------------------------------------------------------------
# send_if_needed
# ---------------------------------------------------------------------------


class TestSendIfNeeded:
    async def test_disabled_never_sends(self, detector, notifier, store):
        sender = NotificationSender(detector, notifier, NotificationPolicy(enabled=False))
        await _fail(store, times=5)
        assert await sender.send_if_needed("stripe", "charge.failed") is False
        notifier.deliver.assert_not_awaited()

    async def test_below_threshold(self, sender, notifier, store):
        await _fail(store, times=2)
        assert await sender.send_if_needed("stripe", "charge.failed") is False
        notifier.deliver.assert_not_awaited()

    async def test_sends_once_then_cooldown(self, sender, notifier, store):
        await _fail(store, times=3)
        assert await sender.send_if_needed("stripe", "charge.failed") is True
        assert notifier.deliver.await_count == 1

        channel, recipients, summary = notifier.deliver.await_args.args
        assert channel == "mail"
        assert recipients == ("ops@example.com",)
        assert summary.failure_count == 3
        assert summary.provider == "stripe"
        assert summary.dashboard_url.endswith(f"?log={summary.log_id}")

        await _fail(store, times=1)
        assert await sender.send_if_needed("stripe", "charge.failed") is False
        assert notifier.deliver.await_count == 1

    async def test_sends_again_after_clear_cooldown(self, sender, detector, notifier, store):
        await _fail(store, times=3)
        assert await sender.send_if_needed("stripe", "charge.failed") is True
        await detector.clear_cooldown("stripe", "charge.failed")
        assert await sender.send_if_needed("stripe", "charge.failed") is True
        assert notifier.deliver.await_count == 2

    async def test_publishes_notification_sent_event(self, sender, events, store):
        received = []

        async def listener(event):
            received.append(event)

        events.subscribe(WebhookNotificationSent, listener)
        await _fail(store, times=3)
        await sender.send_if_needed("stripe", "charge.failed")

        assert len(received) == 1
        assert received[0].provider == "stripe"
        assert received[0].event == "charge.failed"
        assert received[0].failure_count == 3
        assert received[0].channels == ("mail",)


# ---------------------------------------------------------------------------
# send
# ---------------------------------------------------------------------------


class TestSend:
    async def test_routes_each_channel(self, detector, notifier, store):
        policy = NotificationPolicy(
            enabled=True,
            channels=("mail", "slack"),
            recipients={"mail": ("a@example.com", "b@example.com"), "slack": ("https://hooks.slack.test/x",)},
        )
        sender = NotificationSender(detector, notifier, policy)
        entry = await store.log_failure("stripe", "x", {}, "boom")

        assert await sender.send(entry, 5) is True
        channels = [c.args[0] for c in notifier.deliver.await_args_list]
        assert channels == ["mail", "slack"]

    async def test_channel_without_recipients_skipped(self, detector, notifier, store):
        policy = NotificationPolicy(enabled=True, channels=("mail", "slack"), recipients={"mail": ("a@example.com",)})
        sender = NotificationSender(detector, notifier, policy)
        entry = await store.log_failure("stripe", "x", {}, "boom")

        assert await sender.send(entry, 3) is True
        assert [c.args[0] for c in notifier.deliver.await_args_list] == ["mail"]

    async def test_all_channels_failing_releases_cooldown(self, sender, detector, notifier, store):
        notifier.deliver.side_effect = RuntimeError("smtp down")
        entry = await store.log_failure("stripe", "x", {}, "boom")

        assert await sender.send(entry, 3) is False
        assert await detector.can_send_notification("stripe", "x") is True

    async def test_partial_delivery_counts_as_sent(self, detector, notifier, store):
        notifier.deliver.side_effect = [RuntimeError("smtp down"), None]
        policy = NotificationPolicy(
            enabled=True,
            channels=("mail", "slack"),
            recipients={"mail": ("a@example.com",), "slack": ("https://hooks.slack.test/x",)},
        )
        sender = NotificationSender(detector, notifier, policy)
        entry = await store.log_failure("stripe", "x", {}, "boom")

        assert await sender.send(entry, 3) is True
        assert await detector.can_send_notification("stripe", "x") is False

    async def test_cooldown_held_elsewhere(self, sender, detector, notifier, store):
        await detector.reserve_notification("stripe", "x")
        entry = await store.log_failure("stripe", "x", {}, "boom")
        assert await sender.send(entry, 3) is False
        notifier.deliver.assert_not_awaited()

    async def test_disabled_policy_never_sends(self, detector, notifier, store):
        policy = NotificationPolicy(enabled=False, recipients={"mail": ("ops@example.com",)})
        sender = NotificationSender(detector, notifier, policy)
        entry = await store.log_failure("stripe", "x", {}, "boom")

        assert await sender.send(entry, 5) is False
        notifier.deliver.assert_not_awaited()
        assert await detector.can_send_notification("stripe", "x") is True

    async def test_channels_default_to_mail(self, detector, notifier):
        sender = NotificationSender(detector, notifier, NotificationPolicy(enabled=True, channels=()))
        assert sender.channels() == ("mail",)


# ---------------------------------------------------------------------------
# FailureSummary rendering
# ---------------------------------------------------------------------------


class TestFailureSummary:
    def test_from_log(self):
        entry = MagicMock()
        entry.id = uuid.UUID("12345678-1234-5678-1234-567812345678")
        entry.provider = "github"
        entry.event = "push"
        entry.error_message = "Invalid GitHub webhook signature."
        entry.created_at = datetime(2026, 3, 1, tzinfo=timezone.utc)

        summary = FailureSummary.from_log(entry, 4, "https://hooks.example.com/dash")
        assert summary.log_id == "12345678-1234-5678-1234-567812345678"
        assert summary.dashboard_url == "https://hooks.example.com/dash?log=12345678-1234-5678-1234-567812345678"

    def test_mail(self):
        mail = _summary().to_mail()
        assert mail["subject"] == "Webhook Failure Alert: stripe"
        assert "The webhook charge.failed has failed 4 times." in mail["lines"]
        assert "Last attempt: 2026-03-01 12:30:00" in mail["lines"]
        assert "Error: Invalid Stripe webhook signature." in mail["lines"]

    def test_mail_without_error(self):
        mail = _summary(last_error=None).to_mail()
        assert not any(line.startswith("Error:") for line in mail["lines"])

    def test_slack(self):
        payload = _summary().to_slack()
        attachment = payload["attachments"][0]
        assert attachment["color"] == "danger"
        assert attachment["title"] == "Service: stripe"
        fields = {f["title"]: f["value"] for f in attachment["fields"]}
        assert fields == {
            "Event": "charge.failed",
            "Failure Count": "4",
            "Last Attempt": "2026-03-01 12:30:00",
            "Error": "Invalid Stripe webhook signature.",
        }
        assert attachment["actions"][0]["url"].endswith("?log=abc")

    def test_slack_error_fallback(self):
        fields = _summary(last_error=None).to_slack()["attachments"][0]["fields"]
        assert fields[3]["value"] == "N/A"

    def test_to_dict(self):
        data = _summary().to_dict()
        assert data["service"] == "stripe"
        assert data["failure_count"] == 4
        assert data["last_attempt"] == "2026-03-01T12:30:00+00:00"
        assert data["log_id"] == "abc"


class TestLoggingNotifier:
    async def test_logs_alert(self, caplog):
        notifier = LoggingNotifier()
        with caplog.at_level("ERROR", logger="hookwarden.services.notifications"):
            await notifier.deliver("mail", ("ops@example.com",), _summary())
        assert "Webhook Failure Alert: stripe" in caplog.text
