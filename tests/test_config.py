"""
Tests for hookwarden/config.py - settings validation and policy objects.
"""
import pytest
from pydantic import ValidationError

from hookwarden.config import DEFAULT_RETRY_DELAY_SECONDS, RetryPolicy, Settings


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestRetryPolicy:
    def test_delay_per_attempt(self):
        policy = RetryPolicy(delays=(1, 5, 10))
        assert [policy.delay_for(i) for i in range(3)] == [1, 5, 10]

    def test_delay_clamped_to_last(self):
        policy = RetryPolicy(delays=(1, 5))
        assert policy.delay_for(7) == 5

    def test_empty_delays_fall_back(self):
        assert RetryPolicy(delays=()).delay_for(0) == DEFAULT_RETRY_DELAY_SECONDS


class TestSettings:
    def test_defaults(self):
        settings = _settings()
        assert settings.signature_tolerance_seconds == 300
        assert settings.retry_policy() == RetryPolicy(enabled=True, max_attempts=3, delays=(1, 5, 10))
        assert settings.notification_policy().enabled is False

    def test_webhook_secret_blank_is_none(self):
        settings = _settings(stripe_webhook_secret="whsec_x")
        assert settings.webhook_secret("stripe") == "whsec_x"
        assert settings.webhook_secret("github") is None
        assert settings.webhook_secret("paypal") is None

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            _settings(retry_delays=[1, -5])

    @pytest.mark.parametrize("field", ["cooldown_backend", "retry_backend"])
    def test_unknown_backend_rejected(self, field):
        with pytest.raises(ValidationError):
            _settings(**{field: "memcached"})

    def test_notification_policy(self):
        settings = _settings(
            app_base_url="https://hooks.example.com/",
            notifications_enabled=True,
            notification_channels=["mail", "slack"],
            notification_email_recipients=["ops@example.com"],
            notification_slack_webhook_url="https://hooks.slack.test/x",
            notification_cooldown_minutes=15,
        )
        policy = settings.notification_policy()
        assert policy.channels == ("mail", "slack")
        assert policy.recipients_for("mail") == ("ops@example.com",)
        assert policy.recipients_for("slack") == ("https://hooks.slack.test/x",)
        assert policy.cooldown_seconds == 900
        assert policy.dashboard_url == "https://hooks.example.com/hookwarden/dashboard"

    def test_slack_recipient_omitted_without_url(self):
        policy = _settings().notification_policy()
        assert policy.recipients_for("slack") == ()
