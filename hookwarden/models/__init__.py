"""
Database models - import all models here so create_all can discover them.
"""
from hookwarden.models.webhook_log import WebhookLog
from hookwarden.models.retry_task import RetryTask

__all__ = [
    "WebhookLog",
    "RetryTask",
]
