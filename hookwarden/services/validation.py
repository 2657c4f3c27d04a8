"""
Validation orchestrator - idempotency check, signature verification and logging.

One call to validate_and_log() is one attempt and writes at most one log row:
- duplicate external id -> AlreadyProcessed, no row, validator not invoked
- unknown provider / missing secret -> ConfigurationError, no row
- verification failure -> failed row, error raised (with .log_entry set)
- success -> success row returned

Retry chains run either inline (validate_with_retries, sleeps between
attempts) or through a Scheduler (validate_with_deferred_retries +
run_attempt). In both, attempts are numbered from 0 and only attempt 0
carries the external id.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from hookwarden.config import RetryPolicy
from hookwarden.errors import (
    DuplicateDeliveryError,
    NoAttemptRecordedError,
    RetriesExhaustedError,
    SignatureVerificationError,
)
from hookwarden.models.webhook_log import WebhookLog
from hookwarden.services.payload_parsers import decode_payload
from hookwarden.services.providers import ProviderRegistry
from hookwarden.services.scheduler import RetryAttempt, Scheduler
from hookwarden.services.webhook_log_store import WebhookLogStore
from hookwarden.utils.logging import webhook_extra
from hookwarden.utils.webhook_signatures import DEFAULT_TOLERANCE_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlreadyProcessed:
    """A delivery with this external id was already recorded. Not an error."""

    provider: str
    external_id: str

    def to_response(self) -> dict:
        return {"status": "already_processed", "external_id": self.external_id}


ValidationOutcome = Union[WebhookLog, AlreadyProcessed]


class ValidationOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: WebhookLogStore,
        retry_policy: RetryPolicy,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        scheduler: Optional[Scheduler] = None,
        notification_sender=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._registry = registry
        self._store = store
        self._retry_policy = retry_policy
        self._tolerance = tolerance_seconds
        self._scheduler = scheduler
        self._notification_sender = notification_sender
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    async def validate_and_log(
        self,
        payload: bytes,
        signature: str,
        provider: str,
        event: str,
        attempt: int = 0,
        external_id: Optional[str] = None,
    ) -> ValidationOutcome:
        external_id = external_id or None
        log_extra = webhook_extra(provider, event, attempt=attempt, external_id=external_id)

        if external_id and await self._store.exists_for_external_id(provider, external_id):
            logger.info(
                "Duplicate delivery %s for %s - already processed",
                external_id, provider, extra=log_extra,
            )
            return AlreadyProcessed(provider=provider, external_id=external_id)

        spec = self._registry.get(provider)
        secret = self._registry.secret_for(provider)
        data = decode_payload(payload)

        try:
            spec.validate(payload, signature, secret, self._tolerance)
        except SignatureVerificationError as e:
            logger.warning(
                "Webhook verification failed for %s:%s attempt=%d: %s",
                provider, event, attempt, e.message, extra=log_extra,
            )
            try:
                e.log_entry = await self._store.log_failure(
                    provider, event, data, e.message,
                    attempt=attempt, external_id=external_id,
                )
            except DuplicateDeliveryError:
                return AlreadyProcessed(provider=provider, external_id=external_id)
            await self._notify_if_needed(provider, event)
            raise

        try:
            return await self._store.log_success(
                provider, event, data, attempt=attempt, external_id=external_id,
            )
        except DuplicateDeliveryError:
            logger.info(
                "Concurrent duplicate delivery %s for %s - already processed",
                external_id, provider, extra=log_extra,
            )
            return AlreadyProcessed(provider=provider, external_id=external_id)

    async def validate_with_retries(
        self,
        payload: bytes,
        signature: str,
        provider: str,
        event: str,
        external_id: Optional[str] = None,
    ) -> ValidationOutcome:
        """
        Run a bounded retry chain inline, sleeping between attempts.

        Raises RetriesExhaustedError (kind and status of the last failure)
        when every attempt failed, NoAttemptRecordedError when the policy
        allows no attempt at all.
        """
        policy = self._retry_policy
        max_attempts = policy.max_attempts if policy.enabled else min(policy.max_attempts, 1)

        last_error: Optional[SignatureVerificationError] = None
        for attempt in range(max_attempts):
            try:
                return await self.validate_and_log(
                    payload, signature, provider, event,
                    attempt=attempt,
                    external_id=external_id if attempt == 0 else None,
                )
            except SignatureVerificationError as e:
                last_error = e

            if attempt < max_attempts - 1:
                delay = policy.delay_for(attempt)
                logger.info(
                    "Retrying %s:%s in %ss (attempt %d/%d)",
                    provider, event, delay, attempt + 2, max_attempts,
                    extra=webhook_extra(provider, event, attempt=attempt, delay_seconds=delay),
                )
                await self._sleep(delay)

        if last_error is None:
            raise NoAttemptRecordedError(provider, policy.max_attempts)
        raise RetriesExhaustedError(last_error, attempts=max_attempts) from last_error

    async def validate_with_deferred_retries(
        self,
        payload: bytes,
        signature: str,
        provider: str,
        event: str,
        external_id: Optional[str] = None,
    ) -> ValidationOutcome:
        """
        Run attempt 0 inline and hand the rest of the chain to the scheduler.
        Returns or raises the outcome of attempt 0.
        """
        task = RetryAttempt(
            provider=provider,
            event=event,
            payload=payload,
            signature=signature,
            attempt=0,
            external_id=external_id,
        )
        return await self.run_attempt(task)

    async def run_attempt(self, task: RetryAttempt) -> ValidationOutcome:
        """Execute one attempt of a chain, scheduling the next one on failure."""
        policy = self._retry_policy
        if policy.max_attempts <= 0:
            raise NoAttemptRecordedError(task.provider, policy.max_attempts)

        try:
            return await self.validate_and_log(
                task.payload, task.signature, task.provider, task.event,
                attempt=task.attempt,
                external_id=task.external_id if task.attempt == 0 else None,
            )
        except SignatureVerificationError:
            await self._schedule_next(task)
            raise

    async def _schedule_next(self, task: RetryAttempt) -> Optional[str]:
        policy = self._retry_policy
        if not policy.enabled or self._scheduler is None:
            return None
        if task.attempt + 1 >= policy.max_attempts:
            logger.warning(
                "Retries exhausted for %s:%s after %d attempts",
                task.provider, task.event, task.attempt + 1,
                extra=webhook_extra(task.provider, task.event, attempt=task.attempt),
            )
            return None

        delay = policy.delay_for(task.attempt)
        return await self._scheduler.schedule(delay, self.run_attempt, task.next())

    async def _notify_if_needed(self, provider: str, event: str) -> None:
        if self._notification_sender is None:
            return
        try:
            await self._notification_sender.send_if_needed(provider, event)
        except Exception as e:
            logger.error("Failure notification check failed for %s:%s: %s", provider, event, str(e))
