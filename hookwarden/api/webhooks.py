"""
Webhook ingress - receive deliveries from every registered provider.

Request handling (in order):
1. Provider lookup (400 if unsupported)
2. Signature header + non-empty body (400 if missing)
3. Event type / external id extraction via the provider's parser
4. Validation orchestrator: idempotency, verification, logging, retries

Error statuses come from the error taxonomy, never from message text.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from hookwarden.api.deps import get_orchestrator, get_registry
from hookwarden.errors import EmptyPayloadError, MissingHeaderError, WebhookError
from hookwarden.schemas.webhook_logs import WebhookReceivedResponse
from hookwarden.services.payload_parsers import decode_payload
from hookwarden.services.providers import ProviderRegistry, ProviderSpec
from hookwarden.services.validation import AlreadyProcessed, ValidationOrchestrator
from hookwarden.utils.logging import webhook_extra
from hookwarden.utils.webhook_signatures import combine_slack_signature

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


def _extract_signature(spec: ProviderSpec, request: Request) -> str:
    signature = request.headers.get(spec.signature_header)
    if not signature:
        raise MissingHeaderError(spec.signature_header)

    if spec.timestamp_header:
        timestamp = request.headers.get(spec.timestamp_header)
        if not timestamp:
            raise MissingHeaderError(spec.timestamp_header)
        return combine_slack_signature(timestamp, signature)
    return signature


def _header(request: Request, name) -> str | None:
    return request.headers.get(name) if name else None


@router.post("/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
    orchestrator: ValidationOrchestrator = Depends(get_orchestrator),
):
    """Verify and record one webhook delivery."""
    try:
        spec = registry.get(provider)
        signature = _extract_signature(spec, request)
        body = await request.body()
        if not body:
            raise EmptyPayloadError()

        data = decode_payload(body)
        parser = spec.parser
        external_header = _header(request, spec.external_id_header)
        event = parser.extract_event_type(data, _header(request, spec.event_header))
        external_id = parser.extract_external_id(data, external_header)
        metadata = parser.extract_metadata(data, external_header)

        outcome = await orchestrator.validate_with_deferred_retries(
            body, signature, provider, event, external_id=external_id,
        )
    except WebhookError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)

    if isinstance(outcome, AlreadyProcessed):
        return outcome.to_response()

    logger.info(
        "Webhook accepted: %s:%s", provider, event,
        extra=webhook_extra(provider, event, log_id=str(outcome.id), external_id=external_id),
    )
    return WebhookReceivedResponse(
        log_id=str(outcome.id),
        provider=provider,
        event=event,
        attempt=outcome.attempt,
        metadata=metadata,
    )
