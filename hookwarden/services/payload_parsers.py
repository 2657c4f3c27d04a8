"""
Provider payload parsers - event type, metadata and external delivery id.

Parsers never raise on unexpected payload shapes: missing or mistyped
fields fall back to "unknown" / None so a malformed body still gets logged.
"""
import json
from typing import Any, Optional

UNKNOWN_EVENT = "unknown"


def decode_payload(body: bytes) -> Any:
    """Decode a raw body as JSON, wrapping anything undecodable as {"raw": text}."""
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def _dig(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class PayloadParser:
    """Base parser. Subclasses override the extract_* hooks they need."""

    service = "generic"

    def service_name(self) -> str:
        return self.service

    def extract_event_type(self, data: Any, header_value: Optional[str] = None) -> str:
        return header_value or UNKNOWN_EVENT

    def extract_metadata(self, data: Any, header_value: Optional[str] = None) -> dict:
        return {}

    def extract_external_id(self, data: Any, header_value: Optional[str] = None) -> Optional[str]:
        return _as_str(header_value)


class StripePayloadParser(PayloadParser):
    service = "stripe"

    def extract_event_type(self, data: Any, header_value: Optional[str] = None) -> str:
        return _as_str(_dig(data, "type")) or UNKNOWN_EVENT

    def extract_metadata(self, data: Any, header_value: Optional[str] = None) -> dict:
        return {
            "event_id": _dig(data, "id"),
            "api_version": _dig(data, "api_version"),
            "livemode": bool(_dig(data, "livemode")),
            "object_id": _dig(data, "data", "object", "id"),
            "object_type": _dig(data, "data", "object", "object"),
        }

    def extract_external_id(self, data: Any, header_value: Optional[str] = None) -> Optional[str]:
        # Stripe event ids (evt_...) are unique per delivery.
        return _as_str(_dig(data, "id"))


class GitHubPayloadParser(PayloadParser):
    service = "github"

    def extract_event_type(self, data: Any, header_value: Optional[str] = None) -> str:
        action = _as_str(_dig(data, "action"))
        event = _as_str(_dig(data, "event"))
        if action and event:
            return f"{action}.{event}"
        return action or event or UNKNOWN_EVENT

    def extract_metadata(self, data: Any, header_value: Optional[str] = None) -> dict:
        return {
            "delivery_id": _as_str(header_value),
            "action": _dig(data, "action"),
            "sender": _dig(data, "sender", "login"),
            "repository": _dig(data, "repository", "full_name"),
            "organization": _dig(data, "organization", "login"),
        }


class SlackPayloadParser(PayloadParser):
    service = "slack"

    def extract_event_type(self, data: Any, header_value: Optional[str] = None) -> str:
        # Events API wraps the event; interactive components carry a top-level type.
        nested = _as_str(_dig(data, "event", "type"))
        if nested:
            return nested
        top_level = _as_str(_dig(data, "type"))
        if top_level:
            return top_level
        if _dig(data, "command") is not None:
            return "slash_command"
        return UNKNOWN_EVENT

    def extract_metadata(self, data: Any, header_value: Optional[str] = None) -> dict:
        return {
            "team_id": _dig(data, "team_id") or _dig(data, "team", "id"),
            "api_app_id": _dig(data, "api_app_id"),
            "event_id": _dig(data, "event_id"),
            "event_type": _dig(data, "event", "type"),
            "user_id": _dig(data, "event", "user") or _dig(data, "user", "id"),
            "channel_id": _dig(data, "event", "channel") or _dig(data, "channel", "id"),
        }

    def extract_external_id(self, data: Any, header_value: Optional[str] = None) -> Optional[str]:
        event_id = _as_str(_dig(data, "event_id"))
        if event_id:
            return event_id
        trigger_id = _as_str(_dig(data, "trigger_id"))
        if trigger_id:
            return trigger_id
        actions = _dig(data, "actions")
        if isinstance(actions, list) and actions:
            return _as_str(_dig(actions[0], "action_ts"))
        return None


class ShopifyPayloadParser(PayloadParser):
    """
    Shopify puts the topic and webhook id in headers (X-Shopify-Topic,
    X-Shopify-Webhook-Id). The underscore-prefixed body fields are only
    present on replayed or hand-built payloads.
    """

    service = "shopify"

    def extract_event_type(self, data: Any, header_value: Optional[str] = None) -> str:
        return (
            _as_str(header_value)
            or _as_str(_dig(data, "_topic"))
            or _as_str(_dig(data, "topic"))
            or UNKNOWN_EVENT
        )

    def extract_metadata(self, data: Any, header_value: Optional[str] = None) -> dict:
        return {
            "id": _dig(data, "id"),
            "admin_graphql_api_id": _dig(data, "admin_graphql_api_id"),
            "shop_domain": _dig(data, "_shop_domain"),
            "order_number": _dig(data, "order_number"),
            "customer_id": _dig(data, "customer", "id"),
            "total_price": _dig(data, "total_price"),
            "currency": _dig(data, "currency"),
            "financial_status": _dig(data, "financial_status"),
        }

    def extract_external_id(self, data: Any, header_value: Optional[str] = None) -> Optional[str]:
        return _as_str(header_value) or _as_str(_dig(data, "_webhook_id"))
