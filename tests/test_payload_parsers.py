"""
Tests for hookwarden/services/payload_parsers.py - event type, metadata, external id.
"""
import pytest

from hookwarden.services.payload_parsers import (
    GitHubPayloadParser,
    ShopifyPayloadParser,
    SlackPayloadParser,
    StripePayloadParser,
    decode_payload,
)


class TestDecodePayload:
    def test_json_object(self):
        assert decode_payload(b'{"a": 1}') == {"a": 1}

    def test_undecodable_is_wrapped(self):
        assert decode_payload(b"not json") == {"raw": "not json"}

    def test_invalid_utf8_is_wrapped(self):
        result = decode_payload(b"\xff\xfe{")
        assert "raw" in result

    def test_json_list_kept(self):
        assert decode_payload(b"[1, 2]") == [1, 2]


class TestStripeParser:
    parser = StripePayloadParser()

    def test_event_type(self):
        assert self.parser.extract_event_type({"type": "charge.succeeded"}) == "charge.succeeded"

    def test_event_type_defaults_to_unknown(self):
        assert self.parser.extract_event_type({}) == "unknown"
        assert self.parser.extract_event_type(["not", "a", "dict"]) == "unknown"

    def test_external_id_is_event_id(self):
        assert self.parser.extract_external_id({"id": "evt_1"}) == "evt_1"
        assert self.parser.extract_external_id({}) is None

    def test_metadata(self):
        data = {
            "id": "evt_1",
            "api_version": "2024-06-20",
            "livemode": True,
            "data": {"object": {"id": "pi_1", "object": "payment_intent"}},
        }
        assert self.parser.extract_metadata(data) == {
            "event_id": "evt_1",
            "api_version": "2024-06-20",
            "livemode": True,
            "object_id": "pi_1",
            "object_type": "payment_intent",
        }

    def test_service_name(self):
        assert self.parser.service_name() == "stripe"


class TestGitHubParser:
    parser = GitHubPayloadParser()

    def test_action_and_event(self):
        assert self.parser.extract_event_type({"action": "opened", "event": "pull_request"}) == "opened.pull_request"

    def test_action_only(self):
        assert self.parser.extract_event_type({"action": "opened"}) == "opened"

    def test_event_without_action(self):
        assert self.parser.extract_event_type({"event": "push"}) == "push"

    def test_neither(self):
        assert self.parser.extract_event_type({}) == "unknown"

    def test_external_id_from_delivery_header(self):
        assert self.parser.extract_external_id({"action": "opened"}, "72d3162e-cc78") == "72d3162e-cc78"
        assert self.parser.extract_external_id({"action": "opened"}) is None

    def test_metadata(self):
        data = {
            "action": "opened",
            "sender": {"login": "octocat"},
            "repository": {"full_name": "octo/hello"},
            "organization": {"login": "octo"},
        }
        metadata = self.parser.extract_metadata(data, "delivery-1")
        assert metadata == {
            "delivery_id": "delivery-1",
            "action": "opened",
            "sender": "octocat",
            "repository": "octo/hello",
            "organization": "octo",
        }


class TestSlackParser:
    parser = SlackPayloadParser()

    @pytest.mark.parametrize("data,expected", [
        ({"type": "event_callback", "event": {"type": "message"}}, "message"),
        ({"type": "block_actions"}, "block_actions"),
        ({"command": "/deploy"}, "slash_command"),
        ({}, "unknown"),
        ({"event": "not-a-dict", "type": "url_verification"}, "url_verification"),
    ])
    def test_event_type_priority(self, data, expected):
        assert self.parser.extract_event_type(data) == expected

    @pytest.mark.parametrize("data,expected", [
        ({"event_id": "Ev1", "trigger_id": "T1"}, "Ev1"),
        ({"trigger_id": "T1", "actions": [{"action_ts": "1.2"}]}, "T1"),
        ({"actions": [{"action_ts": "1.2"}]}, "1.2"),
        ({"actions": []}, None),
        ({}, None),
    ])
    def test_external_id_priority(self, data, expected):
        assert self.parser.extract_external_id(data) == expected

    def test_metadata(self):
        data = {
            "team_id": "T1",
            "api_app_id": "A1",
            "event_id": "Ev1",
            "event": {"type": "message", "user": "U1", "channel": "C1"},
        }
        assert self.parser.extract_metadata(data) == {
            "team_id": "T1",
            "api_app_id": "A1",
            "event_id": "Ev1",
            "event_type": "message",
            "user_id": "U1",
            "channel_id": "C1",
        }

    def test_metadata_interactive_payload(self):
        data = {"team": {"id": "T2"}, "user": {"id": "U2"}, "channel": {"id": "C2"}}
        metadata = self.parser.extract_metadata(data)
        assert metadata["team_id"] == "T2"
        assert metadata["user_id"] == "U2"
        assert metadata["channel_id"] == "C2"


class TestShopifyParser:
    parser = ShopifyPayloadParser()

    def test_event_type_from_header(self):
        assert self.parser.extract_event_type({"topic": "ignored"}, "orders/create") == "orders/create"

    def test_event_type_payload_fallbacks(self):
        assert self.parser.extract_event_type({"_topic": "orders/paid", "topic": "x"}) == "orders/paid"
        assert self.parser.extract_event_type({"topic": "orders/updated"}) == "orders/updated"
        assert self.parser.extract_event_type({}) == "unknown"

    def test_external_id(self):
        assert self.parser.extract_external_id({"_webhook_id": "body"}, "header") == "header"
        assert self.parser.extract_external_id({"_webhook_id": "body"}) == "body"
        assert self.parser.extract_external_id({}) is None

    def test_metadata(self):
        data = {
            "id": 820982911946154500,
            "admin_graphql_api_id": "gid://shopify/Order/820982911946154508",
            "_shop_domain": "shop.myshopify.com",
            "order_number": 1001,
            "customer": {"id": 115310627314723954},
            "total_price": "403.00",
            "currency": "USD",
            "financial_status": "paid",
        }
        metadata = self.parser.extract_metadata(data)
        assert metadata["shop_domain"] == "shop.myshopify.com"
        assert metadata["customer_id"] == 115310627314723954
        assert metadata["financial_status"] == "paid"
