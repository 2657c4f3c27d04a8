"""
Provider registry - maps a provider tag to its validator, parser and headers.

Adding a provider means registering one ProviderSpec; the orchestrator and
the HTTP layer only ever talk to the registry.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from hookwarden.errors import SecretNotConfiguredError, ServiceUnsupportedError
from hookwarden.services.payload_parsers import (
    GitHubPayloadParser,
    PayloadParser,
    ShopifyPayloadParser,
    SlackPayloadParser,
    StripePayloadParser,
)
from hookwarden.utils.webhook_signatures import (
    validate_github_signature,
    validate_shopify_signature,
    validate_slack_signature,
    validate_stripe_signature,
)

logger = logging.getLogger(__name__)

# (payload, signature, secret, tolerance) -> True, or raises SignatureVerificationError
SignatureValidator = Callable[[bytes, str, str, int], bool]


class Provider(str, Enum):
    STRIPE = "stripe"
    GITHUB = "github"
    SLACK = "slack"
    SHOPIFY = "shopify"


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    validate: SignatureValidator
    parser: PayloadParser
    signature_header: str
    timestamp_header: Optional[str] = None
    external_id_header: Optional[str] = None
    event_header: Optional[str] = None


DEFAULT_PROVIDERS = (
    ProviderSpec(
        name=Provider.STRIPE.value,
        validate=validate_stripe_signature,
        parser=StripePayloadParser(),
        signature_header="Stripe-Signature",
    ),
    ProviderSpec(
        name=Provider.GITHUB.value,
        validate=validate_github_signature,
        parser=GitHubPayloadParser(),
        signature_header="X-Hub-Signature-256",
        external_id_header="X-GitHub-Delivery",
    ),
    ProviderSpec(
        name=Provider.SLACK.value,
        validate=validate_slack_signature,
        parser=SlackPayloadParser(),
        signature_header="X-Slack-Signature",
        timestamp_header="X-Slack-Request-Timestamp",
    ),
    ProviderSpec(
        name=Provider.SHOPIFY.value,
        validate=validate_shopify_signature,
        parser=ShopifyPayloadParser(),
        signature_header="X-Shopify-Hmac-Sha256",
        external_id_header="X-Shopify-Webhook-Id",
        event_header="X-Shopify-Topic",
    ),
)


class ProviderRegistry:
    def __init__(
        self,
        secrets: Mapping[str, str],
        specs: Iterable[ProviderSpec] = DEFAULT_PROVIDERS,
    ):
        self._secrets = dict(secrets)
        self._specs: dict[str, ProviderSpec] = {}
        for spec in specs:
            self.register(spec)

    @classmethod
    def from_settings(cls, settings) -> "ProviderRegistry":
        registry = cls(settings.provider_secrets())
        unconfigured = [name for name in registry.providers() if not registry.has_secret(name)]
        if unconfigured:
            logger.warning(
                "No webhook secret configured for: %s - deliveries will be rejected",
                ", ".join(unconfigured),
            )
        return registry

    def register(self, spec: ProviderSpec, secret: Optional[str] = None) -> None:
        self._specs[spec.name] = spec
        if secret is not None:
            self._secrets[spec.name] = secret

    def is_supported(self, provider: str) -> bool:
        return provider in self._specs

    def providers(self) -> list[str]:
        return sorted(self._specs)

    def get(self, provider: str) -> ProviderSpec:
        spec = self._specs.get(provider)
        if spec is None:
            raise ServiceUnsupportedError(provider)
        return spec

    def has_secret(self, provider: str) -> bool:
        return bool(self._secrets.get(provider))

    def secret_for(self, provider: str) -> str:
        self.get(provider)
        secret = self._secrets.get(provider)
        if not secret:
            raise SecretNotConfiguredError(provider)
        return secret
