"""
Webhook signature validation - verify incoming webhooks are authentic.

Supported providers:
- Stripe: HMAC-SHA256 over "<t>.<payload>" via Stripe-Signature (t=...,v1=...)
- GitHub: HMAC-SHA256 over the payload via X-Hub-Signature-256 (sha256=...)
- Shopify: base64 HMAC-SHA256 over the payload via X-Shopify-Hmac-Sha256
- Slack: HMAC-SHA256 over "v0:<ts>:<payload>", signature passed as "<ts>:v0=..."

Every validator returns True or raises a SignatureVerificationError subclass.
All comparisons go through hmac.compare_digest on bytes.
"""
import base64
import hashlib
import hmac
import time
from typing import Optional

from hookwarden.errors import (
    ExpiredSignatureError,
    MalformedSignatureError,
    MissingSignatureError,
    SignatureMismatchError,
)

DEFAULT_TOLERANCE_SECONDS = 300

SLACK_SIGNATURE_VERSION = "v0"


def _hmac_sha256(secret: str, message: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def _constant_time_equals(expected: str, provided: str) -> bool:
    # Encode first: compare_digest rejects non-ASCII str input.
    return hmac.compare_digest(
        expected.encode("utf-8"),
        provided.encode("utf-8", errors="replace"),
    )


def _is_unix_timestamp(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _check_timestamp(timestamp: int, tolerance: int, now: Optional[float]) -> None:
    current = int(now if now is not None else time.time())
    if current - timestamp > tolerance:
        raise ExpiredSignatureError(tolerance)


def parse_stripe_signature_header(header: str) -> tuple[Optional[int], list[str]]:
    """
    Split a Stripe-Signature header into its timestamp and v1 signatures.
    Unknown keys (v0, future schemes) are ignored.
    """
    timestamp = None
    signatures = []
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t" and timestamp is None and _is_unix_timestamp(value):
            timestamp = int(value)
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def validate_stripe_signature(
    payload: bytes,
    signature: str,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    timestamp, signatures = parse_stripe_signature_header(signature)
    if timestamp is None or not signatures:
        raise MalformedSignatureError("Invalid Stripe signature format.")

    _check_timestamp(timestamp, tolerance, now)

    expected = _hmac_sha256(secret, f"{timestamp}.".encode("utf-8") + payload).hex()
    if not any(_constant_time_equals(expected, sig) for sig in signatures):
        raise SignatureMismatchError("Invalid Stripe webhook signature.")
    return True


def validate_github_signature(
    payload: bytes,
    signature: str,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    # GitHub signatures carry no timestamp; tolerance is accepted for a uniform call shape.
    prefix = "sha256="
    if not signature or not signature.startswith(prefix):
        raise MalformedSignatureError("Invalid GitHub signature format.")

    expected = _hmac_sha256(secret, payload).hex()
    if not _constant_time_equals(expected, signature[len(prefix):]):
        raise SignatureMismatchError("Invalid GitHub webhook signature.")
    return True


def validate_shopify_signature(
    payload: bytes,
    signature: str,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    if not signature:
        raise MissingSignatureError("Missing Shopify signature.")

    expected = base64.b64encode(_hmac_sha256(secret, payload)).decode("ascii")
    if not _constant_time_equals(expected, signature):
        raise SignatureMismatchError("Invalid Shopify webhook signature.")
    return True


def validate_slack_signature(
    payload: bytes,
    signature: str,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Validate a Slack request signature.

    The caller combines X-Slack-Request-Timestamp and X-Slack-Signature
    into "<timestamp>:<signature>" (see combine_slack_signature).
    """
    timestamp_part, sep, slack_signature = (signature or "").partition(":")
    if not sep or not _is_unix_timestamp(timestamp_part):
        raise MalformedSignatureError(
            'Invalid Slack signature format. Expected "timestamp:v0=signature".'
        )

    timestamp = int(timestamp_part)
    _check_timestamp(timestamp, tolerance, now)

    prefix = f"{SLACK_SIGNATURE_VERSION}="
    if not slack_signature.startswith(prefix):
        raise MalformedSignatureError('Invalid Slack signature format. Expected "v0=" prefix.')

    basestring = f"{SLACK_SIGNATURE_VERSION}:{timestamp_part}:".encode("utf-8") + payload
    expected = prefix + _hmac_sha256(secret, basestring).hex()
    if not _constant_time_equals(expected, slack_signature):
        raise SignatureMismatchError("Invalid Slack webhook signature.")
    return True


def combine_slack_signature(timestamp: str, signature: str) -> str:
    """Join the Slack timestamp and signature headers into the validator's input format."""
    return f"{timestamp}:{signature}"


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for dedup and audit."""
    return hashlib.sha256(body).hexdigest()
