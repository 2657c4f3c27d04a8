"""
Typed error taxonomy for webhook ingestion.

Every error knows its kind and the HTTP status the boundary answers with,
so callers never inspect message text to decide how to respond.

Propagation:
- RequestError: rejected before verification, never logged.
- ConfigurationError: operational misconfiguration, never logged.
- SignatureVerificationError: logged as a failed attempt, then raised.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MISSING_HEADER = "missing_header"
    EMPTY_PAYLOAD = "empty_payload"
    SERVICE_UNSUPPORTED = "service_unsupported"
    SECRET_NOT_CONFIGURED = "secret_not_configured"
    NO_ATTEMPT_RECORDED = "no_attempt_recorded"
    MISSING_SIGNATURE = "missing_signature"
    MALFORMED_SIGNATURE = "malformed_signature"
    EXPIRED = "expired"
    SIGNATURE_MISMATCH = "signature_mismatch"
    RETRIES_EXHAUSTED = "retries_exhausted"


class WebhookError(Exception):
    kind: ErrorKind
    http_status: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --- Request errors ---


class RequestError(WebhookError):
    http_status = 400


class MissingHeaderError(RequestError):
    kind = ErrorKind.MISSING_HEADER

    def __init__(self, header: str):
        super().__init__(f"Missing {header} header.")
        self.header = header


class EmptyPayloadError(RequestError):
    kind = ErrorKind.EMPTY_PAYLOAD

    def __init__(self):
        super().__init__("Empty webhook payload.")


# --- Configuration errors ---


class ConfigurationError(WebhookError):
    http_status = 500


class ServiceUnsupportedError(ConfigurationError):
    kind = ErrorKind.SERVICE_UNSUPPORTED
    http_status = 400

    def __init__(self, provider: str):
        super().__init__(f"Service {provider} is not supported.")
        self.provider = provider


class SecretNotConfiguredError(ConfigurationError):
    kind = ErrorKind.SECRET_NOT_CONFIGURED

    def __init__(self, provider: str):
        super().__init__(f"Webhook secret not configured for {provider}.")
        self.provider = provider


class NoAttemptRecordedError(ConfigurationError):
    kind = ErrorKind.NO_ATTEMPT_RECORDED

    def __init__(self, provider: str, max_attempts: int):
        super().__init__(
            f"No validation attempt recorded for {provider} "
            f"(max_attempts={max_attempts})."
        )
        self.provider = provider
        self.max_attempts = max_attempts


# --- Verification failures (logged) ---


class SignatureVerificationError(WebhookError):
    """A delivery failed verification. log_entry is set once the failure is recorded."""

    def __init__(self, message: str):
        super().__init__(message)
        self.log_entry = None


class MissingSignatureError(SignatureVerificationError):
    kind = ErrorKind.MISSING_SIGNATURE


class MalformedSignatureError(SignatureVerificationError):
    kind = ErrorKind.MALFORMED_SIGNATURE


class ExpiredSignatureError(SignatureVerificationError):
    kind = ErrorKind.EXPIRED

    def __init__(self, tolerance: int):
        super().__init__(f"Webhook is expired (tolerance: {tolerance}s).")
        self.tolerance = tolerance


class SignatureMismatchError(SignatureVerificationError):
    kind = ErrorKind.SIGNATURE_MISMATCH
    http_status = 403


class RetriesExhaustedError(SignatureVerificationError):
    """
    Raised when every attempt in a bounded retry chain failed.
    Reports the kind and status of the last failure so callers can treat it
    like the underlying error.
    """

    def __init__(self, last_error: SignatureVerificationError, attempts: int):
        super().__init__(last_error.message)
        self.last_error = last_error
        self.attempts = attempts
        self.log_entry = last_error.log_entry

    @property
    def kind(self) -> ErrorKind:
        return self.last_error.kind

    @property
    def http_status(self) -> int:
        return self.last_error.http_status


class DuplicateDeliveryError(Exception):
    """A log entry already exists for (provider, external_id)."""

    def __init__(self, provider: str, external_id: Optional[str]):
        super().__init__(f"Delivery {external_id} for {provider} was already recorded.")
        self.provider = provider
        self.external_id = external_id
