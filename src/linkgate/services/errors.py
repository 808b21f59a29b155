"""Authentication error taxonomy.

Every failure of issuance or verification is raised as a subclass of
``AuthError``. Each carries a stable machine ``code``, the HTTP status the
API answers with, and a message that can be shown to the end user. The
client maps response payloads back onto the same classes with
``error_from_payload``.
"""

from typing import Any


class AuthError(Exception):
    """Base class for authentication failures."""

    code = "verification_failed"
    status_code = 500
    default_message = "Verification failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the error body returned by the API."""
        return {"error": self.message, "code": self.code}


class InvalidEmailError(AuthError):
    """Email failed the syntactic check."""

    code = "invalid_email"
    status_code = 400
    default_message = "Please enter a valid email address"


class RateLimitedError(AuthError):
    """Device exhausted its magic link quota for the current window."""

    code = "rate_limited"
    status_code = 429
    default_message = "Rate limit exceeded"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = max(0, int(retry_after))
        super().__init__(
            message or f"Rate limit exceeded. Please try again in {self.retry_after} seconds."
        )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["retryAfter"] = self.retry_after
        return payload


class TokenNotFoundError(AuthError):
    code = "not_found"
    status_code = 400
    default_message = "Token not found"


class TokenAlreadyUsedError(AuthError):
    code = "already_used"
    status_code = 400
    default_message = "Token already used"


class TokenExpiredError(AuthError):
    code = "expired"
    status_code = 400
    default_message = "Token expired"


class EmailMismatchError(AuthError):
    code = "email_mismatch"
    status_code = 400
    default_message = "Token email mismatch"


class StoreUnavailableError(AuthError):
    """Persistence layer could not be reached. Issuance fails closed."""

    code = "store_unavailable"
    status_code = 503
    default_message = "Authentication service temporarily unavailable"


class DeliveryFailedError(AuthError):
    """Magic link email could not be handed to the delivery provider."""

    code = "delivery_failed"
    status_code = 502
    default_message = "Unable to send verification email. Please try again."


class VerificationFailedError(AuthError):
    """Catch-all for unexpected backend errors."""


ERROR_TYPES: dict[str, type[AuthError]] = {
    cls.code: cls
    for cls in (
        InvalidEmailError,
        RateLimitedError,
        TokenNotFoundError,
        TokenAlreadyUsedError,
        TokenExpiredError,
        EmailMismatchError,
        StoreUnavailableError,
        DeliveryFailedError,
        VerificationFailedError,
    )
}


def error_from_payload(status_code: int, payload: dict[str, Any]) -> AuthError:
    """Rebuild an ``AuthError`` from an API error response."""
    code = payload.get("code")
    message = payload.get("error")
    error_type = ERROR_TYPES.get(code or "")

    if error_type is RateLimitedError:
        return RateLimitedError(retry_after=int(payload.get("retryAfter", 0)), message=message)
    if error_type is not None:
        return error_type(message)
    if status_code == 429:
        return RateLimitedError(retry_after=int(payload.get("retryAfter", 0)), message=message)
    if status_code == 503:
        return StoreUnavailableError(message)
    return VerificationFailedError(message)
