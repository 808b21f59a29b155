"""API request and response schemas."""

from linkgate.schemas.auth import (
    MagicLinkRequest,
    MagicLinkResponse,
    SessionPayload,
    VerifiedUser,
    VerifyRequest,
    VerifyResponse,
)
from linkgate.schemas.common import ErrorResponse

__all__ = [
    "ErrorResponse",
    "MagicLinkRequest",
    "MagicLinkResponse",
    "SessionPayload",
    "VerifiedUser",
    "VerifyRequest",
    "VerifyResponse",
]
