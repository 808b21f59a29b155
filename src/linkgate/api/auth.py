"""Authentication endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Query, Request, Response

from linkgate.api.deps import BackendDep
from linkgate.api.middleware import get_request_id
from linkgate.schemas import (
    ErrorResponse,
    MagicLinkRequest,
    MagicLinkResponse,
    SessionPayload,
    VerifiedUser,
    VerifyRequest,
    VerifyResponse,
)
from linkgate.services.backend import AuthBackend
from linkgate.services.errors import AuthError, VerificationFailedError
from linkgate.services.rate_limit import get_client_ip, get_identifier, rate_limit_headers

logger = logging.getLogger(__name__)

router = APIRouter()

# Device recorded on the session when the caller does not send one
DEFAULT_DEVICE_ID = "web"

ISSUE_ERRORS: dict[int | str, dict] = {
    400: {"model": ErrorResponse, "description": "Invalid email or request"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    502: {"model": ErrorResponse, "description": "Email delivery failed"},
    503: {"model": ErrorResponse, "description": "Token store unavailable"},
}

VERIFY_ERRORS: dict[int | str, dict] = {
    400: {"model": ErrorResponse, "description": "Token not found, used, expired or for another email"},
    500: {"model": ErrorResponse, "description": "Unexpected verification failure"},
    503: {"model": ErrorResponse, "description": "Token store unavailable"},
}


@router.post("/magic-link", response_model=MagicLinkResponse, responses=ISSUE_ERRORS)
async def request_magic_link(
    body: MagicLinkRequest,
    request: Request,
    response: Response,
    backend: BackendDep,
):
    """
    Request a magic link for authentication.

    The link is only ever delivered by email; the response is a bare
    acknowledgement.
    """
    identifier = get_identifier(body.device_id, get_client_ip(request))
    logger.info(f"Magic link requested for {body.email.strip().lower()}")

    result = await backend.issuer.issue(body.email, identifier)

    response.headers.update(rate_limit_headers(result.rate_limit))
    return MagicLinkResponse(
        message="Check your email for a magic link",
        remaining=result.rate_limit.remaining,
        request_id=get_request_id(),
    )


@router.get("/verify", response_model=VerifyResponse, responses=VERIFY_ERRORS)
async def verify_link(
    backend: BackendDep,
    token: Annotated[str, Query(min_length=1, max_length=256)],
    email: Annotated[str, Query(min_length=1, max_length=320)],
    device_id: Annotated[str | None, Query(alias="deviceId", max_length=255)] = None,
):
    """Verify a magic link followed from an email."""
    return await _redeem(backend, VerifyRequest(token=token, email=email, device_id=device_id))


@router.post("/verify", response_model=VerifyResponse, responses=VERIFY_ERRORS)
async def verify(body: VerifyRequest, backend: BackendDep):
    """Verify a magic link token submitted programmatically."""
    return await _redeem(backend, body)


async def _redeem(backend: AuthBackend, body: VerifyRequest) -> VerifyResponse:
    try:
        identity = await backend.verifier.verify(body.token, body.email)
    except AuthError as e:
        logger.info(f"Verification failed: {e.code}")
        raise
    except Exception as e:
        logger.error(f"Unexpected verification error: {e!r}", exc_info=True)
        raise VerificationFailedError() from e

    session = SessionPayload(
        email=identity.email,
        role=identity.role,
        verified=True,
        device_id=body.device_id or DEFAULT_DEVICE_ID,
        login_time=identity.verified_at,
        expires_at=identity.verified_at + backend.session_ttl,
    )
    return VerifyResponse(
        user=VerifiedUser(
            email=identity.email,
            role=identity.role,
            display_name=identity.profile.display_name,
        ),
        session=session,
        message="Authentication successful",
        request_id=get_request_id(),
    )
