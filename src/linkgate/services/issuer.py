"""Magic link issuance."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from secrets import token_hex
from urllib.parse import urlencode

from linkgate.models import MagicToken, Role, utcnow
from linkgate.services.email import EmailService
from linkgate.services.errors import DeliveryFailedError, InvalidEmailError, RateLimitedError
from linkgate.services.identity import RolePolicy, is_valid_email, normalize_email
from linkgate.services.rate_limit import RateLimiter, RateLimitResult
from linkgate.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """Generate an unguessable token (256 bits, hex encoded)."""
    return token_hex(32)


def build_magic_link(app_url: str, token: str, email: str) -> str:
    """Build the link the user follows to redeem a token."""
    query = urlencode({"token": token, "email": email})
    return f"{app_url.rstrip('/')}/auth/verify?{query}"


@dataclass
class IssueResult:
    """Acknowledgement of a sent magic link. Never carries the token."""

    email: str
    role: Role
    expires_at: datetime
    rate_limit: RateLimitResult


class TokenIssuer:
    """Creates tokens, persists them and hands them to email delivery."""

    def __init__(
        self,
        store: TokenStore,
        rate_limiter: RateLimiter,
        email_service: EmailService,
        policy: RolePolicy,
        app_url: str,
        token_ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.rate_limiter = rate_limiter
        self.email_service = email_service
        self.policy = policy
        self.app_url = app_url
        self.token_ttl = token_ttl
        self.clock = clock

    async def issue(self, email: str, device_id: str) -> IssueResult:
        """Issue a magic link for ``email`` requested from ``device_id``.

        Raises:
            InvalidEmailError: email failed the syntactic check
            RateLimitedError: device quota exhausted for the current window
            StoreUnavailableError: token could not be persisted
            DeliveryFailedError: email provider rejected the message
        """
        if not is_valid_email(email):
            raise InvalidEmailError()
        normalized = normalize_email(email)

        rate = await self.rate_limiter.hit(device_id)
        if not rate.success:
            logger.warning(f"Magic link rate limit hit for {device_id}")
            raise RateLimitedError(retry_after=rate.retry_after)

        role = self.policy.resolve(normalized)
        now = self.clock()
        record = MagicToken(
            token=generate_token(),
            email=normalized,
            role=role,
            created_at=now,
            expires_at=now + self.token_ttl,
        )
        await self.store.add(record)

        magic_link = build_magic_link(self.app_url, record.token, normalized)
        try:
            sent = await self.email_service.send_magic_link(
                to=normalized, magic_link=magic_link, role=role
            )
        except Exception as e:
            logger.error(f"Email delivery raised for {normalized}: {e!r}", exc_info=True)
            await self.store.delete(record.token)
            raise DeliveryFailedError() from e
        if not sent:
            # Fail closed: a token nobody received must not stay redeemable
            await self.store.delete(record.token)
            raise DeliveryFailedError()

        logger.info(f"Magic link issued for {normalized} ({role.value})")
        return IssueResult(
            email=normalized,
            role=role,
            expires_at=record.expires_at,
            rate_limit=rate,
        )
