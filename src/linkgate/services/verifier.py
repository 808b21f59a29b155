"""Magic link redemption."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from linkgate.models import Role, UserProfile, utcnow
from linkgate.services.errors import (
    EmailMismatchError,
    InvalidEmailError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from linkgate.services.identity import RolePolicy, is_valid_email, normalize_email
from linkgate.services.profiles import ProfileStore
from linkgate.services.token_store import TokenStore

logger = logging.getLogger(__name__)

# Longer than any token we issue
MAX_TOKEN_LENGTH = 128


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity proven by redeeming a token."""

    email: str
    role: Role
    verified_at: datetime
    profile: UserProfile


class TokenVerifier:
    """Validates a token against its bound email and consumes it exactly once."""

    def __init__(
        self,
        store: TokenStore,
        profiles: ProfileStore,
        policy: RolePolicy,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.profiles = profiles
        self.policy = policy
        self.clock = clock

    async def verify(self, token: str, email: str) -> VerifiedIdentity:
        """Redeem ``token`` for ``email``.

        A failed check leaves the token untouched, so a mismatched email
        does not burn a token the rightful owner can still redeem.

        Raises:
            InvalidEmailError: email failed the syntactic check
            TokenNotFoundError: no such token
            TokenAlreadyUsedError: token was consumed earlier, or lost a
                concurrent race to consume it
            TokenExpiredError: token is past its expiry (it is deleted)
            EmailMismatchError: token was issued for another address
            StoreUnavailableError: token store could not be reached
        """
        if not is_valid_email(email):
            raise InvalidEmailError()
        if not token or len(token) > MAX_TOKEN_LENGTH:
            raise TokenNotFoundError()
        normalized = normalize_email(email)

        record = await self.store.get(token)
        if record is None:
            raise TokenNotFoundError()

        now = self.clock()
        if record.used:
            if record.is_expired(now):
                await self.store.delete(token)
            raise TokenAlreadyUsedError()

        if record.is_expired(now):
            await self.store.delete(token)
            raise TokenExpiredError()

        if record.email != normalized:
            logger.warning(f"Token email mismatch for {normalized}")
            raise EmailMismatchError()

        if not await self.store.mark_used(token, now):
            raise TokenAlreadyUsedError()

        role = self.policy.resolve(record.email)
        if role != record.role:
            # Allow-list changed since issuance; the current policy wins
            logger.warning(
                f"Role for {record.email} changed from {record.role.value} to {role.value} "
                "between issuance and redemption"
            )

        profile = await self.profiles.upsert(record.email, role, now)
        logger.info(f"Magic link redeemed for {record.email} ({role.value})")
        return VerifiedIdentity(email=record.email, role=role, verified_at=now, profile=profile)
