"""Wiring of stores, limiter, issuer and verifier for the configured mode."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkgate.config import Settings, settings
from linkgate.models import utcnow
from linkgate.services.email import EmailService
from linkgate.services.identity import RolePolicy
from linkgate.services.issuer import TokenIssuer
from linkgate.services.profiles import MemoryProfileStore, ProfileStore, SQLProfileStore
from linkgate.services.rate_limit import InMemoryRateLimiter, RateLimiter, SQLRateLimiter
from linkgate.services.token_store import MemoryTokenStore, SQLTokenStore, TokenStore
from linkgate.services.verifier import TokenVerifier

logger = logging.getLogger(__name__)


@dataclass
class AuthBackend:
    """Everything the auth endpoints need, built for one storage mode."""

    token_store: TokenStore
    rate_limiter: RateLimiter
    profiles: ProfileStore
    policy: RolePolicy
    issuer: TokenIssuer
    verifier: TokenVerifier
    session_ttl: timedelta
    clock: Callable[[], datetime]

    @property
    def durable(self) -> bool:
        return self.token_store.durable

    @property
    def mode(self) -> str:
        return "durable" if self.durable else "degraded"


def build_backend(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    email_service: EmailService | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> AuthBackend:
    """Build the backend.

    With a session factory every store is SQL-backed and shared across
    instances. Without one, tokens, rate limits and profiles all live in
    process memory.
    """
    token_store: TokenStore
    rate_limiter: RateLimiter
    profiles: ProfileStore

    if session_factory is not None:
        token_store = SQLTokenStore(session_factory)
        rate_limiter = SQLRateLimiter(
            session_factory,
            requests=config.rate_limit_requests,
            window_seconds=config.rate_limit_window_seconds,
            clock=clock,
        )
        profiles = SQLProfileStore(session_factory)
    else:
        logger.warning(
            "No database configured: magic link tokens, rate limits and profiles are held "
            "in process memory (degraded mode, lost on restart, not shared across instances)"
        )
        token_store = MemoryTokenStore()
        rate_limiter = InMemoryRateLimiter(
            requests=config.rate_limit_requests,
            window_seconds=config.rate_limit_window_seconds,
            clock=clock,
        )
        profiles = MemoryProfileStore()

    policy = RolePolicy.from_settings(config)
    email_service = email_service or EmailService(
        expiration_minutes=config.magic_link_expiration_minutes
    )

    issuer = TokenIssuer(
        store=token_store,
        rate_limiter=rate_limiter,
        email_service=email_service,
        policy=policy,
        app_url=config.app_url,
        token_ttl=timedelta(minutes=config.magic_link_expiration_minutes),
        clock=clock,
    )
    verifier = TokenVerifier(store=token_store, profiles=profiles, policy=policy, clock=clock)

    return AuthBackend(
        token_store=token_store,
        rate_limiter=rate_limiter,
        profiles=profiles,
        policy=policy,
        issuer=issuer,
        verifier=verifier,
        session_ttl=timedelta(days=config.session_expiration_days),
        clock=clock,
    )


_backend: AuthBackend | None = None


def get_auth_backend() -> AuthBackend:
    """Get the global backend, building it on first use."""
    global _backend
    if _backend is None:
        session_factory = None
        if settings.has_durable_store:
            from linkgate.database import get_session_factory

            session_factory = get_session_factory()
        _backend = build_backend(settings, session_factory=session_factory)
    return _backend


def reset_auth_backend() -> None:
    """Forget the global backend. Useful for testing."""
    global _backend
    _backend = None
