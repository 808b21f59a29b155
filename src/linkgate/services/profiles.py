"""User profile upserts performed on successful redemption."""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from linkgate.models import Role, UserProfile
from linkgate.services.errors import StoreUnavailableError
from linkgate.services.identity import normalize_email

logger = logging.getLogger(__name__)


def default_display_name(email: str) -> str:
    """Local part of the address, used until the user picks a name."""
    return email.split("@", 1)[0]


class ProfileStore(ABC):
    """Profile records keyed by normalized email."""

    @abstractmethod
    async def upsert(self, email: str, role: Role, now: datetime) -> UserProfile:
        """Create or merge the profile for ``email``.

        Idempotent on email: repeated or concurrent calls converge to one
        record carrying the latest role and login time.
        """

    @abstractmethod
    async def get(self, email: str) -> UserProfile | None:
        """Fetch a profile by email."""

    @abstractmethod
    async def list_all(self) -> list[UserProfile]:
        """All profiles ordered by email."""


class MemoryProfileStore(ProfileStore):
    """Process-local profile store for degraded mode."""

    def __init__(self) -> None:
        self._profiles: dict[str, UserProfile] = {}

    async def upsert(self, email: str, role: Role, now: datetime) -> UserProfile:
        email = normalize_email(email)
        profile = self._profiles.get(email)
        if profile is None:
            profile = UserProfile(
                email=email,
                display_name=default_display_name(email),
                created_at=now,
            )
            self._profiles[email] = profile
        profile.role = role
        profile.verified = True
        profile.last_login = now
        profile.updated_at = now
        return profile

    async def get(self, email: str) -> UserProfile | None:
        return self._profiles.get(normalize_email(email))

    async def list_all(self) -> list[UserProfile]:
        return [self._profiles[key] for key in sorted(self._profiles)]


class SQLProfileStore(ProfileStore):
    """Profile store backed by the ``user_profiles`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Profile store unavailable: {e!r}")
            raise StoreUnavailableError() from e

    async def upsert(self, email: str, role: Role, now: datetime) -> UserProfile:
        email = normalize_email(email)
        try:
            return await self._upsert(email, role, now)
        except IntegrityError:
            # A concurrent redemption inserted the row first; merge into it
            return await self._upsert(email, role, now)

    async def _upsert(self, email: str, role: Role, now: datetime) -> UserProfile:
        async with self._session() as session:
            result = await session.execute(select(UserProfile).where(UserProfile.email == email))
            profile = result.scalar_one_or_none()
            if profile is None:
                profile = UserProfile(email=email, display_name=default_display_name(email))
                session.add(profile)
            profile.role = role
            profile.verified = True
            profile.last_login = now
            await session.commit()
            return profile

    async def get(self, email: str) -> UserProfile | None:
        async with self._session() as session:
            result = await session.execute(
                select(UserProfile).where(UserProfile.email == normalize_email(email))
            )
            return result.scalar_one_or_none()

    async def list_all(self) -> list[UserProfile]:
        async with self._session() as session:
            result = await session.execute(select(UserProfile).order_by(UserProfile.email))
            return list(result.scalars().all())
