"""Storage for outstanding magic link tokens.

Two implementations share the ``TokenStore`` interface:

- ``SQLTokenStore`` persists to the database and is shared by every
  server instance.
- ``MemoryTokenStore`` is the degraded-mode fallback. It lives in process
  memory, does not survive restarts and is not visible to other instances.

``mark_used`` is the only mutation of an existing token. It is a
compare-and-set: under concurrent calls for the same token exactly one
returns True.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from linkgate.models import MagicToken, ensure_utc
from linkgate.services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def _clone(token: MagicToken) -> MagicToken:
    """Detached copy so callers never share a stored instance."""
    return MagicToken.model_validate(token.model_dump())


class TokenStore(ABC):
    """Keyed storage for magic link tokens."""

    durable: bool = False

    @abstractmethod
    async def add(self, token: MagicToken) -> None:
        """Persist a newly issued token."""

    @abstractmethod
    async def get(self, token: str) -> MagicToken | None:
        """Look up a token by value."""

    @abstractmethod
    async def mark_used(self, token: str, used_at: datetime) -> bool:
        """Atomically flip ``used`` from False to True.

        Returns:
            True if this call consumed the token, False if it was already
            used or no longer exists
        """

    @abstractmethod
    async def delete(self, token: str) -> None:
        """Remove a token if present."""

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Remove every token past its expiry, used or not.

        Returns:
            Number of tokens removed
        """

    @abstractmethod
    async def count_outstanding(self, now: datetime) -> int:
        """Count unused tokens that have not expired."""


class MemoryTokenStore(TokenStore):
    """Process-local token store used when no database is configured."""

    durable = False

    def __init__(self) -> None:
        self._tokens: dict[str, MagicToken] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, token: str) -> asyncio.Lock:
        lock = self._locks.get(token)
        if lock is None:
            lock = self._locks[token] = asyncio.Lock()
        return lock

    async def add(self, token: MagicToken) -> None:
        self._tokens[token.token] = _clone(token)

    async def get(self, token: str) -> MagicToken | None:
        stored = self._tokens.get(token)
        return _clone(stored) if stored else None

    async def mark_used(self, token: str, used_at: datetime) -> bool:
        async with self._lock_for(token):
            stored = self._tokens.get(token)
            if stored is None or stored.used:
                return False
            stored.used = True
            stored.used_at = used_at
            return True

    async def delete(self, token: str) -> None:
        self._tokens.pop(token, None)
        self._locks.pop(token, None)

    async def delete_expired(self, now: datetime) -> int:
        expired = [key for key, stored in self._tokens.items() if stored.is_expired(now)]
        for key in expired:
            await self.delete(key)
        return len(expired)

    async def count_outstanding(self, now: datetime) -> int:
        return sum(
            1 for stored in self._tokens.values() if not stored.used and not stored.is_expired(now)
        )


class SQLTokenStore(TokenStore):
    """Token store backed by the ``magic_tokens`` table."""

    durable = True

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Token store unavailable: {e!r}")
            raise StoreUnavailableError() from e

    async def add(self, token: MagicToken) -> None:
        async with self._session() as session:
            session.add(_clone(token))
            await session.commit()

    async def get(self, token: str) -> MagicToken | None:
        async with self._session() as session:
            result = await session.execute(select(MagicToken).where(MagicToken.token == token))
            record = result.scalar_one_or_none()
            if record is None:
                return None
            record.expires_at = ensure_utc(record.expires_at)
            record.created_at = ensure_utc(record.created_at)
            if record.used_at is not None:
                record.used_at = ensure_utc(record.used_at)
            return record

    async def mark_used(self, token: str, used_at: datetime) -> bool:
        async with self._session() as session:
            stmt = (
                update(MagicToken)
                .where(col(MagicToken.token) == token, col(MagicToken.used).is_(False))
                .values(used=True, used_at=used_at)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1  # type: ignore[attr-defined]

    async def delete(self, token: str) -> None:
        async with self._session() as session:
            await session.execute(delete(MagicToken).where(col(MagicToken.token) == token))
            await session.commit()

    async def delete_expired(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(MagicToken).where(col(MagicToken.expires_at) < now)
            )
            await session.commit()
            return result.rowcount or 0  # type: ignore[attr-defined]

    async def count_outstanding(self, now: datetime) -> int:
        async with self._session() as session:
            stmt = select(func.count()).select_from(MagicToken).where(
                col(MagicToken.used).is_(False),
                col(MagicToken.expires_at) >= now,
            )
            result = await session.execute(stmt)
            return int(result.scalar_one())
