"""Per-device rate limiting for magic link issuance.

Each device gets a window that starts at its first request. Requests are
counted until the ceiling is reached; further requests in the same window
are rejected without incrementing, so the stored count never exceeds the
ceiling. Once the window has elapsed the next request starts a new one.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Request
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col

from linkgate.models import RateLimitEntry, ensure_utc, utcnow
from linkgate.services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp in seconds
    retry_after: int = 0  # Seconds until the window resets, set when rejected


class RateLimiter(ABC):
    """Fixed-ceiling counter per device over a rolling window."""

    def __init__(
        self,
        requests: int,
        window_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.requests = requests
        self.window = timedelta(seconds=window_seconds)
        self.clock = clock

    @abstractmethod
    async def hit(self, device_id: str) -> RateLimitResult:
        """Count one issuance request for a device.

        Returns:
            RateLimitResult with success status and limit info
        """

    @abstractmethod
    async def cleanup_old_entries(self) -> int:
        """Remove entries whose window has elapsed.

        Returns:
            Number of entries removed
        """

    def _window_elapsed(self, window_start: datetime, now: datetime) -> bool:
        return now >= ensure_utc(window_start) + self.window

    def _allowed(self, count: int, window_start: datetime) -> RateLimitResult:
        reset_at = ensure_utc(window_start) + self.window
        return RateLimitResult(
            success=True,
            limit=self.requests,
            remaining=max(0, self.requests - count),
            reset=int(reset_at.timestamp()),
        )

    def _denied(self, window_start: datetime, now: datetime) -> RateLimitResult:
        reset_at = ensure_utc(window_start) + self.window
        retry_after = max(1, math.ceil((reset_at - now).total_seconds()))
        return RateLimitResult(
            success=False,
            limit=self.requests,
            remaining=0,
            reset=int(reset_at.timestamp()),
            retry_after=retry_after,
        )


class InMemoryRateLimiter(RateLimiter):
    """Process-local rate limiter.

    Note: This is the degraded-mode fallback and is suitable for
    single-instance deployments only. Counts are lost on restart.
    """

    def __init__(
        self,
        requests: int,
        window_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(requests, window_seconds, clock)
        self._entries: dict[str, RateLimitEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        return lock

    async def hit(self, device_id: str) -> RateLimitResult:
        async with self._lock_for(device_id):
            now = self.clock()
            entry = self._entries.get(device_id)

            if entry is None or self._window_elapsed(entry.window_start, now):
                entry = RateLimitEntry(device_id=device_id, window_start=now, count=1)
                self._entries[device_id] = entry
                return self._allowed(entry.count, entry.window_start)

            if entry.count >= self.requests:
                return self._denied(entry.window_start, now)

            entry.count += 1
            return self._allowed(entry.count, entry.window_start)

    def reset(self) -> None:
        """Reset all rate limit entries. Useful for testing."""
        self._entries.clear()
        self._locks.clear()

    async def cleanup_old_entries(self) -> int:
        now = self.clock()
        stale = [
            device_id
            for device_id, entry in self._entries.items()
            if self._window_elapsed(entry.window_start, now)
        ]
        for device_id in stale:
            del self._entries[device_id]
            self._locks.pop(device_id, None)
        return len(stale)


class SQLRateLimiter(RateLimiter):
    """Rate limiter backed by the ``rate_limit_entries`` table.

    Every transition is a single conditional UPDATE on the device's row, so
    concurrent requests from the same device cannot push the count past
    the ceiling.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        requests: int,
        window_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(requests, window_seconds, clock)
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Rate limit store unavailable: {e!r}")
            raise StoreUnavailableError() from e

    async def hit(self, device_id: str) -> RateLimitResult:
        try:
            return await self._hit(device_id)
        except IntegrityError:
            # Another request created the row first; count against it
            return await self._hit(device_id)

    async def _hit(self, device_id: str) -> RateLimitResult:
        now = self.clock()
        cutoff = now - self.window

        async with self._session() as session:
            # Roll an elapsed window over
            rolled = await session.execute(
                update(RateLimitEntry)
                .where(
                    col(RateLimitEntry.device_id) == device_id,
                    col(RateLimitEntry.window_start) <= cutoff,
                )
                .values(window_start=now, count=1)
                .execution_options(synchronize_session=False)
            )
            if rolled.rowcount:  # type: ignore[attr-defined]
                await session.commit()
                return self._allowed(1, now)

            # Count against the current window while under the ceiling
            incremented = await session.execute(
                update(RateLimitEntry)
                .where(
                    col(RateLimitEntry.device_id) == device_id,
                    col(RateLimitEntry.window_start) > cutoff,
                    col(RateLimitEntry.count) < self.requests,
                )
                .values(count=col(RateLimitEntry.count) + 1)
                .returning(col(RateLimitEntry.count), col(RateLimitEntry.window_start))
                .execution_options(synchronize_session=False)
            )
            row = incremented.first()
            if row is not None:
                await session.commit()
                return self._allowed(row[0], row[1])

            existing = await session.get(RateLimitEntry, device_id)
            if existing is not None:
                await session.commit()
                return self._denied(existing.window_start, now)

            session.add(RateLimitEntry(device_id=device_id, window_start=now, count=1))
            await session.commit()
            return self._allowed(1, now)

    async def cleanup_old_entries(self) -> int:
        cutoff = self.clock() - self.window
        async with self._session() as session:
            result = await session.execute(
                delete(RateLimitEntry).where(col(RateLimitEntry.window_start) <= cutoff)
            )
            await session.commit()
            return result.rowcount or 0  # type: ignore[attr-defined]


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request headers.

    Checks common headers used by proxies and load balancers.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # x-forwarded-for can be a comma-separated list, take the first IP
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_connecting_ip = request.headers.get("cf-connecting-ip")
    if cf_connecting_ip:
        return cf_connecting_ip.strip()

    if request.client:
        return request.client.host

    return None


def get_identifier(device_id: str | None, ip: str | None) -> str:
    """Get identifier for rate limiting.

    Prefers the client-supplied device fingerprint, falls back to IP address.
    """
    if device_id and device_id.strip():
        return f"device:{device_id.strip()}"
    return f"ip:{ip or 'unknown'}"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Generate rate limit headers for response."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }

    if not result.success:
        headers["Retry-After"] = str(result.retry_after)

    return headers
