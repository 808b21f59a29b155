"""Client-held sessions.

A session is self-describing: it carries its own expiry and is never
re-validated against the server. Two variants exist and are stored under
separate keys:

- ``VerifiedSession`` is created from an identity the backend verified.
- ``DegradedSession`` is created locally when the backend could not be
  reached. It is labelled as such everywhere it surfaces.

Readers go through ``SessionManager.current()`` and never touch the keys.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Annotated, Literal

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError

from linkgate.client.events import AuthEventBus
from linkgate.client.storage import (
    DEGRADED_SESSION_KEY,
    SESSION_KEY,
    SessionStorage,
    get_device_id,
)
from linkgate.models import Role, ensure_utc, utcnow
from linkgate.schemas.auth import CamelModel
from linkgate.services.errors import InvalidEmailError
from linkgate.services.identity import RolePolicy, is_valid_email, normalize_email

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(days=30)

# Verified first: a verified session always wins over a degraded one
SESSION_KEYS = (SESSION_KEY, DEGRADED_SESSION_KEY)


class _SessionBase(CamelModel):
    # Persisted with the same camelCase layout the server sends
    model_config = ConfigDict(frozen=True)

    email: str
    role: Role
    device_id: str
    login_time: datetime
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < ensure_utc(self.expires_at)

    def time_remaining(self, now: datetime) -> timedelta:
        return max(timedelta(0), ensure_utc(self.expires_at) - now)


class VerifiedSession(_SessionBase):
    kind: Literal["verified"] = "verified"
    verified: Literal[True] = True


class DegradedSession(_SessionBase):
    kind: Literal["degraded"] = "degraded"
    verified: Literal[False] = False
    reason: str = ""


Session = Annotated[VerifiedSession | DegradedSession, Field(discriminator="kind")]

_session_adapter: TypeAdapter[VerifiedSession | DegradedSession] = TypeAdapter(Session)


@dataclass
class AuthStatus:
    """Snapshot of the client's sign-in state."""

    authenticated: bool
    email: str | None = None
    role: Role | None = None
    degraded: bool = False
    login_time: datetime | None = None
    expires_at: datetime | None = None
    time_remaining: timedelta = timedelta(0)


class SessionManager:
    """Creates, renews and expires the locally stored session."""

    def __init__(
        self,
        storage: SessionStorage,
        bus: AuthEventBus | None = None,
        policy: RolePolicy | None = None,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        renew_interval: float = 30.0,
        sweep_interval: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.bus = bus or AuthEventBus()
        self.policy = policy or RolePolicy()
        self.session_ttl = session_ttl
        self.renew_interval = renew_interval
        self.sweep_interval = sweep_interval
        self.clock = clock
        self.device_id = get_device_id(storage)
        self._last_activity: datetime | None = None
        self._sweep_task: asyncio.Task | None = None

    # Reading

    def _load(self, key: str) -> VerifiedSession | DegradedSession | None:
        raw = self.storage.get(key)
        if not raw:
            return None
        try:
            return _session_adapter.validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding unreadable session stored under {key}")
            self._discard(key)
            return None

    def _usable(self, session: VerifiedSession | DegradedSession, now: datetime) -> bool:
        return session.device_id == self.device_id and session.is_valid(now)

    def _current_with_key(
        self, now: datetime
    ) -> tuple[str, VerifiedSession | DegradedSession] | None:
        for key in SESSION_KEYS:
            session = self._load(key)
            if session is not None and self._usable(session, now):
                return key, session
        return None

    def current(self) -> VerifiedSession | DegradedSession | None:
        """The session in force right now, or None when signed out."""
        found = self._current_with_key(self.clock())
        return found[1] if found else None

    @property
    def is_authenticated(self) -> bool:
        return self.current() is not None

    def status(self) -> AuthStatus:
        now = self.clock()
        session = self.current()
        if session is None:
            return AuthStatus(authenticated=False)
        return AuthStatus(
            authenticated=True,
            email=session.email,
            role=session.role,
            degraded=isinstance(session, DegradedSession),
            login_time=session.login_time,
            expires_at=session.expires_at,
            time_remaining=session.time_remaining(now),
        )

    # Writing

    def _discard(self, key: str) -> None:
        try:
            self.storage.remove(key)
        except OSError as e:
            logger.error(f"Could not remove {key} from session storage: {e}")

    def _persist(self, key: str, session: VerifiedSession | DegradedSession) -> None:
        try:
            self.storage.set(key, session.model_dump_json(by_alias=True))
        except Exception:
            logger.error("Failed to store session; staying signed out")
            self._discard(key)
            raise

    def login(self, email: str, role: Role) -> VerifiedSession:
        """Store a session for a backend-verified identity and announce it."""
        now = self.clock()
        session = VerifiedSession(
            email=normalize_email(email),
            role=role,
            device_id=self.device_id,
            login_time=now,
            expires_at=now + self.session_ttl,
        )
        self._persist(SESSION_KEY, session)
        self._discard(DEGRADED_SESSION_KEY)
        self._last_activity = now

        logger.info(f"Signed in as {session.email} ({session.role.value})")
        self.bus.login(session)
        return session

    def login_degraded(self, email: str, reason: str) -> DegradedSession:
        """Store a locally simulated session while the backend is unreachable.

        The role comes from the same resolver the server uses, so
        administrator is only granted to allow-listed addresses.
        """
        if not is_valid_email(email):
            raise InvalidEmailError()
        normalized = normalize_email(email)
        now = self.clock()
        session = DegradedSession(
            email=normalized,
            role=self.policy.resolve(normalized),
            device_id=self.device_id,
            login_time=now,
            expires_at=now + self.session_ttl,
            reason=reason,
        )
        self._persist(DEGRADED_SESSION_KEY, session)
        self._last_activity = now

        logger.warning(
            f"Degraded sign-in for {normalized} ({session.role.value}) without backend "
            f"verification: {reason}"
        )
        self.bus.login(session)
        return session

    def logout(self) -> None:
        """Forget every stored session and announce the sign-out."""
        for key in SESSION_KEYS:
            self._discard(key)
        logger.info("Signed out")
        self.bus.logout()

    def renew(self, now: datetime | None = None) -> bool:
        """Push the expiry of a valid session to ``now + session_ttl``.

        Never shortens a session and never revives an expired one.

        Returns:
            True if the stored expiry moved forward
        """
        now = now or self.clock()
        found = self._current_with_key(now)
        if found is None:
            return False
        key, session = found

        new_expiry = now + self.session_ttl
        if new_expiry <= ensure_utc(session.expires_at):
            return False

        renewed = session.model_copy(update={"expires_at": new_expiry})
        self.storage.set(key, renewed.model_dump_json(by_alias=True))
        return True

    def record_activity(self) -> bool:
        """Note user activity, renewing at most once per ``renew_interval``.

        Bursts inside the interval are coalesced: they return False
        without touching storage.
        """
        now = self.clock()
        if (
            self._last_activity is not None
            and (now - self._last_activity).total_seconds() < self.renew_interval
        ):
            return False
        self._last_activity = now
        return self.renew(now)

    def check_expiry(self) -> bool:
        """Drop sessions that have expired or belong to another device.

        Emits a logout event when that leaves the client signed out.

        Returns:
            Whether a usable session remains
        """
        now = self.clock()
        removed = False
        for key in SESSION_KEYS:
            session = self._load(key)
            if session is None or self._usable(session, now):
                continue
            if session.device_id != self.device_id:
                logger.warning("Session belongs to another device, requiring sign-in")
            else:
                logger.info(f"Session for {session.email} expired")
            self._discard(key)
            removed = True

        authenticated = self._current_with_key(now) is not None
        if removed and not authenticated:
            self.bus.logout()
        return authenticated

    # Scheduling

    def restore(self) -> VerifiedSession | DegradedSession | None:
        """Re-derive state from storage at startup and announce it."""
        if self.check_expiry():
            session = self.current()
            if session is not None:
                self.bus.login(session)
            return session
        return None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.check_expiry()

    def start(self) -> VerifiedSession | DegradedSession | None:
        """Restore state and start the periodic expiry check on the running loop."""
        session = self.restore()
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        return session

    async def stop(self) -> None:
        """Stop the periodic expiry check."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
