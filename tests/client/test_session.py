"""Client session manager tests."""

import asyncio
import json
from datetime import timedelta

import pytest

from linkgate.client import (
    AuthEventBus,
    AuthEventType,
    DegradedSession,
    MemoryStorage,
    SessionManager,
    VerifiedSession,
)
from linkgate.client.storage import DEGRADED_SESSION_KEY, SESSION_KEY
from linkgate.models import Role
from linkgate.schemas import SessionPayload
from linkgate.services.errors import InvalidEmailError
from linkgate.services.identity import RolePolicy


class FailingStorage(MemoryStorage):
    def set(self, key: str, value: str) -> None:
        if key == SESSION_KEY:
            raise OSError("disk full")
        super().set(key, value)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def bus() -> AuthEventBus:
    return AuthEventBus()


@pytest.fixture
def events(bus) -> list:
    received: list = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def manager(storage, bus, clock) -> SessionManager:
    return SessionManager(
        storage,
        bus=bus,
        policy=RolePolicy.build(emails=["boss@example.com"]),
        renew_interval=30,
        clock=clock,
    )


class TestLogin:
    def test_login_creates_session(self, manager, events, clock):
        session = manager.login("User@Example.com", Role.STANDARD)

        assert isinstance(session, VerifiedSession)
        assert session.email == "user@example.com"
        assert session.verified is True
        assert session.device_id == manager.device_id
        assert session.login_time == clock()
        assert session.expires_at == clock() + timedelta(days=30)
        assert manager.current() == session
        assert [e.type for e in events] == [AuthEventType.LOGIN]

    def test_session_persists_across_managers(self, manager, storage, clock):
        manager.login("user@example.com", Role.ADMINISTRATOR)

        other = SessionManager(storage, clock=clock)

        assert other.current().email == "user@example.com"
        assert other.current().role == Role.ADMINISTRATOR

    def test_storage_failure_leaves_signed_out(self, bus, events, clock):
        manager = SessionManager(FailingStorage(), bus=bus, clock=clock)

        with pytest.raises(OSError):
            manager.login("user@example.com", Role.STANDARD)

        assert manager.current() is None
        assert events == []

    def test_logout(self, manager, events, storage):
        manager.login("user@example.com", Role.STANDARD)

        manager.logout()

        assert manager.current() is None
        assert storage.get(SESSION_KEY) is None
        assert events[-1].type == AuthEventType.LOGOUT

    def test_verified_login_replaces_degraded(self, manager, storage):
        manager.login_degraded("user@example.com", reason="offline")

        manager.login("user@example.com", Role.STANDARD)

        assert storage.get(DEGRADED_SESSION_KEY) is None
        assert isinstance(manager.current(), VerifiedSession)


class TestDegraded:
    def test_degraded_session_is_labelled(self, manager, storage, events):
        session = manager.login_degraded("user@example.com", reason="backend down")

        assert isinstance(session, DegradedSession)
        assert session.verified is False
        assert session.reason == "backend down"
        assert storage.get(SESSION_KEY) is None
        assert storage.get(DEGRADED_SESSION_KEY) is not None
        assert manager.status().degraded is True
        assert events[0].session == session

    def test_degraded_role_follows_allow_list(self, manager):
        assert manager.login_degraded("user@example.com", "down").role == Role.STANDARD
        assert manager.login_degraded("boss@example.com", "down").role == Role.ADMINISTRATOR

    def test_degraded_without_policy_is_standard(self, storage, clock):
        manager = SessionManager(storage, clock=clock)

        assert manager.login_degraded("boss@example.com", "down").role == Role.STANDARD

    def test_degraded_rejects_invalid_email(self, manager):
        with pytest.raises(InvalidEmailError):
            manager.login_degraded("nope", "down")

        assert manager.current() is None

    def test_degraded_is_logged(self, manager, caplog):
        manager.login_degraded("user@example.com", "backend down")

        assert "Degraded sign-in for user@example.com" in caplog.text

    def test_verified_session_wins(self, manager, storage):
        manager.login("user@example.com", Role.STANDARD)
        manager.login_degraded("other@example.com", "down")

        assert isinstance(manager.current(), VerifiedSession)


class TestStatus:
    def test_signed_out(self, manager):
        status = manager.status()

        assert status.authenticated is False
        assert status.email is None
        assert status.time_remaining == timedelta(0)

    def test_time_remaining(self, manager, clock):
        manager.login("user@example.com", Role.STANDARD)
        clock.advance(days=10)

        status = manager.status()

        assert status.authenticated is True
        assert status.degraded is False
        assert status.time_remaining == timedelta(days=20)


class TestRenewal:
    def test_renew_extends(self, manager, clock):
        manager.login("user@example.com", Role.STANDARD)
        clock.advance(days=5)

        assert manager.renew() is True
        assert manager.current().expires_at == clock() + timedelta(days=30)

    def test_renew_never_revives_expired(self, manager, clock):
        manager.login("user@example.com", Role.STANDARD)
        clock.advance(days=31)

        assert manager.renew() is False
        assert manager.current() is None

    def test_renew_never_shortens(self, storage, clock):
        manager = SessionManager(storage, clock=clock, session_ttl=timedelta(days=30))
        manager.login("user@example.com", Role.STANDARD)
        original = manager.current().expires_at

        short = SessionManager(storage, clock=clock, session_ttl=timedelta(days=1))
        clock.advance(hours=1)

        assert short.renew() is False
        assert short.current().expires_at == original

    def test_record_activity_is_throttled(self, manager, clock, storage):
        manager.login("user@example.com", Role.STANDARD)

        clock.advance(seconds=10)
        assert manager.record_activity() is False

        clock.advance(seconds=25)
        assert manager.record_activity() is True
        renewed = storage.get(SESSION_KEY)

        clock.advance(seconds=5)
        assert manager.record_activity() is False
        assert storage.get(SESSION_KEY) == renewed

    def test_record_activity_signed_out(self, manager):
        assert manager.record_activity() is False


class TestExpiry:
    def test_check_expiry_valid(self, manager, events):
        manager.login("user@example.com", Role.STANDARD)

        assert manager.check_expiry() is True
        assert [e.type for e in events] == [AuthEventType.LOGIN]

    def test_check_expiry_clears_and_announces(self, manager, events, storage, clock):
        manager.login("user@example.com", Role.STANDARD)
        clock.advance(days=30)

        assert manager.check_expiry() is False
        assert storage.get(SESSION_KEY) is None
        assert events[-1].type == AuthEventType.LOGOUT

    def test_check_expiry_when_signed_out_is_quiet(self, manager, events):
        assert manager.check_expiry() is False
        assert events == []

    def test_expired_verified_falls_back_to_valid_degraded(self, manager, events, clock):
        manager.login("user@example.com", Role.STANDARD)
        clock.advance(days=29)
        manager.login_degraded("user@example.com", "down")
        clock.advance(days=2)

        assert manager.check_expiry() is True
        assert isinstance(manager.current(), DegradedSession)
        assert events[-1].type == AuthEventType.LOGIN

    def test_session_from_other_device_rejected(self, manager, storage, events, clock):
        manager.login("user@example.com", Role.STANDARD)
        raw = storage.get(SESSION_KEY).replace(manager.device_id, "someone-else")
        storage.set(SESSION_KEY, raw)

        assert manager.current() is None
        assert manager.check_expiry() is False
        assert storage.get(SESSION_KEY) is None
        assert events[-1].type == AuthEventType.LOGOUT

    def test_corrupt_session_discarded(self, manager, storage):
        storage.set(SESSION_KEY, "{broken")

        assert manager.current() is None
        assert storage.get(SESSION_KEY) is None


class TestScheduling:
    async def test_start_restores_and_announces(self, storage, clock):
        SessionManager(storage, clock=clock).login("user@example.com", Role.STANDARD)
        bus = AuthEventBus()
        received = []
        bus.subscribe(received.append)
        manager = SessionManager(storage, bus=bus, clock=clock, sweep_interval=3600)

        session = manager.start()
        await manager.stop()

        assert session.email == "user@example.com"
        assert [e.type for e in received] == [AuthEventType.LOGIN]

    async def test_periodic_sweep_logs_out(self, manager, events, clock):
        manager.sweep_interval = 0
        manager.login("user@example.com", Role.STANDARD)
        manager.start()

        clock.advance(days=31)
        for _ in range(5):
            await asyncio.sleep(0)
        await manager.stop()

        assert events[-1].type == AuthEventType.LOGOUT
        assert manager.current() is None

    async def test_stop_without_start(self, manager):
        await manager.stop()


class TestPersistedLayout:
    def test_stored_with_server_session_keys(self, manager, storage):
        manager.login("user@example.com", Role.STANDARD)

        record = json.loads(storage.get(SESSION_KEY))

        assert {"email", "role", "verified", "deviceId", "loginTime", "expiresAt"} <= set(record)
        assert "device_id" not in record
        assert record["deviceId"] == manager.device_id
        assert record["verified"] is True

    def test_reads_server_session_payload(self, manager, storage, clock):
        payload = SessionPayload(
            email="user@example.com",
            role=Role.STANDARD,
            verified=True,
            device_id=manager.device_id,
            login_time=clock(),
            expires_at=clock() + timedelta(days=30),
        ).model_dump(mode="json", by_alias=True)
        payload["kind"] = "verified"
        storage.set(SESSION_KEY, json.dumps(payload))

        session = manager.current()

        assert isinstance(session, VerifiedSession)
        assert session.device_id == manager.device_id
