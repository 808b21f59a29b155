"""Auth event bus tests."""

import logging
from datetime import UTC, datetime

from linkgate.client import AuthEventBus, AuthEventType, AuthStateObserver, VerifiedSession
from linkgate.models import Role


def make_session(email: str = "user@example.com") -> VerifiedSession:
    now = datetime(2026, 3, 1, tzinfo=UTC)
    return VerifiedSession(
        email=email, role=Role.STANDARD, device_id="dev", login_time=now, expires_at=now
    )


def test_publish_reaches_subscribers():
    bus = AuthEventBus()
    received = []
    bus.subscribe(received.append)

    session = make_session()
    bus.login(session)
    bus.logout()

    assert [e.type for e in received] == [AuthEventType.LOGIN, AuthEventType.LOGOUT]
    assert received[0].session == session
    assert received[1].session is None


def test_unsubscribe():
    bus = AuthEventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    bus.logout()

    assert received == []
    assert bus.subscriber_count == 0


def test_failing_subscriber_does_not_block_others(caplog):
    bus = AuthEventBus()
    received = []

    def broken(_event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    with caplog.at_level(logging.ERROR):
        bus.logout()

    assert len(received) == 1
    assert "Auth event handler failed" in caplog.text


class TestAuthStateObserver:
    """Tests for the idempotent state observer."""

    def test_tracks_login_and_logout(self):
        bus = AuthEventBus()
        observer = AuthStateObserver(bus)

        bus.login(make_session())
        assert observer.authenticated
        assert observer.session.email == "user@example.com"

        bus.logout()
        assert not observer.authenticated

    def test_duplicate_events_are_noops(self):
        bus = AuthEventBus()
        observer = AuthStateObserver(bus)
        session = make_session()

        bus.login(session)
        bus.login(session)
        bus.login(make_session())
        bus.logout()
        bus.logout()

        assert observer.changes == 2

    def test_switching_identity_counts(self):
        bus = AuthEventBus()
        observer = AuthStateObserver(bus)

        bus.login(make_session("a@example.com"))
        bus.login(make_session("b@example.com"))

        assert observer.changes == 2
        assert observer.session.email == "b@example.com"

    def test_close_unsubscribes(self):
        bus = AuthEventBus()
        observer = AuthStateObserver(bus)

        observer.close()
        bus.login(make_session())

        assert observer.session is None
        assert bus.subscriber_count == 0
