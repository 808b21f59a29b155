"""Client-side session management for magic link sign-in."""

from linkgate.client.api import AuthClient
from linkgate.client.events import AuthEvent, AuthEventBus, AuthEventType, AuthStateObserver
from linkgate.client.session import (
    AuthStatus,
    DegradedSession,
    Session,
    SessionManager,
    VerifiedSession,
)
from linkgate.client.storage import FileStorage, MemoryStorage, SessionStorage, get_device_id

__all__ = [
    "AuthClient",
    "AuthEvent",
    "AuthEventBus",
    "AuthEventType",
    "AuthStateObserver",
    "AuthStatus",
    "DegradedSession",
    "FileStorage",
    "MemoryStorage",
    "Session",
    "SessionManager",
    "SessionStorage",
    "VerifiedSession",
    "get_device_id",
]
