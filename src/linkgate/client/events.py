"""In-process publish/subscribe for sign-in state.

The vocabulary is fixed: ``login`` and ``logout``. Events are plain
notifications, not consumable signals; the same event may be delivered
more than once and subscribers must treat repeats as no-ops.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkgate.client.session import Session

logger = logging.getLogger(__name__)


class AuthEventType(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"


@dataclass(frozen=True)
class AuthEvent:
    """Sign-in state change. ``session`` is set for login events only."""

    type: AuthEventType
    session: "Session | None" = None


AuthEventHandler = Callable[[AuthEvent], None]


class AuthEventBus:
    """Synchronous fan-out of auth events to subscribers."""

    def __init__(self) -> None:
        self._handlers: list[AuthEventHandler] = []

    def subscribe(self, handler: AuthEventHandler) -> Callable[[], None]:
        """Register a handler.

        Returns:
            Callable that removes the handler again
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: AuthEvent) -> None:
        """Deliver an event to every subscriber.

        A failing subscriber is logged and does not stop delivery to the rest.
        """
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Auth event handler failed for {event.type.value}")

    def login(self, session: "Session") -> None:
        self.publish(AuthEvent(AuthEventType.LOGIN, session))

    def logout(self) -> None:
        self.publish(AuthEvent(AuthEventType.LOGOUT))

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)


class AuthStateObserver:
    """Subscriber that tracks the current identity, ignoring repeated events."""

    def __init__(self, bus: AuthEventBus | None = None) -> None:
        self.session: "Session | None" = None
        self.changes = 0
        self._unsubscribe = bus.subscribe(self) if bus else None

    def __call__(self, event: AuthEvent) -> None:
        new_session = event.session if event.type == AuthEventType.LOGIN else None
        if new_session == self.session:
            return
        self.session = new_session
        self.changes += 1

    @property
    def authenticated(self) -> bool:
        return self.session is not None

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
