"""HTTP client for the magic link endpoints."""

import logging
from typing import Any

import httpx

from linkgate.client.session import DegradedSession, SessionManager, VerifiedSession
from linkgate.models import Role
from linkgate.services.errors import StoreUnavailableError, error_from_payload
from linkgate.services.resilience import CircuitBreaker, CircuitOpenError, with_retry

logger = logging.getLogger(__name__)

# Failures meaning the backend itself is unreachable or cannot persist
BACKEND_DOWN_EXCEPTIONS = (httpx.TransportError, StoreUnavailableError)


class AuthClient:
    """Requests and redeems magic links, feeding results to a SessionManager."""

    def __init__(
        self,
        manager: SessionManager,
        base_url: str = "",
        http: httpx.AsyncClient | None = None,
        allow_degraded: bool = False,
        circuit: CircuitBreaker | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.manager = manager
        self.allow_degraded = allow_degraded
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_http = http is None
        self.circuit = circuit or CircuitBreaker(
            name="auth-backend",
            failure_exceptions=BACKEND_DOWN_EXCEPTIONS,
        )

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await with_retry(self._http.post, path, json=payload)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_success:
            return data
        raise error_from_payload(response.status_code, data)

    async def request_magic_link(self, email: str) -> dict[str, Any]:
        """Ask the backend to email a magic link.

        Raises:
            AuthError: the backend rejected the request (``RateLimitedError``
                carries ``retry_after``)
            StoreUnavailableError: the backend is unreachable
        """
        payload = {"email": email.strip().lower(), "deviceId": self.manager.device_id}
        try:
            return await self.circuit.call(self._post, "/api/auth/magic-link", payload)
        except (httpx.TransportError, CircuitOpenError) as e:
            logger.error(f"Magic link request failed, backend unreachable: {e!r}")
            raise StoreUnavailableError() from e

    async def verify(self, token: str, email: str) -> VerifiedSession | DegradedSession:
        """Redeem a token and sign in.

        When the backend is unreachable and degraded fallback is enabled,
        a ``DegradedSession`` is created instead of failing.
        """
        payload = {"token": token, "email": email, "deviceId": self.manager.device_id}
        try:
            data = await self.circuit.call(self._post, "/api/auth/verify", payload)
        except (*BACKEND_DOWN_EXCEPTIONS, CircuitOpenError) as e:
            if not self.allow_degraded:
                if isinstance(e, StoreUnavailableError):
                    raise
                raise StoreUnavailableError() from e
            return self.manager.login_degraded(email, reason=f"backend unavailable: {e!r}")

        user = data["user"]
        return self.manager.login(user["email"], Role(user["role"]))
