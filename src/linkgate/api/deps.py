"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from linkgate.services.backend import AuthBackend, get_auth_backend


def get_backend() -> AuthBackend:
    """Auth backend for the configured storage mode."""
    return get_auth_backend()


# Type alias for the auth backend dependency
BackendDep = Annotated[AuthBackend, Depends(get_backend)]
