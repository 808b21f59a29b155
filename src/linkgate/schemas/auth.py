"""Request and response bodies for the auth endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from linkgate.models import Role


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MagicLinkRequest(CamelModel):
    """Request body for requesting a magic link."""

    email: str = Field(max_length=320)
    device_id: str | None = Field(default=None, max_length=255)


class MagicLinkResponse(CamelModel):
    """Acknowledgement of a sent magic link. Never includes the token."""

    success: bool = True
    message: str
    remaining: int
    request_id: str | None = None


class VerifyRequest(CamelModel):
    """Token redemption input, from a JSON body or the query string."""

    token: str = Field(min_length=1, max_length=256)
    email: str = Field(min_length=1, max_length=320)
    device_id: str | None = Field(default=None, max_length=255)


class VerifiedUser(CamelModel):
    email: str
    role: Role
    display_name: str | None = None


class SessionPayload(CamelModel):
    """Self-describing session the client stores locally."""

    email: str
    role: Role
    verified: bool = True
    device_id: str
    login_time: datetime
    expires_at: datetime


class VerifyResponse(CamelModel):
    success: bool = True
    user: VerifiedUser
    session: SessionPayload
    message: str
    request_id: str | None = None
