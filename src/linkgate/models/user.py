"""User profile model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from linkgate.models.base import TimestampMixin, generate_nanoid


class Role(str, Enum):
    """Role stamped on tokens, profiles and sessions."""

    STANDARD = "standard"
    ADMINISTRATOR = "administrator"


class UserProfile(TimestampMixin, SQLModel, table=True):
    """Profile record upserted on every successful magic link redemption."""

    __tablename__ = "user_profiles"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=254)
    display_name: str | None = Field(default=None, max_length=255)
    role: Role = Field(default=Role.STANDARD)
    verified: bool = Field(default=False)
    last_login: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
