"""Magic link token model."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from linkgate.models.base import ensure_utc, utcnow
from linkgate.models.user import Role


class MagicToken(SQLModel, table=True):
    """Single-use sign-in token bound to an email and a role.

    A token moves from unused to used exactly once and is never re-armed.
    Past ``expires_at`` it is invalid whether or not it was used.
    """

    __tablename__ = "magic_tokens"

    token: str = Field(primary_key=True, max_length=128, description="Random verification token")
    email: str = Field(index=True, max_length=254, description="Normalized email address")
    role: Role = Field(default=Role.STANDARD, description="Role fixed at issuance")
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
    expires_at: datetime = Field(
        index=True,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Token expiration time",
    )
    used: bool = Field(default=False)
    used_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )

    def is_expired(self, now: datetime) -> bool:
        """Check whether the token is past its expiry at ``now``."""
        return now > ensure_utc(self.expires_at)
