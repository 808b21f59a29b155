"""Per-device rate limit window model."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class RateLimitEntry(SQLModel, table=True):
    """Issuance counter for one device within the current window."""

    __tablename__ = "rate_limit_entries"

    device_id: str = Field(primary_key=True, max_length=255, description="Device fingerprint")
    window_start: datetime = Field(
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Start of the current window",
    )
    count: int = Field(default=0, description="Requests counted in the current window")
