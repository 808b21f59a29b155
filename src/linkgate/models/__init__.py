"""SQLModel database models."""

from linkgate.models.base import TimestampMixin, ensure_utc, generate_nanoid, utcnow
from linkgate.models.magic_token import MagicToken
from linkgate.models.rate_limit import RateLimitEntry
from linkgate.models.user import Role, UserProfile

__all__ = [
    "MagicToken",
    "RateLimitEntry",
    "Role",
    "TimestampMixin",
    "UserProfile",
    "ensure_utc",
    "generate_nanoid",
    "utcnow",
]
