"""Email normalization and role resolution."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from linkgate.config import Settings
from linkgate.models.user import Role

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# RFC 5321 path limit
MAX_EMAIL_LENGTH = 254


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address. Idempotent."""
    return email.strip().lower()


def is_valid_email(email: str | None) -> bool:
    """Basic ``local@domain.tld`` check on the normalized address."""
    if not email:
        return False
    normalized = normalize_email(email)
    return len(normalized) <= MAX_EMAIL_LENGTH and bool(EMAIL_PATTERN.match(normalized))


def _normalize_domain(rule: str) -> str:
    return rule.strip().lower().lstrip("@").lstrip(".")


@dataclass(frozen=True)
class RolePolicy:
    """Administrator allow-list: exact addresses plus domain suffix rules.

    A domain rule ``example.com`` matches ``a@example.com`` and
    ``a@staff.example.com`` but not ``a@notexample.com``.
    """

    emails: frozenset[str] = field(default_factory=frozenset)
    domains: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(cls, emails: Iterable[str] = (), domains: Iterable[str] = ()) -> "RolePolicy":
        return cls(
            emails=frozenset(normalize_email(e) for e in emails if e.strip()),
            domains=frozenset(_normalize_domain(d) for d in domains if d.strip()),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RolePolicy":
        return cls.build(settings.admin_emails, settings.admin_domains)

    def resolve(self, email: str) -> Role:
        return resolve_role(email, self)


def resolve_role(email: str, policy: RolePolicy) -> Role:
    """Derive the role for an email. Pure and deterministic."""
    normalized = normalize_email(email)
    if normalized in policy.emails:
        return Role.ADMINISTRATOR

    _, at, domain = normalized.rpartition("@")
    if at and domain:
        for rule in policy.domains:
            if domain == rule or domain.endswith(f".{rule}"):
                return Role.ADMINISTRATOR

    return Role.STANDARD
