"""Email normalization and role resolution tests."""

import pytest

from linkgate.config import Settings
from linkgate.models import Role
from linkgate.services.identity import RolePolicy, is_valid_email, normalize_email, resolve_role


class TestNormalizeEmail:
    """Tests for normalize_email."""

    def test_trims_and_lowercases(self):
        assert normalize_email("  User@Example.COM \n") == "user@example.com"

    @pytest.mark.parametrize("email", ["User@Example.com", " a@b.co ", "x@y.z"])
    def test_idempotent(self, email):
        once = normalize_email(email)
        assert normalize_email(once) == once


class TestIsValidEmail:
    """Tests for the syntactic email check."""

    @pytest.mark.parametrize(
        "email",
        ["user@example.com", "  USER@example.com  ", "first.last+tag@sub.example.co.uk"],
    )
    def test_valid(self, email):
        assert is_valid_email(email) is True

    @pytest.mark.parametrize(
        "email",
        ["", None, "plainaddress", "user@localhost", "user @example.com", "a@b@c.com", "@x.com"],
    )
    def test_invalid(self, email):
        assert is_valid_email(email) is False

    def test_rejects_overlong_address(self):
        assert is_valid_email(f"{'a' * 250}@example.com") is False


class TestResolveRole:
    """Tests for role resolution."""

    @pytest.fixture
    def policy(self) -> RolePolicy:
        return RolePolicy.build(emails=["Boss@Example.com"], domains=["@staff.example.org"])

    def test_exact_address(self, policy):
        assert resolve_role("boss@example.com", policy) == Role.ADMINISTRATOR
        assert resolve_role("  BOSS@example.com ", policy) == Role.ADMINISTRATOR

    def test_other_address_same_domain_is_standard(self, policy):
        assert resolve_role("intern@example.com", policy) == Role.STANDARD

    def test_domain_and_subdomain(self, policy):
        assert resolve_role("a@staff.example.org", policy) == Role.ADMINISTRATOR
        assert resolve_role("a@eu.staff.example.org", policy) == Role.ADMINISTRATOR

    def test_domain_suffix_must_be_whole_label(self, policy):
        assert resolve_role("a@evilstaff.example.org", policy) == Role.STANDARD

    def test_empty_policy_never_grants_admin(self):
        assert resolve_role("boss@example.com", RolePolicy()) == Role.STANDARD

    def test_deterministic(self, policy):
        results = {policy.resolve("a@staff.example.org") for _ in range(10)}
        assert results == {Role.ADMINISTRATOR}

    def test_from_settings(self):
        settings = Settings(
            _env_file=None, admin_emails=["root@example.com"], admin_domains=["corp.test"]
        )
        policy = RolePolicy.from_settings(settings)

        assert policy.resolve("root@example.com") == Role.ADMINISTRATOR
        assert policy.resolve("someone@corp.test") == Role.ADMINISTRATOR
        assert policy.resolve("someone@example.com") == Role.STANDARD
