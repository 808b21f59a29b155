"""Token issuance tests."""

from datetime import timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from linkgate.models import Role
from linkgate.services.errors import (
    DeliveryFailedError,
    InvalidEmailError,
    RateLimitedError,
    StoreUnavailableError,
)
from linkgate.services.issuer import build_magic_link, generate_token


def test_generate_token_is_random_hex():
    tokens = {generate_token() for _ in range(50)}

    assert len(tokens) == 50
    for token in tokens:
        assert len(token) == 64
        int(token, 16)


def test_build_magic_link_encodes_email():
    link = build_magic_link("http://app.test/", "abc", "a+b@example.com")

    assert link.startswith("http://app.test/auth/verify?")
    assert parse_qs(urlparse(link).query) == {"token": ["abc"], "email": ["a+b@example.com"]}


async def test_issue_stores_and_sends(backend, email_backend, clock):
    result = await backend.issuer.issue("  User@Example.com ", "device:D1")

    assert result.email == "user@example.com"
    assert result.role == Role.STANDARD
    assert result.expires_at == clock() + timedelta(minutes=15)
    assert result.rate_limit.remaining == 4

    assert len(email_backend.sent) == 1
    assert email_backend.sent[0]["to"] == "user@example.com"

    record = await backend.token_store.get(email_backend.last_token())
    assert record is not None
    assert record.email == "user@example.com"
    assert record.used is False


async def test_issue_result_never_contains_token(backend, email_backend):
    result = await backend.issuer.issue("user@example.com", "device:D1")

    assert email_backend.last_token() not in repr(result)


async def test_issue_admin_role(backend, email_backend):
    result = await backend.issuer.issue("boss@example.com", "device:D1")

    assert result.role == Role.ADMINISTRATOR
    assert "admin" in email_backend.sent[0]["subject"]
    record = await backend.token_store.get(email_backend.last_token())
    assert record.role == Role.ADMINISTRATOR


@pytest.mark.parametrize("email", ["", "not-an-email", "user@localhost"])
async def test_issue_invalid_email(backend, email_backend, email):
    with pytest.raises(InvalidEmailError):
        await backend.issuer.issue(email, "device:D1")

    assert email_backend.sent == []


async def test_invalid_email_does_not_consume_quota(backend):
    with pytest.raises(InvalidEmailError):
        await backend.issuer.issue("nope", "device:D1")

    result = await backend.issuer.issue("user@example.com", "device:D1")
    assert result.rate_limit.remaining == 4


async def test_sixth_issue_rate_limited(backend, email_backend):
    for i in range(5):
        await backend.issuer.issue(f"user{i}@example.com", "device:D1")

    with pytest.raises(RateLimitedError) as exc_info:
        await backend.issuer.issue("user@example.com", "device:D1")

    assert exc_info.value.retry_after == 3600
    assert len(email_backend.sent) == 5


async def test_rate_limit_resets_after_window(backend, clock):
    for _ in range(5):
        await backend.issuer.issue("user@example.com", "device:D1")

    clock.advance(hours=1)

    result = await backend.issuer.issue("user@example.com", "device:D1")
    assert result.rate_limit.remaining == 4


async def test_delivery_failure_removes_token(backend, email_backend, clock):
    email_backend.fail = True

    with pytest.raises(DeliveryFailedError):
        await backend.issuer.issue("user@example.com", "device:D1")

    assert await backend.token_store.get(email_backend.last_token()) is None
    assert await backend.token_store.count_outstanding(clock()) == 0


async def test_delivery_exception_removes_token(backend, email_backend, clock):
    email_backend.send = AsyncMock(side_effect=RuntimeError("provider SDK exploded"))

    with pytest.raises(DeliveryFailedError) as exc_info:
        await backend.issuer.issue("user@example.com", "device:D1")

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert await backend.token_store.count_outstanding(clock()) == 0


async def test_store_failure_sends_nothing(backend, email_backend):
    backend.issuer.store.add = AsyncMock(side_effect=StoreUnavailableError())

    with pytest.raises(StoreUnavailableError):
        await backend.issuer.issue("user@example.com", "device:D1")

    assert email_backend.sent == []


async def test_issue_with_sql_store(sql_backend, email_backend):
    await sql_backend.issuer.issue("user@example.com", "device:D1")

    record = await sql_backend.token_store.get(email_backend.last_token())
    assert record is not None
    assert record.email == "user@example.com"
