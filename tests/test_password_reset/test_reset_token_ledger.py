# tests/test_password_reset/test_reset_token_ledger.py

from datetime import timedelta

import pytest

from app.db.models.reset_token import ResetToken
from app.services.reset_token_ledger import ResetTokenLedger

EMAIL = "tokens@example.com"
TTL = timedelta(minutes=10)


@pytest.fixture()
def ledger(session_factory, clock) -> ResetTokenLedger:
    return ResetTokenLedger(session_factory, clock=clock)


@pytest.mark.anyio
async def test_issue_creates_unique_urlsafe_tokens(ledger, clock):
    first = await ledger.issue(EMAIL, ttl=TTL)
    second = await ledger.issue(EMAIL, ttl=TTL)

    assert first.token != second.token
    assert len(first.token) >= 43
    assert set(first.token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
    assert first.expires_at_utc == clock() + TTL


@pytest.mark.anyio
async def test_issue_does_not_touch_existing_tokens(ledger, fetch_all):
    await ledger.issue(EMAIL, ttl=TTL)
    await ledger.issue(EMAIL, ttl=TTL)

    rows = await fetch_all(ResetToken)
    assert len(rows) == 2
    assert not any(r.used for r in rows)


@pytest.mark.anyio
async def test_fetch_active_by_value(ledger):
    issued = await ledger.issue(EMAIL, ttl=TTL)

    found = await ledger.fetch_active(issued.token)

    assert found is not None and found.id == issued.id
    assert await ledger.fetch_active("nope") is None


@pytest.mark.anyio
async def test_consume_is_single_use(ledger):
    issued = await ledger.issue(EMAIL, ttl=TTL)
    racer = await ledger.fetch_active(issued.token)

    assert await ledger.consume(issued) is True
    assert await ledger.consume(racer) is False
    assert await ledger.fetch_active(issued.token) is None


@pytest.mark.anyio
async def test_invalidate_siblings(ledger, fetch_all):
    keep = await ledger.issue(EMAIL, ttl=TTL)
    await ledger.issue(EMAIL, ttl=TTL)
    await ledger.issue(EMAIL, ttl=TTL)
    other = await ledger.issue("someone@example.com", ttl=TTL)

    removed = await ledger.invalidate_siblings(EMAIL, keep.id)

    assert removed == 2
    assert {r.id for r in await fetch_all(ResetToken)} == {keep.id, other.id}


@pytest.mark.anyio
async def test_delete_expired_and_purge(ledger, clock, fetch_all):
    stale = await ledger.issue(EMAIL, ttl=TTL)
    assert await ledger.delete_expired(stale) is False

    clock.advance(minutes=11)
    fresh = await ledger.issue("fresh@example.com", ttl=TTL)
    spent = await ledger.issue("spent@example.com", ttl=TTL)
    await ledger.consume(spent)

    assert await ledger.purge_expired() == 2
    assert [r.id for r in await fetch_all(ResetToken)] == [fresh.id]


@pytest.mark.anyio
async def test_discard_removes_only_that_token(ledger, fetch_all):
    spent = await ledger.issue(EMAIL, ttl=TTL)
    other = await ledger.issue("someone@example.com", ttl=TTL)

    await ledger.discard(spent)

    assert [r.id for r in await fetch_all(ResetToken)] == [other.id]
