# tests/test_password_reset/test_request_otp.py

from datetime import timedelta

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.clock import as_utc
from app.core.security import verify_otp
from app.db.models.otp import OtpToken
from app.services.reset_coordinator import GENERIC_REQUEST_MESSAGE

GENERIC_BODY = {"success": True, "message": GENERIC_REQUEST_MESSAGE}


# ────────────────────────────────────────────────────────────────────────────────
# POST /request-password-otp — happy path
# ────────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_request_otp_known_user_emails_code_and_stores_digest(
    async_client: AsyncClient, create_test_user, notifier, fetch_all
):
    """
    Known user → 200 + generic body. One OTP row exists with a bcrypt digest
    (never the plaintext) and the emailed code verifies against it.
    """
    user = await create_test_user()

    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 200
    assert resp.json() == GENERIC_BODY
    assert resp.headers["cache-control"] == "no-store"

    assert len(notifier.sent) == 1
    assert notifier.sent[0].to == user.email
    assert "password reset code" in notifier.sent[0].subject
    code = notifier.last_otp()

    rows = await fetch_all(OtpToken)
    assert len(rows) == 1
    row = rows[0]
    assert row.email == user.email
    assert row.purpose == "password_reset"
    assert row.used is False
    assert row.attempts == 0
    assert row.max_attempts == 5
    assert row.otp_hash != code
    assert row.otp_hash.startswith("$2")
    assert await verify_otp(code, row.otp_hash)


@pytest.mark.anyio
async def test_request_otp_sets_five_minute_expiry(async_client: AsyncClient, create_test_user, clock, fetch_all):
    user = await create_test_user()
    await async_client.post("/request-password-otp", json={"email": user.email})

    (row,) = await fetch_all(OtpToken)
    assert as_utc(row.created_at) == clock()
    assert row.expires_at_utc == clock() + timedelta(minutes=5)


@pytest.mark.anyio
async def test_request_otp_normalizes_email(async_client: AsyncClient, create_test_user, notifier, fetch_all):
    """Surrounding whitespace and case are ignored when finding the account."""
    user = await create_test_user(email="mixed.case@example.com")

    resp = await async_client.post("/request-password-otp", json={"email": "  Mixed.Case@Example.COM "})

    assert resp.status_code == 200
    assert notifier.sent and notifier.sent[0].to == user.email
    (row,) = await fetch_all(OtpToken)
    assert row.email == "mixed.case@example.com"


@pytest.mark.anyio
async def test_request_otp_rotation_leaves_single_active_code(
    async_client: AsyncClient, create_test_user, request_code, fetch_all
):
    """A second request supersedes the first code; only the newest stays usable."""
    user = await create_test_user()

    first = await request_code(user.email)
    second = await request_code(user.email)

    rows = await fetch_all(OtpToken)
    active = [r for r in rows if not r.used]
    assert len(rows) == 2
    assert len(active) == 1
    assert await verify_otp(second, active[0].otp_hash)

    if first != second:
        resp = await async_client.post("/verify-password-otp", json={"email": user.email, "otp": first})
        assert resp.status_code == 400
        assert resp.json()["code"] == "OTP_INCORRECT"


# ────────────────────────────────────────────────────────────────────────────────
# Enumeration resistance
# ────────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_request_otp_unknown_email_is_generic_and_delayed(
    async_client: AsyncClient, notifier, fetch_all, sleeps
):
    """
    Unknown email → same 200 generic body, no OTP row, no email, and the
    absent-user branch asks for its padding delay.
    """
    resp = await async_client.post("/request-password-otp", json={"email": "nobody@example.com"})

    assert resp.status_code == 200
    assert resp.json() == GENERIC_BODY
    assert notifier.sent == []
    assert await fetch_all(OtpToken) == []
    assert sleeps == [pytest.approx(0.1)]


@pytest.mark.anyio
async def test_request_otp_inactive_user_treated_as_absent(
    async_client: AsyncClient, create_test_user, notifier, fetch_all
):
    user = await create_test_user(is_active=False)

    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 200
    assert resp.json() == GENERIC_BODY
    assert notifier.sent == []
    assert await fetch_all(OtpToken) == []


# ────────────────────────────────────────────────────────────────────────────────
# Rate limiting
# ────────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_request_otp_rate_limited_is_silent(
    async_client: AsyncClient, create_test_user, notifier, fetch_all
):
    """
    Fourth request inside the 15-minute window → still 200 generic body,
    but nothing is issued or sent.
    """
    user = await create_test_user()

    for _ in range(3):
        resp = await async_client.post("/request-password-otp", json={"email": user.email})
        assert resp.status_code == 200

    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 200
    assert resp.json() == GENERIC_BODY
    assert len(notifier.sent) == 3
    assert len(await fetch_all(OtpToken)) == 3


@pytest.mark.anyio
async def test_request_otp_window_slides(async_client: AsyncClient, create_test_user, notifier, clock):
    user = await create_test_user()
    for _ in range(4):
        await async_client.post("/request-password-otp", json={"email": user.email})
    assert len(notifier.sent) == 3

    clock.advance(minutes=15, seconds=1)
    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 200
    assert len(notifier.sent) == 4


@pytest.mark.anyio
async def test_request_otp_budget_is_per_email(async_client: AsyncClient, create_test_user, notifier):
    alice = await create_test_user()
    bob = await create_test_user()

    for _ in range(3):
        await async_client.post("/request-password-otp", json={"email": alice.email})
    await async_client.post("/request-password-otp", json={"email": bob.email})

    assert [m.to for m in notifier.sent].count(bob.email) == 1


@pytest.mark.anyio
async def test_request_otp_redis_down_fails_closed(async_client: AsyncClient, create_test_user, mock_redis, notifier):
    """The limiter is never bypassed: Redis errors end in a generic 500."""
    user = await create_test_user()
    mock_redis.fail_with = RedisConnectionError("down")

    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}
    assert notifier.sent == []


# ────────────────────────────────────────────────────────────────────────────────
# Best-effort email
# ────────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_request_otp_notifier_failure_is_not_surfaced(
    async_client: AsyncClient, create_test_user, notifier, fetch_all
):
    user = await create_test_user()
    notifier.raise_with = RuntimeError("smtp exploded")

    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 200
    assert resp.json() == GENERIC_BODY
    assert len(await fetch_all(OtpToken)) == 1


@pytest.mark.anyio
async def test_request_otp_undelivered_email_still_succeeds(async_client: AsyncClient, create_test_user, notifier):
    user = await create_test_user()
    notifier.result = False

    resp = await async_client.post("/request-password-otp", json={"email": user.email})

    assert resp.status_code == 200
    assert resp.json() == GENERIC_BODY


# ────────────────────────────────────────────────────────────────────────────────
# Input validation
# ────────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
@pytest.mark.parametrize("payload", [{}, {"email": ""}, {"email": "   "}, {"email": None}])
async def test_request_otp_missing_email(async_client: AsyncClient, payload):
    resp = await async_client.post("/request-password-otp", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Email is required", "code": "INVALID_INPUT"}


@pytest.mark.anyio
@pytest.mark.parametrize("email", ["not-an-email", "a@b", "two@@example.com", "sp ace@example.com"])
async def test_request_otp_invalid_email_format(async_client: AsyncClient, email):
    resp = await async_client.post("/request-password-otp", json={"email": email})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid email format", "code": "INVALID_INPUT"}


@pytest.mark.anyio
async def test_request_otp_malformed_json(async_client: AsyncClient):
    resp = await async_client.post(
        "/request-password-otp",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_INPUT"
