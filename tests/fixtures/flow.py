# tests/fixtures/flow.py
"""Shortcuts that walk the public endpoints to a given step of the reset flow."""

from typing import Awaitable, Callable

import pytest
from httpx import AsyncClient

from tests.fixtures.mocks.email import RecordingNotifier


@pytest.fixture
def request_code(async_client: AsyncClient, notifier: RecordingNotifier) -> Callable[[str], Awaitable[str]]:
    """POST /request-password-otp and return the code that was emailed."""

    async def _request(email: str) -> str:
        resp = await async_client.post("/request-password-otp", json={"email": email})
        assert resp.status_code == 200, resp.text
        return notifier.last_otp()

    return _request


@pytest.fixture
def obtain_reset_token(async_client: AsyncClient, request_code) -> Callable[[str], Awaitable[str]]:
    """Request + verify an OTP and return the issued reset token."""

    async def _obtain(email: str) -> str:
        code = await request_code(email)
        resp = await async_client.post("/verify-password-otp", json={"email": email, "otp": code})
        assert resp.status_code == 200, resp.text
        return resp.json()["reset_token"]

    return _obtain
