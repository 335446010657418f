# tests/test_password_reset/test_enumeration_policy.py

import time

import anyio
import pytest
from fastapi import BackgroundTasks
from httpx import AsyncClient

from app.services.reset_coordinator import (
    GENERIC_REQUEST_MESSAGE,
    RequestOtpOutcome,
    enumeration_safe_response,
)


def test_every_outcome_maps_to_one_body():
    bodies = {repr(enumeration_safe_response(o)) for o in RequestOtpOutcome}
    assert bodies == {repr({"success": True, "message": GENERIC_REQUEST_MESSAGE})}


@pytest.mark.anyio
async def test_known_unknown_and_throttled_are_indistinguishable(async_client: AsyncClient, create_test_user):
    """
    Same status, same body and the same header names for an existing
    account, a missing one and a throttled one.
    """
    user = await create_test_user()
    for _ in range(3):
        await async_client.post("/request-password-otp", json={"email": user.email})

    known = await create_test_user()
    responses = [
        await async_client.post("/request-password-otp", json={"email": known.email}),
        await async_client.post("/request-password-otp", json={"email": "ghost@example.com"}),
        await async_client.post("/request-password-otp", json={"email": user.email}),
    ]

    assert {r.status_code for r in responses} == {200}
    assert len({r.text for r in responses}) == 1
    assert len({frozenset(r.headers.keys()) for r in responses}) == 1


class _SlowNotifier:
    """Notifier that takes as long as a sluggish SMTP relay."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.sent = []

    async def send(self, to: str, subject: str, html: str) -> bool:
        await anyio.sleep(self.delay)
        self.sent.append(to)
        return True


@pytest.mark.anyio
async def test_known_user_answer_does_not_wait_for_email(coordinator, create_test_user, notifier):
    """The OTP email is queued behind the response, not sent inline."""
    user = await create_test_user()
    tasks = BackgroundTasks()

    body = await coordinator.request_otp(user.email, background_tasks=tasks)

    assert body == {"success": True, "message": GENERIC_REQUEST_MESSAGE}
    assert notifier.sent == []

    await tasks()
    assert notifier.last_otp()


@pytest.mark.anyio
async def test_known_and_unknown_latency_within_tolerance(coordinator, create_test_user):
    """A slow mail relay must not make a real account answer slower than a missing one."""
    coordinator.notifier = _SlowNotifier(delay=0.5)
    user = await create_test_user()

    async def _timed(email: str):
        tasks = BackgroundTasks()
        started = time.perf_counter()
        await coordinator.request_otp(email, background_tasks=tasks)
        return time.perf_counter() - started, tasks

    known, known_tasks = await _timed(user.email)
    ghost, _ = await _timed("ghost@example.com")

    assert known < 0.3
    assert abs(known - ghost) < 0.3

    await known_tasks()
    assert coordinator.notifier.sent == [user.email]
