"""
Password Reset API — three-step OTP flow
========================================

Endpoints
---------
POST /request-password-otp
    Email a 6-digit OTP. Always answers with the same generic body so the
    endpoint cannot be used to discover which emails have accounts.

POST /verify-password-otp
    Check the OTP and hand back a short-lived, single-use reset token.

POST /reset-password-with-token
    Redeem the reset token to set a new password (also confirms the email).

OPTIONS on each path
    Permissive CORS answer for clients that send a bare OPTIONS.

Security & DX
-------------
- Per-email sliding-window throttles and attempt budgets live in the
  coordinator; routes stay thin.
- Emails go out via **BackgroundTasks** after the response is sent.
- **Sensitive cache headers** applied (``Cache-Control: no-store``).
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from app.schemas.password_reset import (
    ErrorResponse,
    RedeemResetTokenPayload,
    RedeemResetTokenResponse,
    RequestOtpPayload,
    RequestOtpResponse,
    VerifyOtpPayload,
    VerifyOtpResponse,
)
from app.security_headers import preflight_response, set_sensitive_cache
from app.services.reset_coordinator import ResetCoordinator

router = APIRouter(tags=["Password Reset"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_coordinator(request: Request) -> ResetCoordinator:
    """The coordinator is built once by `create_app` and parked on app state."""
    return request.app.state.reset_coordinator


# ─────────────────────────────────────────────────────────────
# 📧 Step 1: request OTP
# ─────────────────────────────────────────────────────────────
@router.post(
    "/request-password-otp",
    response_model=RequestOtpResponse,
    responses=_ERRORS,
    summary="Email a one-time code for password reset",
)
async def request_password_otp_route(
    payload: RequestOtpPayload,
    response: Response,
    background_tasks: BackgroundTasks,
    coordinator: ResetCoordinator = Depends(get_coordinator),
) -> dict:
    set_sensitive_cache(response)
    return await coordinator.request_otp(payload.email, background_tasks=background_tasks)


# ─────────────────────────────────────────────────────────────
# 🔢 Step 2: verify OTP
# ─────────────────────────────────────────────────────────────
@router.post(
    "/verify-password-otp",
    response_model=VerifyOtpResponse,
    responses=_ERRORS,
    summary="Verify the OTP and receive a reset token",
)
async def verify_password_otp_route(
    payload: VerifyOtpPayload,
    response: Response,
    coordinator: ResetCoordinator = Depends(get_coordinator),
) -> dict:
    set_sensitive_cache(response)
    return await coordinator.verify_otp(payload.email, payload.otp)


# ─────────────────────────────────────────────────────────────
# 🔒 Step 3: redeem reset token
# ─────────────────────────────────────────────────────────────
@router.post(
    "/reset-password-with-token",
    response_model=RedeemResetTokenResponse,
    responses=_ERRORS,
    summary="Set a new password with a reset token",
)
async def reset_password_with_token_route(
    payload: RedeemResetTokenPayload,
    response: Response,
    background_tasks: BackgroundTasks,
    coordinator: ResetCoordinator = Depends(get_coordinator),
) -> dict:
    set_sensitive_cache(response)
    return await coordinator.redeem_reset_token(
        payload.reset_token, payload.new_password, background_tasks=background_tasks
    )


# ─────────────────────────────────────────────────────────────
# 🌐 Bare OPTIONS
# ─────────────────────────────────────────────────────────────
@router.options("/request-password-otp", include_in_schema=False)
@router.options("/verify-password-otp", include_in_schema=False)
@router.options("/reset-password-with-token", include_in_schema=False)
async def password_reset_options(request: Request) -> Response:
    return preflight_response(request.app.state.settings)
