# app/schemas/password_reset.py

from typing import Optional

from pydantic import BaseModel, ConfigDict

# Request fields are optional on purpose: presence and format are checked by
# the coordinator so clients get the flow's own error codes and messages.


# ──────────────── Requests ────────────────
class RequestOtpPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None


class VerifyOtpPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    otp: Optional[str] = None


class RedeemResetTokenPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reset_token: Optional[str] = None
    new_password: Optional[str] = None


# ──────────────── Responses ────────────────
class RequestOtpResponse(BaseModel):
    success: bool = True
    message: str


class VerifyOtpResponse(BaseModel):
    success: bool = True
    reset_token: str
    expires_at: str
    message: str


class RedeemResetTokenResponse(BaseModel):
    success: bool = True
    message: str
    email_verified: bool = True


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None
    remaining_attempts: Optional[int] = None
