from .otp import OtpToken
from .reset_token import ResetToken
from .user import User

__all__ = ["OtpToken", "ResetToken", "User"]
