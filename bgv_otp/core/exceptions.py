"""
Error taxonomy for the OTP workflow.

Services raise these; the handlers registered in main.py turn them into the
uniform {"success": false, "error": ...} response body.
"""

from typing import Optional


class OTPError(Exception):
    """Base exception for OTP operations."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(OTPError):
    status_code = 400
    default_message = "Missing required fields"


class NotFound(OTPError):
    status_code = 404
    default_message = "Not found"


class AccountNotFound(NotFound):
    default_message = "User not found"


class AccountInactive(OTPError):
    status_code = 403
    default_message = "Account is inactive"


class InvalidCode(OTPError):
    status_code = 400
    default_message = "Invalid OTP code"


class Expired(OTPError):
    status_code = 400
    default_message = "OTP has expired. Please request a new one."


class AttemptsExhausted(OTPError):
    status_code = 400
    default_message = "Maximum attempts reached. Please request a new OTP."


class RateLimited(OTPError):
    status_code = 429
    default_message = "Too many OTP requests. Please try again later."

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class DeliveryFailed(OTPError):
    status_code = 500
    default_message = "Failed to send OTP SMS"


class UpstreamUnavailable(OTPError):
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again."


class SessionCreationFailed(UpstreamUnavailable):
    default_message = "Failed to create session. Please try again."


class InvalidSessionToken(OTPError):
    status_code = 401
    default_message = "Invalid or expired token"
