"""
auth/errors.py -- Failure taxonomy for the authentication core.

Every failure that crosses the AuthService boundary is one of these. Each
carries a stable machine code and a user-safe message; the API layer maps the
class to an HTTP status in a single exception handler (api/main.py), so route
handlers never build error bodies for these cases themselves.

Messages never contain internal detail (SQL errors, provider responses,
which credential check failed). Internal detail goes to the log only.

Layer rule: no imports from api/, assets/, or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. Subclasses override code and message."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AuthError):
    code = "validation_error"
    message = "Request validation failed."


class DuplicateIdentityError(AuthError):
    """Email or username already belongs to another account."""

    code = "conflict"
    message = "An account with this email or username already exists."


class NotFoundError(AuthError):
    code = "not_found"
    message = "Account not found."


class InvalidCredentialsError(AuthError):
    # Same code and message for unknown email and wrong password.
    code = "invalid_credentials"
    message = "Invalid email or password."


class InvalidOrExpiredOtpError(AuthError):
    # Same code and message for expired, mismatched and consumed codes.
    code = "invalid_or_expired_otp"
    message = "The verification code is invalid or has expired."


class AlreadyVerifiedError(AuthError):
    code = "already_verified"
    message = "This account is already verified."


class NotVerifiedError(AuthError):
    code = "not_verified"
    message = "Email not verified. Complete OTP verification before logging in."


class DeliveryFailedError(AuthError):
    """The notifier could not deliver an OTP. Retryable via resend."""

    code = "delivery_failed"
    message = "The verification code could not be sent. Please request a new code."


class UnauthorizedError(AuthError):
    code = "unauthorized"
    message = "Authentication token required."


class InvalidTokenError(AuthError):
    code = "invalid_token"
    message = "Invalid token."


class TokenExpiredError(InvalidTokenError):
    code = "token_expired"
    message = "Token has expired."
