"""Domain errors raised by the account flows.

Every error carries the HTTP status it maps to and a default message; the
handlers registered in ``userauth.main`` render them as ``{"message": ...}``.
"""
from typing import Optional

from fastapi import status


class AppError(Exception):
    """Base class for all errors that become a JSON error response"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        self.message = message or self.message
        self.error = error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        content = {"message": self.message}
        if self.error:
            content["error"] = self.error
        return content


# ── 400: malformed or missing input ───────────────────────────────────────────

class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class MissingFields(ValidationError):
    message = "Please fill all required fields"


class InvalidEmail(ValidationError):
    message = "Please enter a valid email address"


class WeakInput(ValidationError):
    message = "Input does not meet the account requirements"


class SameEmail(ValidationError):
    message = "It's your current email"


class PasswordMismatch(ValidationError):
    message = "Password does not match confirm password"


class InvalidCredentials(ValidationError):
    message = "Invalid email or password"


# ── 400: duplicates ───────────────────────────────────────────────────────────

class ConflictError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Resource already exists"


class DuplicateEmail(ConflictError):
    message = "Email already exists"


# ── 400: user or session state missing ───────────────────────────────────────

class NotFoundError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Not found"


class UserNotFound(NotFoundError):
    message = "User not found"


class ProfileNotFound(UserNotFound):
    status_code = status.HTTP_404_NOT_FOUND


class NoPendingRegistration(NotFoundError):
    message = "User data not found in session"


class IncompleteRegistration(NotFoundError):
    message = "Registration incomplete"


class NoPendingEmail(NotFoundError):
    message = "Email not found in session"


# ── 401: bearer token problems ───────────────────────────────────────────────

class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Not authenticated"
    headers = {"WWW-Authenticate": "Bearer"}


class Unauthorized(AuthError):
    message = "Not authenticated"


class InvalidToken(AuthError):
    message = "Invalid token"


class ExpiredToken(AuthError):
    message = "Token has expired"


# ── 400: one-time passcodes ──────────────────────────────────────────────────

class OtpError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "OTP error"


class OtpMismatch(OtpError):
    message = "Invalid OTP"


class OtpRequired(OtpError):
    message = "OTP is required"


class OtpNotValidated(OtpError):
    message = "OTP validation required"


# ── 500: hashing, delivery ───────────────────────────────────────────────────

class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"


class HashingError(InternalError):
    message = "Error hashing password"


class DeliveryError(InternalError):
    message = "Failed to send email"
