"""
auth/errors.py -- Typed failure outcomes for the auth core.

Every flow in auth/ fails with exactly one of these. The HTTP layer maps them
to responses in a single exception handler (api/main.py); nothing in auth/
knows about status codes beyond the hint carried on each class.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. code is the machine-readable identifier sent to clients."""

    code: str = "auth_error"
    status_code: int = 400
    message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthenticated(AuthError):
    code = "unauthenticated"
    status_code = 401
    message = "Please log in to access this resource."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Role {role} is not allowed to perform this operation.")


class InvalidCredentials(AuthError):
    # Same message for unknown email and wrong password -- no enumeration.
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password."


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status_code = 400
    message = "Password reset token is invalid or has expired."


class PasswordMismatch(AuthError):
    code = "password_mismatch"
    status_code = 400
    message = "Password does not match."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    message = "User not found."


class DeliveryError(AuthError):
    code = "delivery_failed"
    status_code = 502
    message = "Email could not be sent."


class EmailAlreadyRegistered(AuthError):
    code = "email_taken"
    status_code = 409
    message = "An account with that email already exists."


class InvalidUserData(AuthError):
    code = "invalid_user_data"
    status_code = 422
    message = "Invalid user data."
