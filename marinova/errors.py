"""Application error taxonomy.

Services raise these; the API layer renders them as
``{"success": false, "message": ..., **hints}`` with the class status code.
Hint flags (``requiresVerification``, ``requiresSubscription``) let the client
route to the right screen without matching on messages.
"""

from __future__ import annotations

from typing import Any, Dict


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None, **hints: Any):
        self.message = message or self.default_message
        self.hints = hints
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message}
        payload.update(self.hints)
        return payload


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class DuplicateEmailError(AppError):
    status_code = 400
    default_message = "User with this email already exists"


class InvalidCredentialsError(AppError):
    # Same message for unknown email and wrong password (no account enumeration).
    status_code = 401
    default_message = "Invalid email or password"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "No authentication token, access denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "User not found"


class InvalidTokenError(AppError):
    status_code = 400
    default_message = "Invalid or expired verification token"


class AlreadyVerifiedError(AppError):
    status_code = 400
    default_message = "Email is already verified"


class EmailNotVerifiedError(AppError):
    status_code = 403
    default_message = "Please verify your email to use this feature"
    reason = "requiresVerification"

    def __init__(self, message: str | None = None, **hints: Any):
        super().__init__(message, requiresVerification=True, **hints)


class SubscriptionRequiredError(AppError):
    status_code = 403
    default_message = "This feature requires a subscription"
    reason = "requiresSubscription"

    def __init__(self, message: str | None = None, **hints: Any):
        super().__init__(message, requiresSubscription=True, **hints)


class InvalidPlanError(AppError):
    status_code = 400
    default_message = "Invalid subscription plan"


class DeliveryError(AppError):
    status_code = 500
    default_message = "Failed to send verification email. Please try again."


class UpstreamError(AppError):
    status_code = 502
    default_message = "Upstream provider failed"


class ServerError(AppError):
    status_code = 500
    default_message = "Server error"
