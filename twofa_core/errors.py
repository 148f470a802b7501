"""
Two-Factor Errors
=================
Error codes and exception classes for the 2FA lifecycle.

Every failure is recoverable and user-facing. Service operations report
failures as a TwoFactorErrorCode on their result; the exception classes
are raised by collaborators (stores, notifiers) and by
TwoFactorResult.raise_for_error().
"""

from typing import Dict, Optional, Type
from enum import Enum


class TwoFactorErrorCode(str, Enum):
    """Reasons a 2FA operation can fail."""
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_ENABLED = "not_enabled"
    NO_CHALLENGE_PENDING = "no_challenge_pending"
    EXPIRED = "expired"
    CODE_MISMATCH = "code_mismatch"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    DELIVERY_FAILED = "delivery_failed"
    USER_NOT_FOUND = "user_not_found"


class TwoFactorError(Exception):
    """Base exception for all 2FA failures."""
    code: TwoFactorErrorCode = TwoFactorErrorCode.INVALID_CREDENTIALS
    status_code: int = 400
    default_message: str = "Two-factor authentication failed"

    def __init__(self, message: Optional[str] = None, user_id: Optional[str] = None):
        self.message = message or self.default_message
        self.user_id = user_id
        super().__init__(self.message)


class InvalidCredentialsError(TwoFactorError):
    code = TwoFactorErrorCode.INVALID_CREDENTIALS
    status_code = 401
    default_message = "The provided password is incorrect."


class NotEnabledError(TwoFactorError):
    code = TwoFactorErrorCode.NOT_ENABLED
    status_code = 409
    default_message = "Two-factor authentication is not enabled."


class NoChallengePendingError(TwoFactorError):
    code = TwoFactorErrorCode.NO_CHALLENGE_PENDING
    status_code = 404
    default_message = "No pending code. Please request a new one."


class ExpiredError(TwoFactorError):
    code = TwoFactorErrorCode.EXPIRED
    status_code = 410
    default_message = "Code expired. Please request a new code."


class CodeMismatchError(TwoFactorError):
    code = TwoFactorErrorCode.CODE_MISMATCH
    status_code = 401
    default_message = "Invalid code."


class TooManyAttemptsError(TwoFactorError):
    code = TwoFactorErrorCode.TOO_MANY_ATTEMPTS
    status_code = 429
    default_message = "Too many attempts. Please request a new code."


class DeliveryError(TwoFactorError):
    """Raised by notifiers when a code could not be handed to the transport."""
    code = TwoFactorErrorCode.DELIVERY_FAILED
    status_code = 502
    default_message = "Unable to send verification code."


class UserNotFoundError(TwoFactorError):
    code = TwoFactorErrorCode.USER_NOT_FOUND
    status_code = 404
    default_message = "User not found."


class ProfileValidationError(Exception):
    """Raised when a profile or password update fails validation."""

    status_code = 422

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))


ERRORS_BY_CODE: Dict[TwoFactorErrorCode, Type[TwoFactorError]] = {
    cls.code: cls
    for cls in (
        InvalidCredentialsError,
        NotEnabledError,
        NoChallengePendingError,
        ExpiredError,
        CodeMismatchError,
        TooManyAttemptsError,
        DeliveryError,
        UserNotFoundError,
    )
}


def error_for(code: TwoFactorErrorCode, message: Optional[str] = None,
              user_id: Optional[str] = None) -> TwoFactorError:
    """Instantiate the exception class registered for an error code."""
    return ERRORS_BY_CODE[code](message, user_id=user_id)
