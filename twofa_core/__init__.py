"""
twofa-core
==========
Email one-time-code two-factor authentication: enable, disable,
challenge and verify, with pluggable stores and notifiers.
"""

__version__ = "1.0.0"

from .config import TwoFactorConfig
from .errors import (
    TwoFactorErrorCode,
    TwoFactorError,
    InvalidCredentialsError,
    NotEnabledError,
    NoChallengePendingError,
    ExpiredError,
    CodeMismatchError,
    TooManyAttemptsError,
    DeliveryError,
    UserNotFoundError,
    ProfileValidationError,
)
from .models import User, TwoFactorState, TwoFactorStatus, TwoFactorResult
from .otp import OtpGenerator, generate_otp
from .service import TwoFactorService
from .credentials import CredentialVerifier, PasswordCredentialVerifier
from .notify import (
    DeliveryResult,
    Notifier,
    EmailNotifier,
    ConsoleEmailBackend,
    SmtpEmailBackend,
    WebhookNotifier,
)
from .store import (
    TwoFactorStateStore,
    InMemoryStateStore,
    RedisStateStore,
    UserStore,
    InMemoryUserStore,
)
from .profile import Profile, ProfileService
from .tokens import LoginTicketSigner
from .audit import AuditLogger, AuditEvent, AuditEventType
from .logging_config import setup_logging

__all__ = [
    "__version__",
    # Config
    "TwoFactorConfig",
    # Errors
    "TwoFactorErrorCode",
    "TwoFactorError",
    "InvalidCredentialsError",
    "NotEnabledError",
    "NoChallengePendingError",
    "ExpiredError",
    "CodeMismatchError",
    "TooManyAttemptsError",
    "DeliveryError",
    "UserNotFoundError",
    "ProfileValidationError",
    # Models
    "User",
    "TwoFactorState",
    "TwoFactorStatus",
    "TwoFactorResult",
    # Core
    "OtpGenerator",
    "generate_otp",
    "TwoFactorService",
    "CredentialVerifier",
    "PasswordCredentialVerifier",
    # Delivery
    "DeliveryResult",
    "Notifier",
    "EmailNotifier",
    "ConsoleEmailBackend",
    "SmtpEmailBackend",
    "WebhookNotifier",
    # Storage
    "TwoFactorStateStore",
    "InMemoryStateStore",
    "RedisStateStore",
    "UserStore",
    "InMemoryUserStore",
    # Profile
    "Profile",
    "ProfileService",
    # Login tickets
    "LoginTicketSigner",
    # Audit / logging
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "setup_logging",
]
