"""
Two-Factor Models
=================
Data models for users, per-user 2FA state and operation results.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from dataclasses import dataclass, field

from .errors import TwoFactorErrorCode, error_for


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class User:
    """A user record owned by the host application."""
    id: str
    email: str
    name: str = ""
    password_hash: str = ""


@dataclass
class TwoFactorState:
    """
    Per-user 2FA record.

    The pending code is stored only as a salted hash. `code_hash`, `salt`
    and `expires_at` are set together by a challenge and cleared together
    on success, expiry detection or disable.
    """
    user_id: str
    enabled: bool = False
    code_hash: Optional[str] = None
    salt: Optional[str] = None
    expires_at: Optional[datetime] = None
    attempts: int = 0
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.expires_at = as_utc(self.expires_at)
        self.updated_at = as_utc(self.updated_at)
        pending = (self.code_hash is not None, self.salt is not None, self.expires_at is not None)
        if any(pending) and not all(pending):
            raise ValueError("code and expiry must be set together")
        if not self.enabled and self.code_hash is not None:
            raise ValueError("a disabled record cannot hold a pending code")

    @property
    def has_pending_challenge(self) -> bool:
        return self.code_hash is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(now) > self.expires_at

    def enable(self, now: Optional[datetime] = None) -> None:
        self.enabled = True
        self.updated_at = as_utc(now) or utcnow()

    def disable(self, now: Optional[datetime] = None) -> None:
        self.enabled = False
        self.clear_challenge(now)

    def set_challenge(self, code_hash: str, salt: str, expires_at: datetime,
                      now: Optional[datetime] = None) -> None:
        if not self.enabled:
            raise ValueError("cannot issue a challenge while 2FA is disabled")
        self.code_hash = code_hash
        self.salt = salt
        self.expires_at = as_utc(expires_at)
        self.attempts = 0
        self.updated_at = as_utc(now) or utcnow()

    def clear_challenge(self, now: Optional[datetime] = None) -> None:
        self.code_hash = None
        self.salt = None
        self.expires_at = None
        self.attempts = 0
        self.updated_at = as_utc(now) or utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "enabled": self.enabled,
            "code_hash": self.code_hash,
            "salt": self.salt,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "attempts": self.attempts,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TwoFactorState":
        expires_at = data.get("expires_at")
        updated_at = data.get("updated_at")
        return cls(
            user_id=str(data["user_id"]),
            enabled=bool(data.get("enabled", False)),
            code_hash=data.get("code_hash"),
            salt=data.get("salt"),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            attempts=int(data.get("attempts", 0)),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else utcnow(),
        )


@dataclass
class TwoFactorStatus:
    """Read-only snapshot of a user's 2FA state."""
    user_id: str
    enabled: bool
    pending: bool
    expires_at: Optional[datetime] = None


@dataclass
class TwoFactorResult:
    """Outcome of a TwoFactorService operation."""
    ok: bool
    user_id: Optional[str] = None
    error: Optional[TwoFactorErrorCode] = None
    message: Optional[str] = None
    code: Optional[str] = field(default=None, repr=False)  # Only for tests/observability
    expires_at: Optional[datetime] = None
    delivered: Optional[bool] = None
    delivery_error: Optional[str] = None
    two_factor_required: bool = False

    @classmethod
    def success(cls, user_id: str, **kwargs) -> "TwoFactorResult":
        return cls(ok=True, user_id=user_id, **kwargs)

    @classmethod
    def failure(cls, user_id: str, error: TwoFactorErrorCode,
                message: Optional[str] = None) -> "TwoFactorResult":
        return cls(
            ok=False,
            user_id=user_id,
            error=error,
            message=message or error_for(error).message,
        )

    def raise_for_error(self) -> "TwoFactorResult":
        """Raise the matching TwoFactorError if the operation failed."""
        if not self.ok and self.error is not None:
            raise error_for(self.error, self.message, user_id=self.user_id)
        return self
