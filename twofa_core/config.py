"""
Two-Factor Configuration
========================
Runtime settings for the 2FA core, loaded from TWOFA_* environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _to_bool(val: Optional[str], default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


@dataclass
class TwoFactorConfig:
    """Configuration for the two-factor service and its collaborators."""
    # Policy
    confirm_password: bool = True       # Require current password to enable/disable
    code_length: int = 6
    code_ttl_seconds: int = 600         # 10 minutes
    max_attempts: int = 0               # 0 = unlimited retries until expiry
    notify_in_background: bool = False

    # Trust
    ticket_secret: Optional[str] = None        # Required by create_app
    internal_secret: Optional[str] = None      # Shared with the gateway

    # Storage
    redis_url: Optional[str] = None
    redis_key_prefix: str = "twofa"

    # Delivery
    notifier: str = "console"           # console | smtp | webhook
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: str = "no-reply@example.com"
    mail_subject: str = "Your verification code"

    # Observability
    service_name: str = "twofa-core"
    log_level: str = "INFO"
    log_json: bool = True
    audit_buffer_size: int = 1000

    @property
    def attempts_limited(self) -> bool:
        return self.max_attempts > 0

    @classmethod
    def from_env(cls) -> "TwoFactorConfig":
        """Build a config from the process environment."""
        env = os.environ.get
        defaults = cls()
        return cls(
            confirm_password=_to_bool(env("TWOFA_CONFIRM_PASSWORD"), defaults.confirm_password),
            code_length=_to_int(env("TWOFA_CODE_LENGTH"), defaults.code_length),
            code_ttl_seconds=_to_int(env("TWOFA_CODE_TTL_SECONDS"), defaults.code_ttl_seconds),
            max_attempts=_to_int(env("TWOFA_MAX_ATTEMPTS"), defaults.max_attempts),
            notify_in_background=_to_bool(
                env("TWOFA_NOTIFY_IN_BACKGROUND"), defaults.notify_in_background
            ),
            ticket_secret=env("TWOFA_TICKET_SECRET") or None,
            internal_secret=env("TWOFA_INTERNAL_SECRET") or None,
            redis_url=env("TWOFA_REDIS_URL") or None,
            redis_key_prefix=env("TWOFA_REDIS_KEY_PREFIX", defaults.redis_key_prefix),
            notifier=env("TWOFA_NOTIFIER", defaults.notifier).strip().lower(),
            webhook_url=env("TWOFA_WEBHOOK_URL") or None,
            webhook_secret=env("TWOFA_WEBHOOK_SECRET") or None,
            smtp_host=env("TWOFA_SMTP_HOST", defaults.smtp_host),
            smtp_port=_to_int(env("TWOFA_SMTP_PORT"), defaults.smtp_port),
            smtp_user=env("TWOFA_SMTP_USER") or None,
            smtp_password=env("TWOFA_SMTP_PASSWORD") or None,
            smtp_use_tls=_to_bool(env("TWOFA_SMTP_USE_TLS"), defaults.smtp_use_tls),
            mail_from=env("TWOFA_MAIL_FROM", defaults.mail_from),
            mail_subject=env("TWOFA_MAIL_SUBJECT", defaults.mail_subject),
            service_name=env("TWOFA_SERVICE_NAME", defaults.service_name),
            log_level=env("TWOFA_LOG_LEVEL", defaults.log_level).upper(),
            log_json=_to_bool(env("TWOFA_LOG_JSON"), defaults.log_json),
            audit_buffer_size=_to_int(env("TWOFA_AUDIT_BUFFER_SIZE"), defaults.audit_buffer_size),
        )
