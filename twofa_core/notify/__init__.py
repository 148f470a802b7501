"""
Code Delivery
=============
Notifiers that hand one-time codes to the user.
"""

from .base import DeliveryResult, Notifier
from .email import (
    EmailBackend,
    ConsoleEmailBackend,
    SmtpEmailBackend,
    EmailNotifier,
    mask_email,
)
from .webhook import WebhookNotifier

__all__ = [
    # Base
    "DeliveryResult",
    "Notifier",
    # Email
    "EmailBackend",
    "ConsoleEmailBackend",
    "SmtpEmailBackend",
    "EmailNotifier",
    "mask_email",
    # Webhook
    "WebhookNotifier",
]
