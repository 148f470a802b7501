"""
Notifier Interface
==================
Delivery of one-time codes to the user over an out-of-band channel.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class DeliveryResult:
    """Result of handing a code to a delivery channel."""
    success: bool
    channel: str = "email"
    message_id: Optional[str] = None
    error: Optional[str] = None


class Notifier(ABC):
    """
    Abstract code delivery.

    Implementations either return a DeliveryResult or raise DeliveryError.
    Delivery is never retried by the 2FA service; a failed delivery leaves
    the pending code valid until it expires.
    """

    channel: str = "email"

    @abstractmethod
    async def send_code(self, user_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        """Deliver `code` to the user's registered address."""

    async def close(self) -> None:
        """Release transport resources."""
