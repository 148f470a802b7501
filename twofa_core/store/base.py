"""
State Store Interface
=====================
Persistence contract for per-user TwoFactorState records.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional

from ..models import TwoFactorState


class TwoFactorStateStore(ABC):
    """
    Abstract store for TwoFactorState, keyed by user id.

    Callers must hold `lock(user_id)` across a read-modify-write so two
    concurrent challenges cannot both leave a valid code behind.
    """

    @abstractmethod
    async def get(self, user_id: str) -> Optional[TwoFactorState]:
        """Return the user's record, or None if 2FA was never enabled."""

    @abstractmethod
    async def save(self, state: TwoFactorState) -> None:
        """Persist the record, replacing any previous version."""

    @abstractmethod
    def lock(self, user_id: str) -> AsyncContextManager[None]:
        """Exclusive per-user section."""

    async def close(self) -> None:
        """Release connections held by the store."""
