"""
In-Memory State Store
=====================
Process-local TwoFactorState storage for development, tests and
single-worker deployments.
"""

import dataclasses
from typing import AsyncContextManager, Dict, Optional

from ..locks import KeyedLock
from ..models import TwoFactorState
from .base import TwoFactorStateStore


class InMemoryStateStore(TwoFactorStateStore):
    """
    Dict-backed store. Records are copied on the way in and out, so a
    caller mutating a record without saving it leaves the store untouched.

    Use RedisStateStore when more than one worker serves the same users.
    """

    def __init__(self):
        self._records: Dict[str, TwoFactorState] = {}
        self._locks = KeyedLock()

    async def get(self, user_id: str) -> Optional[TwoFactorState]:
        state = self._records.get(str(user_id))
        return dataclasses.replace(state) if state else None

    async def save(self, state: TwoFactorState) -> None:
        self._records[str(state.user_id)] = dataclasses.replace(state)

    def lock(self, user_id: str) -> AsyncContextManager[None]:
        return self._locks.acquire(str(user_id))

    def __len__(self) -> int:
        return len(self._records)
