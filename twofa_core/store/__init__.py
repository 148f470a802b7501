"""
Storage
=======
2FA state stores and the user store interface.
"""

from .base import TwoFactorStateStore
from .memory import InMemoryStateStore
from .redis_store import RedisStateStore
from .users import UserStore, InMemoryUserStore

__all__ = [
    # State
    "TwoFactorStateStore",
    "InMemoryStateStore",
    "RedisStateStore",
    # Users
    "UserStore",
    "InMemoryUserStore",
]
