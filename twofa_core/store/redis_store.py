"""
Redis State Store
=================
Redis-backed TwoFactorState storage with a distributed per-user lock,
for deployments where several workers serve the same users.
"""

import json
from typing import AsyncContextManager, Optional
import structlog

from ..models import TwoFactorState
from .base import TwoFactorStateStore

logger = structlog.get_logger(__name__)


class RedisStateStore(TwoFactorStateStore):
    """
    Stores each record as a JSON string under `<prefix>:state:<user_id>`.

    Locks use redis-py's Lock (SET NX with a token), held for at most
    `lock_timeout` seconds so a crashed worker cannot wedge a user.
    """

    def __init__(
        self,
        redis_client,
        key_prefix: str = "twofa",
        lock_timeout: float = 10.0,
        lock_blocking_timeout: float = 5.0,
    ):
        """
        Args:
            redis_client: Async Redis client (redis.asyncio.Redis)
            key_prefix: Namespace for all keys written by this store
            lock_timeout: Seconds before a held lock auto-expires
            lock_blocking_timeout: Seconds to wait for a contended lock
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.lock_timeout = lock_timeout
        self.lock_blocking_timeout = lock_blocking_timeout

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStateStore":
        from redis.asyncio import from_url

        return cls(from_url(url, decode_responses=True), **kwargs)

    def state_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:state:{user_id}"

    def lock_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:lock:{user_id}"

    async def get(self, user_id: str) -> Optional[TwoFactorState]:
        raw = await self.redis.get(self.state_key(user_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return TwoFactorState.from_dict(json.loads(raw))
        except (ValueError, KeyError) as e:
            logger.error("Corrupt 2FA record", user_id=user_id, error=str(e))
            raise

    async def save(self, state: TwoFactorState) -> None:
        payload = json.dumps(state.to_dict(), separators=(",", ":"))
        await self.redis.set(self.state_key(state.user_id), payload)

    def lock(self, user_id: str) -> AsyncContextManager[None]:
        return self.redis.lock(
            self.lock_key(user_id),
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_blocking_timeout,
        )

    async def close(self) -> None:
        await self.redis.aclose()
