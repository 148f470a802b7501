"""
Tests for RedisStateStore against an in-process stand-in for redis.asyncio.
"""

import asyncio
import json
from datetime import timedelta

import pytest

from conftest import NOW, PASSWORD


class FakeRedis:
    """The subset of redis.asyncio.Redis used by RedisStateStore."""

    def __init__(self):
        self.data = {}
        self.locks = {}
        self.lock_calls = []
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value

    async def ping(self):
        return True

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.lock_calls.append((name, timeout, blocking_timeout))
        return self.locks.setdefault(name, asyncio.Lock())

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_store(fake_redis):
    from twofa_core.store import RedisStateStore

    return RedisStateStore(fake_redis, key_prefix="test")


class TestRedisStateStore:
    """Tests for JSON persistence and locking."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, redis_store, fake_redis):
        """Records are stored as JSON under the prefixed key."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42", enabled=True, updated_at=NOW)
        state.set_challenge("hash", "salt", NOW + timedelta(minutes=10), NOW)

        await redis_store.save(state)

        raw = json.loads(fake_redis.data["test:state:42"])
        assert raw["enabled"] is True
        assert raw["code_hash"] == "hash"
        assert await redis_store.get("42") == state

    @pytest.mark.asyncio
    async def test_get_missing(self, redis_store):
        """Missing keys mean no record."""
        assert await redis_store.get("42") is None

    @pytest.mark.asyncio
    async def test_bytes_payload(self, redis_store, fake_redis):
        """Clients without decode_responses return bytes."""
        fake_redis.data["test:state:42"] = json.dumps({"user_id": "42", "enabled": True}).encode()

        state = await redis_store.get("42")

        assert state.enabled is True

    @pytest.mark.asyncio
    async def test_corrupt_record(self, redis_store, fake_redis):
        """Unreadable records raise instead of silently resetting 2FA."""
        fake_redis.data["test:state:42"] = "{not json"

        with pytest.raises(ValueError):
            await redis_store.get("42")

    @pytest.mark.asyncio
    async def test_lock_parameters(self, redis_store, fake_redis):
        """Locks use a per-user key with the configured timeouts."""
        async with redis_store.lock("42"):
            pass

        assert fake_redis.lock_calls == [("test:lock:42", 10.0, 5.0)]

    @pytest.mark.asyncio
    async def test_close(self, redis_store, fake_redis):
        """Close releases the client."""
        await redis_store.close()

        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_service_lifecycle(self, make_service, redis_store):
        """The full lifecycle works against the Redis store."""
        from conftest import FixedGenerator

        service = make_service(store=redis_store, generator=FixedGenerator("519204"))

        await service.enable("42", PASSWORD)
        await service.challenge("42")
        result = await service.verify("42", "519204")

        assert result.ok is True
        assert (await redis_store.get("42")).has_pending_challenge is False
