"""
Tests for TwoFactorState, the in-memory store and keyed locks.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW


class TestTwoFactorState:
    """Tests for the per-user record."""

    def test_defaults(self):
        """A new record is disabled with nothing pending."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42")

        assert state.enabled is False
        assert state.has_pending_challenge is False

    def test_disabled_record_cannot_hold_code(self):
        """Construction enforces the enabled/code invariant."""
        from twofa_core.models import TwoFactorState

        with pytest.raises(ValueError):
            TwoFactorState(user_id="42", enabled=False, code_hash="h", salt="s", expires_at=NOW)

    def test_partial_challenge_rejected(self):
        """Code and expiry are set together or not at all."""
        from twofa_core.models import TwoFactorState

        with pytest.raises(ValueError):
            TwoFactorState(user_id="42", enabled=True, code_hash="h")

    def test_set_challenge_requires_enabled(self):
        """A disabled record refuses a challenge."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42")

        with pytest.raises(ValueError):
            state.set_challenge("h", "s", NOW)

    def test_disable_clears_challenge(self):
        """Disable drops code, salt and expiry."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42")
        state.enable(NOW)
        state.set_challenge("h", "s", NOW + timedelta(minutes=10), NOW)
        state.attempts = 2

        state.disable(NOW)

        assert state.enabled is False
        assert (state.code_hash, state.salt, state.expires_at) == (None, None, None)
        assert state.attempts == 0

    def test_is_expired_is_strict(self):
        """Expiry only after the deadline has passed."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42", enabled=True)
        state.set_challenge("h", "s", NOW)

        assert state.is_expired(NOW) is False
        assert state.is_expired(NOW + timedelta(microseconds=1)) is True

    def test_naive_datetimes_treated_as_utc(self):
        """Naive timestamps are interpreted as UTC."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42", enabled=True)
        state.set_challenge("h", "s", datetime(2024, 1, 1, 12, 10))

        assert state.expires_at.tzinfo == timezone.utc
        assert state.is_expired(datetime(2024, 1, 1, 12, 11)) is True

    def test_dict_round_trip(self):
        """to_dict/from_dict preserve every field."""
        from twofa_core.models import TwoFactorState

        state = TwoFactorState(user_id="42", enabled=True, updated_at=NOW)
        state.set_challenge("hash", "salt", NOW + timedelta(minutes=10), NOW)
        state.attempts = 1

        restored = TwoFactorState.from_dict(state.to_dict())

        assert restored == state


class TestInMemoryStateStore:
    """Tests for the dict-backed store."""

    @pytest.mark.asyncio
    async def test_get_missing(self):
        """Unknown users have no record."""
        from twofa_core.store import InMemoryStateStore

        assert await InMemoryStateStore().get("42") is None

    @pytest.mark.asyncio
    async def test_records_are_copied(self):
        """Mutating a fetched record does not change the store."""
        from twofa_core.models import TwoFactorState
        from twofa_core.store import InMemoryStateStore

        store = InMemoryStateStore()
        await store.save(TwoFactorState(user_id="42", enabled=True))

        fetched = await store.get("42")
        fetched.enabled = False

        assert (await store.get("42")).enabled is True
        assert len(store) == 1


class TestKeyedLock:
    """Tests for per-key asyncio locks."""

    @pytest.mark.asyncio
    async def test_serialises_same_key(self):
        """Holders of one key never overlap."""
        from twofa_core.locks import KeyedLock

        locks = KeyedLock()
        inside = 0
        peak = 0

        async def worker():
            nonlocal inside, peak
            async with locks.acquire("42"):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0)
                inside -= 1

        await asyncio.gather(*[worker() for _ in range(5)])

        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        """Two users can hold their locks at the same time."""
        from twofa_core.locks import KeyedLock

        locks = KeyedLock()

        async with locks.acquire("42"):
            async with locks.acquire("7"):
                assert locks.locked("42") and locks.locked("7")

    @pytest.mark.asyncio
    async def test_idle_locks_dropped(self):
        """Locks are removed once released."""
        from twofa_core.locks import KeyedLock

        locks = KeyedLock()
        async with locks.acquire("42"):
            assert locks.active_keys == ["42"]

        assert locks.active_keys == []
        assert locks.locked("42") is False
