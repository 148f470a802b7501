"""
Shared fixtures for twofa-core tests.
"""

import os

# Cheap Argon2 parameters; must be set before the first hasher is built
os.environ.setdefault("TWOFA_ARGON2_TIME_COST", "1")
os.environ.setdefault("TWOFA_ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("TWOFA_ARGON2_PARALLELISM", "1")

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from twofa_core.config import TwoFactorConfig
from twofa_core.credentials import PasswordCredentialVerifier
from twofa_core.errors import DeliveryError
from twofa_core.models import User
from twofa_core.notify.base import DeliveryResult, Notifier
from twofa_core.password import hash_password_sync
from twofa_core.service import TwoFactorService
from twofa_core.store import InMemoryStateStore, InMemoryUserStore

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
PASSWORD = "correct"


class RecordingNotifier(Notifier):
    """Keeps every delivered code; optionally fails instead."""

    def __init__(self, fail_with: Optional[str] = None, raise_error: bool = True):
        self.sent: List[tuple] = []
        self.fail_with = fail_with
        self.raise_error = raise_error
        self.closed = False

    async def send_code(self, user_id, code, expires_at):
        if self.fail_with:
            if self.raise_error:
                raise DeliveryError(self.fail_with, user_id=user_id)
            return DeliveryResult(success=False, error=self.fail_with)
        self.sent.append((user_id, code, expires_at))
        return DeliveryResult(success=True, message_id=f"msg-{len(self.sent)}")

    async def close(self):
        self.closed = True

    @property
    def last_code(self) -> Optional[str]:
        return self.sent[-1][1] if self.sent else None


class FixedGenerator:
    """Hands out predetermined codes in order, repeating the last one."""

    def __init__(self, *codes: str):
        self.codes = list(codes)

    def generate(self) -> str:
        if len(self.codes) > 1:
            return self.codes.pop(0)
        return self.codes[0]


@pytest.fixture
def users():
    store = InMemoryUserStore()
    store.add(User(id="42", email="alice@example.com", name="Alice",
                   password_hash=hash_password_sync(PASSWORD)))
    store.add(User(id="7", email="bob@example.com", name="Bob",
                   password_hash=hash_password_sync("bob-password")))
    return store


@pytest.fixture
def states():
    return InMemoryStateStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return TwoFactorConfig()


@pytest.fixture
def make_service(users, states, notifier, config):
    """Build a TwoFactorService; keyword overrides replace the defaults."""

    def factory(**overrides):
        kwargs = dict(
            users=users,
            store=states,
            credentials=PasswordCredentialVerifier(users),
            notifier=notifier,
            config=config,
            clock=lambda: NOW,
        )
        kwargs.update(overrides)
        return TwoFactorService(**kwargs)

    return factory


@pytest.fixture
def service(make_service):
    return make_service()
