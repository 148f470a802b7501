"""
Credential Verification
=======================
Password confirmation used before enabling/disabling 2FA and at login.
"""

from abc import ABC, abstractmethod
import structlog

from .errors import UserNotFoundError
from .password import verify_and_upgrade
from .store.users import UserStore

logger = structlog.get_logger(__name__)


class CredentialVerifier(ABC):
    """Checks a plaintext password against a user's stored hash."""

    @abstractmethod
    async def verify(self, user_id: str, password: str) -> bool:
        """Return True if the password belongs to the user."""


class PasswordCredentialVerifier(CredentialVerifier):
    """
    Verifies against `User.password_hash` from a UserStore.

    Legacy bcrypt hashes are replaced with Argon2id on a successful check.
    Unknown users verify as False rather than raising, so callers cannot
    tell a missing account from a wrong password.
    """

    def __init__(self, users: UserStore, upgrade_hashes: bool = True):
        self.users = users
        self.upgrade_hashes = upgrade_hashes

    async def verify(self, user_id: str, password: str) -> bool:
        if not password:
            return False
        try:
            user = await self.users.get(user_id)
        except UserNotFoundError:
            return False

        valid, new_hash = await verify_and_upgrade(password, user.password_hash)
        if valid and new_hash and self.upgrade_hashes:
            await self.users.update(user_id, password_hash=new_hash)
            logger.info("Password hash upgraded", user_id=user_id)
        return valid
