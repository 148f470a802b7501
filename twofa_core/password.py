"""
Password Hashing
================
Argon2id password hashing with legacy bcrypt verification.

New hashes are always Argon2id. bcrypt hashes (as written by most PHP and
Ruby frameworks: $2y$, $2a$, $2b$) still verify and are flagged for
rehashing so callers can upgrade them transparently after a login.

Hashing is CPU and memory bound, so the async helpers run it in the
default thread pool executor.
"""

import asyncio
import os
from functools import lru_cache
from typing import Optional, Tuple

import bcrypt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


@lru_cache(maxsize=1)
def get_hasher() -> PasswordHasher:
    """Argon2id hasher; cost parameters can be lowered via env for tests."""
    return PasswordHasher(
        time_cost=int(os.environ.get("TWOFA_ARGON2_TIME_COST", "3")),
        memory_cost=int(os.environ.get("TWOFA_ARGON2_MEMORY_COST", "65536")),  # KiB
        parallelism=int(os.environ.get("TWOFA_ARGON2_PARALLELISM", "4")),
        hash_len=32,
        salt_len=16,
        type=Type.ID,
    )


def hash_password_sync(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    return get_hasher().hash(password)


def verify_password_sync(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False

    if hashed.startswith("$argon2"):
        try:
            return get_hasher().verify(hashed, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    if hashed.startswith(BCRYPT_PREFIXES):
        # bcrypt only understands $2a$/$2b$; $2y$ is the same algorithm
        candidate = "$2b$" + hashed[4:] if hashed.startswith("$2y$") else hashed
        try:
            return bcrypt.checkpw(password.encode("utf-8"), candidate.encode("utf-8"))
        except ValueError:
            return False

    return False


def needs_rehash(hashed: str) -> bool:
    """True for bcrypt, unknown formats, or Argon2 hashes with stale parameters."""
    if not hashed or not hashed.startswith("$argon2"):
        return True
    try:
        return get_hasher().check_needs_rehash(hashed)
    except InvalidHashError:
        return True


async def hash_password(password: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, hash_password_sync, password)


async def verify_password(password: str, hashed: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password_sync, password, hashed)


async def verify_and_upgrade(password: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """
    Verify a password and return a replacement hash when an upgrade is due.

    Returns:
        Tuple of (is_valid, new_hash_or_none)
    """
    if not await verify_password(password, hashed):
        return False, None
    if needs_rehash(hashed):
        return True, await hash_password(password)
    return True, None
