"""
Code Hashing
============
Stored codes are HMAC-SHA256 digests keyed by a per-challenge salt.
"""

import hashlib
import hmac
import secrets
from typing import Optional

SALT_BYTES = 16


def generate_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def hash_otp(otp: str, salt: str) -> str:
    """Digest of `otp` keyed by `salt`, as hex."""
    return hmac.new(salt.encode(), otp.encode(), hashlib.sha256).hexdigest()


def verify_otp_hash(otp: Optional[str], salt: str, stored_hash: str) -> bool:
    """Constant-time check of a submitted code. A missing code never matches."""
    if otp is None:
        return False
    return hmac.compare_digest(hash_otp(str(otp), salt), stored_hash)
