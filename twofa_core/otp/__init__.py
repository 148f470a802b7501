"""
OTP Generation
==============
Numeric one-time codes and salted code hashing.
"""

from .generator import DEFAULT_CODE_LENGTH, OtpGenerator, generate_otp
from .hashing import generate_salt, hash_otp, verify_otp_hash

__all__ = [
    # Generator
    "DEFAULT_CODE_LENGTH",
    "OtpGenerator",
    "generate_otp",
    # Hashing
    "generate_salt",
    "hash_otp",
    "verify_otp_hash",
]
