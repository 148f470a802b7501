"""
OTP Generator
=============
Fixed-length numeric one-time codes drawn from the OS CSPRNG.
"""

import secrets

DEFAULT_CODE_LENGTH = 6


def generate_otp(length: int = DEFAULT_CODE_LENGTH) -> str:
    """
    Generate a numeric OTP uniformly distributed over all `length`-digit values.

    Leading zeros are kept, so "000042" is a valid 6-digit code.
    """
    if length < 1:
        raise ValueError("OTP length must be at least 1")
    return str(secrets.randbelow(10 ** length)).zfill(length)


class OtpGenerator:
    """Produces random numeric codes of a fixed length."""

    def __init__(self, length: int = DEFAULT_CODE_LENGTH):
        if length < 1:
            raise ValueError("OTP length must be at least 1")
        self.length = length

    def generate(self) -> str:
        return generate_otp(self.length)
