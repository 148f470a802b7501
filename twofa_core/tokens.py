"""
Login Tickets
=============
Signed, short-lived proof that a user passed the password step of login.

The ticket is handed to the client after a correct password when 2FA is on,
and must accompany the code submission. It carries no secret material.
"""

import time
import base64
import json
import hmac
import hashlib
from typing import Optional


class LoginTicketSigner:
    """Issues and verifies HMAC-signed login tickets."""

    VERSION = "1"

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("ticket secret must not be empty")
        self.secret = secret

    def _sign(self, payload_b64: str) -> str:
        return hmac.new(
            self.secret.encode(),
            payload_b64.encode(),
            hashlib.sha256,
        ).hexdigest()[:32]

    def issue(self, user_id: str, now: Optional[float] = None) -> str:
        """
        Issue a ticket for a user who has just presented a valid password.

        Args:
            user_id: User the ticket is bound to
            now: Issue time as a UNIX timestamp (defaults to the current time)

        Returns:
            Ticket of the form `<payload_b64>.<signature>`
        """
        payload = {
            "uid": str(user_id),
            "ts": int(now if now is not None else time.time()),
            "ver": self.VERSION,
        }
        payload_json = json.dumps(payload, separators=(',', ':'))
        payload_b64 = base64.urlsafe_b64encode(payload_json.encode()).decode()
        return f"{payload_b64}.{self._sign(payload_b64)}"

    def verify(
        self,
        token: Optional[str],
        max_age_seconds: int = 600,
        now: Optional[float] = None,
    ) -> Optional[str]:
        """
        Verify a ticket.

        Returns:
            The user id the ticket was issued for, or None if the ticket is
            malformed, forged or older than `max_age_seconds`
        """
        if not token:
            return None
        parts = token.split('.')
        if len(parts) != 2:
            return None

        payload_b64, signature = parts
        if not hmac.compare_digest(signature, self._sign(payload_b64)):
            return None

        try:
            payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode())
        except (ValueError, UnicodeDecodeError):
            return None
        if not isinstance(payload, dict) or payload.get("ver") != self.VERSION:
            return None

        current = now if now is not None else time.time()
        issued = payload.get("ts", 0)
        if not isinstance(issued, int) or current - issued > max_age_seconds:
            return None

        user_id = payload.get("uid")
        return str(user_id) if user_id else None
