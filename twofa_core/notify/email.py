"""
Email Notifier
==============
Delivers codes to the user's registered email through a pluggable backend.
"""

import asyncio
import smtplib
import ssl
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from email.message import EmailMessage
from typing import Optional
import structlog

from ..errors import DeliveryError, UserNotFoundError
from ..store.users import UserStore
from .base import DeliveryResult, Notifier

logger = structlog.get_logger(__name__)


def mask_email(addr: str) -> str:
    """Mask an address for logs: alice@example.com -> a***@e***.com"""
    try:
        local, domain = addr.split("@", 1)
    except ValueError:
        return addr
    local_mask = local[0] + "***" if len(local) > 1 else "*"
    dot = domain.rfind(".")
    if dot > 0:
        dom_mask = domain[0] + "***" + domain[dot:]
    else:
        dom_mask = domain[0] + "***"
    return f"{local_mask}@{dom_mask}"


class EmailBackend(ABC):
    """Transport for a single email message."""

    name: str = "base"

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> str:
        """
        Send an email.

        Returns:
            Backend message ID
        """


class ConsoleEmailBackend(EmailBackend):
    """
    Writes emails to the log instead of sending them.

    Development only: the log line contains the code in clear text.
    """

    name = "console"

    async def send(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> str:
        message_id = f"console:{uuid.uuid4()}"
        logger.info(
            "Email (console backend)",
            to=to,
            subject=subject,
            body=body_text,
            message_id=message_id,
        )
        return message_id


class SmtpEmailBackend(EmailBackend):
    """SMTP delivery with optional STARTTLS and login."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = f"<{uuid.uuid4()}@{self.host}>"
        msg.set_content(body_text)
        if body_html:
            msg.add_alternative(body_html, subtype="html")
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> str:
        msg = self.build_message(to, subject, body_text, body_html)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery failed: {e}") from e
        return msg["Message-ID"]


class EmailNotifier(Notifier):
    """Looks up the user's email and sends the code through an EmailBackend."""

    channel = "email"

    def __init__(
        self,
        users: UserStore,
        backend: EmailBackend,
        subject: str = "Your verification code",
    ):
        self.users = users
        self.backend = backend
        self.subject = subject

    def render(self, code: str, expires_at: datetime) -> tuple:
        text = (
            f"Your verification code is {code}.\n"
            f"It expires at {expires_at.strftime('%H:%M UTC')}."
        )
        html = f"""
          <div style="font-family:system-ui,Segoe UI,Roboto,Arial">
            <h2>Verify your sign-in</h2>
            <p>Your one-time code is:</p>
            <div style="font-size:24px;font-weight:700;letter-spacing:3px">{code}</div>
            <p>This code expires at {expires_at.strftime('%H:%M UTC')}.</p>
          </div>
        """
        return text, html

    async def send_code(self, user_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        try:
            user = await self.users.get(user_id)
        except UserNotFoundError as e:
            raise DeliveryError("No user to deliver to", user_id=user_id) from e
        if not user.email:
            raise DeliveryError("User has no registered email", user_id=user_id)

        text, html = self.render(code, expires_at)
        try:
            message_id = await self.backend.send(user.email, self.subject, text, html)
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(f"{self.backend.name} backend failed: {e}", user_id=user_id) from e

        logger.info(
            "Verification code emailed",
            user_id=user_id,
            to=mask_email(user.email),
            backend=self.backend.name,
            message_id=message_id,
        )
        return DeliveryResult(success=True, channel=self.channel, message_id=message_id)
