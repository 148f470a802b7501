"""
Tests for code delivery: email backends and the webhook notifier.
"""

from datetime import timedelta

import httpx
import pytest

from conftest import NOW


class RecordingBackend:
    """EmailBackend double that keeps sent messages."""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    async def send(self, to, subject, body_text, body_html=None):
        if self.fail:
            raise ConnectionError("relay refused")
        self.messages.append((to, subject, body_text, body_html))
        return f"id-{len(self.messages)}"


class TestMaskEmail:
    """Tests for log-safe email masking."""

    def test_mask(self):
        """Should hide all but the first letters."""
        from twofa_core.notify import mask_email

        assert mask_email("alice@example.com") == "a***@e***.com"
        assert mask_email("a@b") == "*@b***"
        assert mask_email("not-an-email") == "not-an-email"


class TestEmailNotifier:
    """Tests for email delivery."""

    @pytest.mark.asyncio
    async def test_sends_to_registered_email(self, users):
        """The code goes to the user's address in text and HTML."""
        from twofa_core.notify import EmailNotifier

        backend = RecordingBackend()
        notifier = EmailNotifier(users, backend, subject="Code")

        result = await notifier.send_code("42", "519204", NOW + timedelta(minutes=10))

        assert result.success is True
        assert result.message_id == "id-1"
        to, subject, text, html = backend.messages[0]
        assert to == "alice@example.com"
        assert subject == "Code"
        assert "519204" in text and "519204" in html

    @pytest.mark.asyncio
    async def test_unknown_user(self, users):
        """No user means nothing to deliver to."""
        from twofa_core.errors import DeliveryError
        from twofa_core.notify import EmailNotifier

        with pytest.raises(DeliveryError):
            await EmailNotifier(users, RecordingBackend()).send_code("999", "1", NOW)

    @pytest.mark.asyncio
    async def test_backend_failure_wrapped(self, users):
        """Backend exceptions surface as DeliveryError."""
        from twofa_core.errors import DeliveryError
        from twofa_core.notify import EmailNotifier

        notifier = EmailNotifier(users, RecordingBackend(fail=True))

        with pytest.raises(DeliveryError) as exc_info:
            await notifier.send_code("42", "519204", NOW)

        assert "relay refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_console_backend(self, users):
        """Console backend returns a message id without sending."""
        from twofa_core.notify import ConsoleEmailBackend, EmailNotifier

        result = await EmailNotifier(users, ConsoleEmailBackend()).send_code("42", "519204", NOW)

        assert result.message_id.startswith("console:")


class TestSmtpBackend:
    """Tests for SMTP message building and failure handling."""

    def test_build_message(self):
        """Messages carry headers and both bodies."""
        from twofa_core.notify import SmtpEmailBackend

        backend = SmtpEmailBackend("smtp.example.com", 587, "no-reply@example.com")

        msg = backend.build_message("alice@example.com", "Code", "text 519204", "<b>519204</b>")

        assert msg["To"] == "alice@example.com"
        assert msg["From"] == "no-reply@example.com"
        assert msg["Message-ID"].endswith("@smtp.example.com>")
        assert msg.is_multipart()

    @pytest.mark.asyncio
    async def test_connection_failure(self, monkeypatch):
        """SMTP errors become DeliveryError."""
        from twofa_core.errors import DeliveryError
        from twofa_core.notify import SmtpEmailBackend

        backend = SmtpEmailBackend("smtp.example.com", 587, "no-reply@example.com")

        def refuse(msg):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(backend, "_send_sync", refuse)

        with pytest.raises(DeliveryError):
            await backend.send("alice@example.com", "Code", "text")


class TestWebhookNotifier:
    """Tests for webhook delivery with retries."""

    def _notifier(self, handler, **kwargs):
        from twofa_core.notify import WebhookNotifier

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return WebhookNotifier(
            "https://delivery.internal/send",
            secret="s3cret",
            backoff=0,
            client=client,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_posts_payload(self):
        """The code and expiry are posted with the shared secret."""
        import json

        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202, json={"message_id": "abc"})

        notifier = self._notifier(handler)
        result = await notifier.send_code("42", "519204", NOW)

        assert result.success is True
        assert result.message_id == "abc"
        body = json.loads(seen[0].content)
        assert body["user_id"] == "42"
        assert body["code"] == "519204"
        assert body["expires_at"] == NOW.isoformat()
        assert seen[0].headers["X-Internal-Secret"] == "s3cret"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        """5xx responses are retried until success."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200)

        result = await self._notifier(handler, max_attempts=3).send_code("42", "519204", NOW)

        assert result.success is True
        assert result.message_id is None
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Persistent transport errors raise DeliveryError."""
        from twofa_core.errors import DeliveryError

        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(DeliveryError):
            await self._notifier(handler, max_attempts=2).send_code("42", "519204", NOW)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        """4xx responses fail immediately."""
        from twofa_core.errors import DeliveryError

        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "bad address"})

        with pytest.raises(DeliveryError):
            await self._notifier(handler).send_code("42", "519204", NOW)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        """Close leaves a caller-owned client alone."""
        notifier = self._notifier(lambda request: httpx.Response(200))

        await notifier.close()

        assert notifier.client.is_closed is False
        await notifier.client.aclose()
