"""
Gateway Guard
=============
Rejects requests that did not come through the trusted gateway.

The gateway authenticates the session and forwards `X-User-ID` together
with the shared `X-Internal-Secret`. Routes that trust `X-User-ID` are only
reachable when the secret matches. Fail-closed: with no secret configured,
every guarded route answers 503.

Public routes (health, metrics, and the login steps, which carry their own
password or signed ticket) bypass the check.
"""

import hmac
from typing import Iterable, Optional, Tuple
import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = structlog.get_logger(__name__)

DEFAULT_PUBLIC_PATHS: Tuple[str, ...] = ("/login", "/2fa/challenge", "/metrics")
DEFAULT_PUBLIC_PREFIXES: Tuple[str, ...] = ("/health",)


class GatewayGuardMiddleware(BaseHTTPMiddleware):
    """Constant-time `X-Internal-Secret` check in front of gateway-only routes."""

    def __init__(
        self,
        app,
        internal_secret: Optional[str] = None,
        service_name: str = "twofa-core",
        public_paths: Iterable[str] = DEFAULT_PUBLIC_PATHS,
        public_prefixes: Iterable[str] = DEFAULT_PUBLIC_PREFIXES,
        header_name: str = "X-Internal-Secret",
    ):
        super().__init__(app)
        self.internal_secret = internal_secret or ""
        self.service_name = service_name
        self.public_paths = {p.rstrip("/") for p in public_paths}
        self.public_prefixes = tuple(public_prefixes)
        self.header_name = header_name

        if not self.internal_secret:
            logger.warning(
                "Gateway secret not configured, guarded routes will answer 503",
                service=service_name,
            )

    def is_public(self, path: str) -> bool:
        normalized = path.rstrip("/") or "/"
        return normalized in self.public_paths or normalized.startswith(self.public_prefixes)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if self.is_public(path) or request.method == "OPTIONS":
            return await call_next(request)

        if not self.internal_secret:
            logger.error("Gateway guard misconfigured", service=self.service_name, path=path)
            return JSONResponse(
                status_code=503,
                content={"error": "service_unavailable", "message": "Service is misconfigured"},
            )

        provided = request.headers.get(self.header_name, "")
        if not provided or not hmac.compare_digest(provided.encode(), self.internal_secret.encode()):
            logger.warning(
                "Gateway guard blocked request",
                service=self.service_name,
                path=path,
                method=request.method,
                reason="missing_secret" if not provided else "invalid_secret",
            )
            return JSONResponse(
                status_code=401,
                content={"error": "unauthorized", "message": "Invalid internal secret"},
            )

        return await call_next(request)
