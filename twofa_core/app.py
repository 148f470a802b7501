"""
Application Factory
===================
Wires config, stores, notifier and routers into a FastAPI app.

Run with:
    uvicorn twofa_core.app:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional
from datetime import datetime
import structlog
from fastapi import FastAPI, Response

from . import __version__
from .audit import AuditLogger
from .api import create_two_factor_router
from .config import TwoFactorConfig
from .credentials import CredentialVerifier, PasswordCredentialVerifier
from .gateway import GatewayGuardMiddleware
from .health import create_health_router
from .logging_config import setup_logging
from .metrics import CONTENT_TYPE_LATEST, get_metrics_text
from .models import utcnow
from .notify import (
    ConsoleEmailBackend,
    EmailNotifier,
    Notifier,
    SmtpEmailBackend,
    WebhookNotifier,
)
from .otp import OtpGenerator
from .profile import ProfileService
from .service import TwoFactorService
from .store import InMemoryStateStore, InMemoryUserStore, RedisStateStore, TwoFactorStateStore, UserStore
from .tokens import LoginTicketSigner

logger = structlog.get_logger(__name__)


def build_notifier(config: TwoFactorConfig, users: UserStore) -> Notifier:
    """Select the delivery channel named by `config.notifier`."""
    if config.notifier == "console":
        return EmailNotifier(users, ConsoleEmailBackend(), subject=config.mail_subject)
    if config.notifier == "smtp":
        backend = SmtpEmailBackend(
            host=config.smtp_host,
            port=config.smtp_port,
            from_email=config.mail_from,
            username=config.smtp_user,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
        )
        return EmailNotifier(users, backend, subject=config.mail_subject)
    if config.notifier == "webhook":
        if not config.webhook_url:
            raise ValueError("TWOFA_WEBHOOK_URL is required for the webhook notifier")
        return WebhookNotifier(config.webhook_url, secret=config.webhook_secret)
    raise ValueError(f"Unknown notifier: {config.notifier}")


def build_state_store(config: TwoFactorConfig) -> TwoFactorStateStore:
    if config.redis_url:
        return RedisStateStore.from_url(config.redis_url, key_prefix=config.redis_key_prefix)
    return InMemoryStateStore()


def create_app(
    config: Optional[TwoFactorConfig] = None,
    users: Optional[UserStore] = None,
    store: Optional[TwoFactorStateStore] = None,
    notifier: Optional[Notifier] = None,
    credentials: Optional[CredentialVerifier] = None,
    generator: Optional[OtpGenerator] = None,
    clock: Callable[[], datetime] = utcnow,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create the 2FA application.

    Every collaborator can be injected; anything left out is built from
    `config` (itself read from the environment when omitted).

    Raises:
        ValueError: `config.ticket_secret` is not set
    """
    config = config or TwoFactorConfig.from_env()
    if not config.ticket_secret:
        raise ValueError("TWOFA_TICKET_SECRET is required to sign login tickets")
    if configure_logging:
        setup_logging(config.service_name, level=config.log_level, json_output=config.log_json)

    if users is None:
        users = InMemoryUserStore()
    if store is None:
        store = build_state_store(config)
    if notifier is None:
        notifier = build_notifier(config, users)
    if credentials is None:
        credentials = PasswordCredentialVerifier(users)
    audit = AuditLogger(config.service_name, max_buffer=config.audit_buffer_size)

    service = TwoFactorService(
        users,
        store,
        credentials,
        notifier,
        config=config,
        generator=generator,
        audit=audit,
        clock=clock,
    )
    profiles = ProfileService(users, store, credentials, audit=audit)
    tickets = LoginTicketSigner(config.ticket_secret)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Service starting",
            service=config.service_name,
            store=type(store).__name__,
            notifier=config.notifier,
        )
        yield
        await service.close()
        unshipped = audit.flush()
        logger.info(
            "Service stopped",
            service=config.service_name,
            audit_unshipped=len(unshipped),
            audit_dropped=audit.dropped,
        )

    app = FastAPI(title=config.service_name, version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.profiles = profiles
    app.state.tickets = tickets
    app.state.audit = audit
    app.add_middleware(
        GatewayGuardMiddleware,
        internal_secret=config.internal_secret,
        service_name=config.service_name,
    )

    redis_client = store.redis if isinstance(store, RedisStateStore) else None
    app.include_router(create_health_router(config.service_name, __version__, redis_client))
    app.include_router(create_two_factor_router(service, profiles, tickets))

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return Response(content=get_metrics_text(), media_type=CONTENT_TYPE_LATEST)

    return app
