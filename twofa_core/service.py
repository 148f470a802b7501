"""
Two-Factor Service
==================
Email-OTP two-factor lifecycle: enable, disable, challenge, verify.

Per-user state machine:

    Disabled -> Enabled{NoChallenge} -> Enabled{Pending(code, expiry)}
             -> Enabled{NoChallenge}      (on success or expiry detection)
             -> Disabled                  (on disable, from any enabled state)

Every read-modify-write of a user's record runs under the store's per-user
lock. Code delivery happens after the new code is persisted and outside the
lock; a delivery failure is reported but never rolls the code back.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional, Set, Tuple
import structlog

from .audit import AuditEventType, AuditLogger
from .config import TwoFactorConfig
from .credentials import CredentialVerifier
from .errors import DeliveryError, TwoFactorErrorCode, UserNotFoundError
from .metrics import (
    record_challenge,
    record_delivery_failure,
    record_state_change,
    record_verification,
)
from .models import TwoFactorResult, TwoFactorState, TwoFactorStatus, as_utc, utcnow
from .notify.base import Notifier
from .otp import OtpGenerator, generate_salt, hash_otp, verify_otp_hash
from .store.base import TwoFactorStateStore
from .store.users import UserStore

logger = structlog.get_logger(__name__)


class TwoFactorService:
    """
    Orchestrates the 2FA lifecycle for explicitly identified users.

    Example:
        service = TwoFactorService(users, InMemoryStateStore(), verifier, notifier)
        await service.enable("42", "correct")
        result = await service.challenge("42")
        outcome = await service.verify("42", submitted_code)
    """

    def __init__(
        self,
        users: UserStore,
        store: TwoFactorStateStore,
        credentials: CredentialVerifier,
        notifier: Notifier,
        config: Optional[TwoFactorConfig] = None,
        generator: Optional[OtpGenerator] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.store = store
        self.credentials = credentials
        self.notifier = notifier
        self.config = config or TwoFactorConfig()
        self.generator = generator or OtpGenerator(self.config.code_length)
        self.audit = audit or AuditLogger(self.config.service_name)
        self.clock = clock
        self._deliveries: Set[asyncio.Task] = set()

    @property
    def code_ttl(self) -> timedelta:
        return timedelta(seconds=self.config.code_ttl_seconds)

    def _now(self, now: Optional[datetime]) -> datetime:
        return as_utc(now) if now is not None else as_utc(self.clock())

    async def _user_exists(self, user_id: str) -> bool:
        try:
            await self.users.get(user_id)
        except UserNotFoundError:
            return False
        return True

    async def _confirm_password(self, user_id: str, password: Optional[str]) -> bool:
        if not self.config.confirm_password:
            return True
        return await self.credentials.verify(user_id, password or "")

    def _reject_credentials(self, user_id: str, action: str) -> TwoFactorResult:
        logger.warning("Password confirmation failed", user_id=user_id, action=action)
        record_state_change(action, "invalid_credentials")
        self.audit.log(
            AuditEventType.CREDENTIALS_REJECTED,
            actor_id=user_id,
            outcome="failure",
            payload={"action": action},
        )
        return TwoFactorResult.failure(user_id, TwoFactorErrorCode.INVALID_CREDENTIALS)

    # ------------------------------------------------------------------
    # Enable / disable
    # ------------------------------------------------------------------

    async def enable(
        self,
        user_id: str,
        password: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TwoFactorResult:
        """
        Turn 2FA on for a user.

        No code is generated here; the first code is issued by the next
        login challenge. Enabling an enabled account is a no-op success.
        """
        user_id = str(user_id)
        now = self._now(now)
        if not await self._user_exists(user_id):
            record_state_change("enable", "user_not_found")
            return TwoFactorResult.failure(user_id, TwoFactorErrorCode.USER_NOT_FOUND)
        if not await self._confirm_password(user_id, password):
            return self._reject_credentials(user_id, "enable")

        async with self.store.lock(user_id):
            state = await self.store.get(user_id) or TwoFactorState(user_id=user_id)
            already_enabled = state.enabled
            if not already_enabled:
                state.enable(now)
                await self.store.save(state)

        logger.info("Two-factor enabled", user_id=user_id, already_enabled=already_enabled)
        record_state_change("enable", "success")
        self.audit.log(
            AuditEventType.TWO_FACTOR_ENABLED,
            actor_id=user_id,
            payload={"already_enabled": already_enabled},
        )
        return TwoFactorResult.success(user_id)

    async def disable(
        self,
        user_id: str,
        password: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TwoFactorResult:
        """Turn 2FA off and drop any pending code. Idempotent."""
        user_id = str(user_id)
        now = self._now(now)
        if not await self._user_exists(user_id):
            record_state_change("disable", "user_not_found")
            return TwoFactorResult.failure(user_id, TwoFactorErrorCode.USER_NOT_FOUND)
        if not await self._confirm_password(user_id, password):
            return self._reject_credentials(user_id, "disable")

        async with self.store.lock(user_id):
            state = await self.store.get(user_id)
            was_enabled = state is not None and state.enabled
            if was_enabled:
                state.disable(now)
                await self.store.save(state)

        logger.info("Two-factor disabled", user_id=user_id, was_enabled=was_enabled)
        record_state_change("disable", "success")
        self.audit.log(
            AuditEventType.TWO_FACTOR_DISABLED,
            actor_id=user_id,
            payload={"was_enabled": was_enabled},
        )
        return TwoFactorResult.success(user_id)

    # ------------------------------------------------------------------
    # Challenge / verify
    # ------------------------------------------------------------------

    async def challenge(self, user_id: str, now: Optional[datetime] = None) -> TwoFactorResult:
        """
        Issue a fresh code and hand it to the notifier.

        Any previously pending code is overwritten, so at most one code is
        valid per user. The plain code is returned on the result for tests
        and observability only; end users receive it through the notifier.
        """
        user_id = str(user_id)
        now = self._now(now)

        async with self.store.lock(user_id):
            state = await self.store.get(user_id)
            if state is None or not state.enabled:
                logger.info("Challenge refused, 2FA not enabled", user_id=user_id)
                record_challenge("not_enabled")
                return TwoFactorResult.failure(user_id, TwoFactorErrorCode.NOT_ENABLED)

            replaced = state.has_pending_challenge
            code = self.generator.generate()
            salt = generate_salt()
            expires_at = now + self.code_ttl
            state.set_challenge(hash_otp(code, salt), salt, expires_at, now)
            await self.store.save(state)

        logger.info(
            "Challenge issued",
            user_id=user_id,
            expires_at=expires_at.isoformat(),
            replaced_pending=replaced,
        )
        record_challenge("issued")
        self.audit.log(
            AuditEventType.CHALLENGE_ISSUED,
            actor_id=user_id,
            payload={"expires_at": expires_at.isoformat(), "replaced_pending": replaced},
        )

        result = TwoFactorResult.success(user_id, code=code, expires_at=expires_at)
        if self.config.notify_in_background:
            self._schedule_delivery(user_id, code, expires_at)
        else:
            result.delivered, result.delivery_error = await self._deliver(user_id, code, expires_at)
        return result

    async def verify(
        self,
        user_id: str,
        submitted_code: str,
        now: Optional[datetime] = None,
    ) -> TwoFactorResult:
        """
        Check a submitted code against the pending challenge.

        - no pending code: NO_CHALLENGE_PENDING
        - past expiry: EXPIRED, and the pending code is dropped
        - attempt limit reached (when configured): TOO_MANY_ATTEMPTS, code dropped
        - wrong code: CODE_MISMATCH, code kept for retry until expiry
        - match: success, code consumed
        """
        user_id = str(user_id)
        now = self._now(now)
        submitted = (submitted_code or "").strip()

        async with self.store.lock(user_id):
            state = await self.store.get(user_id)
            if state is None or not state.has_pending_challenge:
                error = TwoFactorErrorCode.NO_CHALLENGE_PENDING
            elif state.is_expired(now):
                state.clear_challenge(now)
                await self.store.save(state)
                error = TwoFactorErrorCode.EXPIRED
            elif self.config.attempts_limited and state.attempts >= self.config.max_attempts:
                state.clear_challenge(now)
                await self.store.save(state)
                error = TwoFactorErrorCode.TOO_MANY_ATTEMPTS
            elif not verify_otp_hash(submitted, state.salt, state.code_hash):
                state.attempts += 1
                await self.store.save(state)
                error = TwoFactorErrorCode.CODE_MISMATCH
            else:
                state.clear_challenge(now)
                await self.store.save(state)
                error = None

        if error is not None:
            logger.warning("Verification failed", user_id=user_id, reason=error.value)
            record_verification(error.value)
            self.audit.log(
                AuditEventType.VERIFY_FAILED,
                actor_id=user_id,
                outcome="failure",
                payload={"reason": error.value},
            )
            return TwoFactorResult.failure(user_id, error)

        logger.info("Verification succeeded", user_id=user_id)
        record_verification("success")
        self.audit.log(AuditEventType.VERIFY_SUCCEEDED, actor_id=user_id)
        return TwoFactorResult.success(user_id)

    async def status(self, user_id: str) -> TwoFactorStatus:
        user_id = str(user_id)
        state = await self.store.get(user_id)
        if state is None:
            return TwoFactorStatus(user_id=user_id, enabled=False, pending=False)
        return TwoFactorStatus(
            user_id=user_id,
            enabled=state.enabled,
            pending=state.has_pending_challenge,
            expires_at=state.expires_at,
        )

    async def login(
        self,
        user_id: str,
        password: str,
        now: Optional[datetime] = None,
    ) -> TwoFactorResult:
        """
        First login step: check the password, then challenge if 2FA is on.

        `two_factor_required` on the result tells the caller whether the
        session may be finalised now or only after a successful verify.
        """
        user_id = str(user_id)
        if not await self.credentials.verify(user_id, password):
            logger.warning("Login rejected", user_id=user_id)
            self.audit.log(
                AuditEventType.CREDENTIALS_REJECTED,
                actor_id=user_id,
                outcome="failure",
                payload={"action": "login"},
            )
            return TwoFactorResult.failure(user_id, TwoFactorErrorCode.INVALID_CREDENTIALS)

        result = await self.challenge(user_id, now)
        if not result.ok:
            # 2FA off (or disabled concurrently): password alone completes login
            return TwoFactorResult.success(user_id, two_factor_required=False)
        result.two_factor_required = True
        return result

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(
        self,
        user_id: str,
        code: str,
        expires_at: datetime,
    ) -> Tuple[bool, Optional[str]]:
        error: Optional[str] = None
        try:
            outcome = await self.notifier.send_code(user_id, code, expires_at)
            if not outcome.success:
                error = outcome.error or "delivery failed"
        except DeliveryError as e:
            error = e.message
        except Exception as e:
            logger.exception("Notifier raised unexpectedly", user_id=user_id)
            error = str(e) or e.__class__.__name__

        if error is None:
            return True, None

        logger.warning("Verification code delivery failed", user_id=user_id, error=error)
        record_delivery_failure(self.notifier.channel)
        self.audit.log(
            AuditEventType.CHALLENGE_DELIVERY_FAILED,
            actor_id=user_id,
            outcome="failure",
            payload={"error": error},
        )
        return False, error

    def _schedule_delivery(self, user_id: str, code: str, expires_at: datetime) -> None:
        task = asyncio.create_task(self._deliver(user_id, code, expires_at))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    @property
    def pending_deliveries(self) -> int:
        return len(self._deliveries)

    async def drain(self) -> None:
        """Wait for background deliveries to finish."""
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.notifier.close()
        await self.store.close()
