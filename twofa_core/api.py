"""
Two-Factor HTTP API
===================
FastAPI router exposing login, 2FA management and profile endpoints.

Identity comes from the caller, never from ambient state:
- `X-User-ID`: the signed-in user, set by the gateway after session checks
- `X-Login-Ticket`: a pending login that passed the password step

The one-time code is never included in any response.
"""

from typing import Any, Dict, Optional
import structlog
from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from .errors import ProfileValidationError, UserNotFoundError, error_for
from .models import TwoFactorResult
from .profile import ProfileService
from .service import TwoFactorService
from .tokens import LoginTicketSigner

logger = structlog.get_logger(__name__)


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordConfirmation(BaseModel):
    current_password: Optional[str] = None


class CodeSubmission(BaseModel):
    code: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class PasswordUpdateRequest(BaseModel):
    current_password: Optional[str] = None
    password: Optional[str] = None
    password_confirmation: Optional[str] = None


def _error_response(result: TwoFactorResult) -> HTTPException:
    error = error_for(result.error, result.message, user_id=result.user_id)
    return HTTPException(
        status_code=error.status_code,
        detail={"error": error.code.value, "message": error.message},
    )


def _challenge_body(result: TwoFactorResult) -> Dict[str, Any]:
    return {
        "expires_at": result.expires_at.isoformat() if result.expires_at else None,
        "delivered": result.delivered,
    }


def create_two_factor_router(
    service: TwoFactorService,
    profiles: ProfileService,
    tickets: LoginTicketSigner,
    ticket_max_age: Optional[int] = None,
) -> APIRouter:
    """
    Build the 2FA router.

    Args:
        service: Lifecycle service
        profiles: Profile service
        tickets: Signer for pending-login tickets
        ticket_max_age: Ticket lifetime in seconds (defaults to the code TTL)
    """
    router = APIRouter(tags=["Two-Factor"])
    max_age = ticket_max_age or service.config.code_ttl_seconds

    def current_user(x_user_id: Optional[str]) -> str:
        if not x_user_id:
            raise HTTPException(status_code=401, detail="Missing user identity")
        return x_user_id

    def now() -> float:
        return service.clock().timestamp()

    def pending_login(x_login_ticket: Optional[str]) -> str:
        user_id = tickets.verify(x_login_ticket, max_age_seconds=max_age, now=now())
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid or expired login ticket")
        return user_id

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    @router.post("/login")
    async def login(body: LoginRequest):
        user = await service.users.find_by_email(body.email)
        user_id = user.id if user else ""
        result = await service.login(user_id, body.password)
        if not result.ok:
            raise _error_response(result)

        if not result.two_factor_required:
            return {"two_factor_required": False, "user_id": result.user_id}

        return {
            "two_factor_required": True,
            "login_ticket": tickets.issue(result.user_id, now=now()),
            **_challenge_body(result),
        }

    @router.get("/2fa/challenge")
    async def resend_challenge(x_login_ticket: Optional[str] = Header(None)):
        """
        Issue a fresh code for a pending login, replacing the previous one.

        The response carries a new ticket whose lifetime starts with the new
        code, so a resend late in the old ticket's life stays submittable.
        """
        user_id = pending_login(x_login_ticket)
        result = await service.challenge(user_id)
        if not result.ok:
            raise _error_response(result)
        return {"login_ticket": tickets.issue(user_id, now=now()), **_challenge_body(result)}

    @router.post("/2fa/challenge")
    async def submit_code(body: CodeSubmission, x_login_ticket: Optional[str] = Header(None)):
        user_id = pending_login(x_login_ticket)
        result = await service.verify(user_id, body.code)
        if not result.ok:
            raise _error_response(result)
        logger.info("Login completed", user_id=user_id)
        return {"authenticated": True, "user_id": user_id}

    # ------------------------------------------------------------------
    # 2FA management
    # ------------------------------------------------------------------

    @router.get("/2fa")
    async def two_factor_status(x_user_id: Optional[str] = Header(None)):
        status = await service.status(current_user(x_user_id))
        return {
            "enabled": status.enabled,
            "pending": status.pending,
            "expires_at": status.expires_at.isoformat() if status.expires_at else None,
        }

    @router.post("/2fa/enable")
    async def enable(
        body: Optional[PasswordConfirmation] = None,
        x_user_id: Optional[str] = Header(None),
    ):
        password = body.current_password if body else None
        result = await service.enable(current_user(x_user_id), password)
        if not result.ok:
            raise _error_response(result)
        return {"enabled": True}

    @router.delete("/2fa/disable")
    async def disable(
        body: Optional[PasswordConfirmation] = None,
        x_user_id: Optional[str] = Header(None),
    ):
        password = body.current_password if body else None
        result = await service.disable(current_user(x_user_id), password)
        if not result.ok:
            raise _error_response(result)
        return {"enabled": False}

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    @router.get("/profile")
    async def get_profile(x_user_id: Optional[str] = Header(None)):
        try:
            profile = await profiles.get_profile(current_user(x_user_id))
        except UserNotFoundError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        return profile.to_dict()

    @router.put("/profile")
    async def update_profile(body: ProfileUpdateRequest, x_user_id: Optional[str] = Header(None)):
        try:
            profile = await profiles.update_profile(current_user(x_user_id), body.name, body.email)
        except UserNotFoundError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except ProfileValidationError as e:
            raise HTTPException(status_code=e.status_code, detail={"errors": e.errors})
        return profile.to_dict()

    @router.put("/profile/password")
    async def update_password(body: PasswordUpdateRequest, x_user_id: Optional[str] = Header(None)):
        try:
            await profiles.update_password(
                current_user(x_user_id),
                body.current_password,
                body.password,
                body.password_confirmation,
            )
        except UserNotFoundError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except ProfileValidationError as e:
            raise HTTPException(status_code=e.status_code, detail={"errors": e.errors})
        return {"status": "password-updated"}

    return router
