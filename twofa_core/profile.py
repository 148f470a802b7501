"""
Profile Service
===============
Profile and password updates for the signed-in user.

Validation failures raise ProfileValidationError with a field -> message
map, so the HTTP layer can return them as a 422 body.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

from .audit import AuditEventType, AuditLogger
from .credentials import CredentialVerifier
from .errors import ProfileValidationError
from .password import hash_password
from .store.base import TwoFactorStateStore
from .store.users import UserStore

logger = structlog.get_logger(__name__)

MAX_FIELD_LENGTH = 255
MIN_PASSWORD_LENGTH = 8


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    email: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not value:
            raise ValueError("The name field is required.")
        if len(value) > MAX_FIELD_LENGTH:
            raise ValueError(f"The name may not be greater than {MAX_FIELD_LENGTH} characters.")
        return value

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if not value:
            raise ValueError("The email field is required.")
        if len(value) > MAX_FIELD_LENGTH:
            raise ValueError(f"The email may not be greater than {MAX_FIELD_LENGTH} characters.")
        try:
            validate_email(value)
        except PydanticCustomError:
            raise ValueError("The email must be a valid email address.") from None
        return value


class PasswordUpdate(BaseModel):
    current_password: str
    password: str
    password_confirmation: str

    @field_validator("current_password")
    @classmethod
    def _check_current(cls, value: str) -> str:
        if not value:
            raise ValueError("The current password field is required.")
        return value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if not value:
            raise ValueError("The password field is required.")
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"The password must be at least {MIN_PASSWORD_LENGTH} characters.")
        return value


def _field_errors(exc: ValidationError) -> Dict[str, str]:
    """Flatten a pydantic ValidationError into one message per field."""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "__all__"
        if field in errors:
            continue
        if err["type"] == "value_error":
            errors[field] = str(err["ctx"]["error"])
        else:
            errors[field] = f"The {field.replace('_', ' ')} field is required."
    return errors


@dataclass
class Profile:
    """What the profile screen shows."""
    id: str
    name: str
    email: str
    two_factor_enabled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "two_factor_enabled": self.two_factor_enabled,
        }


class ProfileService:
    """Reads and updates user profiles."""

    def __init__(
        self,
        users: UserStore,
        states: TwoFactorStateStore,
        credentials: CredentialVerifier,
        audit: Optional[AuditLogger] = None,
    ):
        self.users = users
        self.states = states
        self.credentials = credentials
        self.audit = audit

    async def get_profile(self, user_id: str) -> Profile:
        user = await self.users.get(user_id)
        state = await self.states.get(user.id)
        return Profile(
            id=user.id,
            name=user.name,
            email=user.email,
            two_factor_enabled=bool(state and state.enabled),
        )

    async def update_profile(self, user_id: str, name: Optional[str], email: Optional[str]) -> Profile:
        """
        Update name and email.

        The email must be unique across users, ignoring the user's own record.

        Raises:
            UserNotFoundError: Unknown user
            ProfileValidationError: Any field fails validation
        """
        user = await self.users.get(user_id)
        try:
            data = ProfileUpdate(name=name, email=email)
        except ValidationError as e:
            raise ProfileValidationError(_field_errors(e)) from None

        owner = await self.users.find_by_email(data.email)
        if owner is not None and owner.id != user.id:
            raise ProfileValidationError({"email": "The email has already been taken."})

        await self.users.update(user.id, name=data.name, email=data.email)
        logger.info("Profile updated", user_id=user.id, email_changed=data.email != user.email)
        if self.audit:
            self.audit.log(
                AuditEventType.PROFILE_UPDATED,
                actor_id=user.id,
                payload={"email_changed": data.email != user.email},
            )
        return await self.get_profile(user.id)

    async def update_password(
        self,
        user_id: str,
        current_password: Optional[str],
        password: Optional[str],
        password_confirmation: Optional[str],
    ) -> None:
        """
        Replace the user's password after confirming the current one.

        Raises:
            UserNotFoundError: Unknown user
            ProfileValidationError: Wrong current password, too short, or
                confirmation mismatch
        """
        user = await self.users.get(user_id)
        try:
            data = PasswordUpdate(
                current_password=current_password,
                password=password,
                password_confirmation=password_confirmation,
            )
        except ValidationError as e:
            raise ProfileValidationError(_field_errors(e)) from None

        errors: Dict[str, str] = {}
        if not await self.credentials.verify(user.id, data.current_password):
            errors["current_password"] = "The provided password does not match your current password."
        if data.password != data.password_confirmation:
            errors["password"] = "The password confirmation does not match."
        if errors:
            logger.warning("Password change rejected", user_id=user.id, fields=sorted(errors))
            raise ProfileValidationError(errors)

        await self.users.update(user.id, password_hash=await hash_password(data.password))
        logger.info("Password changed", user_id=user.id)
        if self.audit:
            self.audit.log(AuditEventType.PASSWORD_CHANGED, actor_id=user.id)
