"""
User Store
==========
Lookup and update of user records owned by the host application.
"""

import dataclasses
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..errors import UserNotFoundError
from ..models import User


class UserStore(ABC):
    """Interface to the host application's user persistence."""

    @abstractmethod
    async def get(self, user_id: str) -> User:
        """Return the user or raise UserNotFoundError."""

    @abstractmethod
    async def update(self, user_id: str, **fields) -> User:
        """Apply field updates and return the updated user."""

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup."""


class InMemoryUserStore(UserStore):
    """Dict-backed user store for development and tests."""

    _UPDATABLE = {"email", "name", "password_hash"}

    def __init__(self):
        self._users: Dict[str, User] = {}

    def add(self, user: User) -> User:
        self._users[str(user.id)] = dataclasses.replace(user, id=str(user.id))
        return user

    async def get(self, user_id: str) -> User:
        user = self._users.get(str(user_id))
        if user is None:
            raise UserNotFoundError(user_id=str(user_id))
        return dataclasses.replace(user)

    async def update(self, user_id: str, **fields) -> User:
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        user = self._users.get(str(user_id))
        if user is None:
            raise UserNotFoundError(user_id=str(user_id))
        updated = dataclasses.replace(user, **fields)
        self._users[str(user_id)] = updated
        return dataclasses.replace(updated)

    async def find_by_email(self, email: str) -> Optional[User]:
        wanted = (email or "").strip().lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return dataclasses.replace(user)
        return None
