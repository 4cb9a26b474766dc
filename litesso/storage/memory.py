from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from litesso.logging import get_logger
from litesso.storage.errors import ConstraintViolation
from litesso.storage.models import User, UserStatus


class MemoryStore:
    """In-process user directory for tests and single-node development."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        # RLock so helpers can be called while the lock is held
        self._data_lock = threading.RLock()

    def _live(self):
        return (u for u in self.users.values() if u.deleted_at is None)

    def _check_unique(self, username: str, email: str, *, exclude_id: Optional[str] = None) -> None:
        for existing in self._live():
            if existing.id == exclude_id:
                continue
            if existing.username == username:
                raise ConstraintViolation("username already exists", {"field": "username"})
            if existing.email == email:
                raise ConstraintViolation("email already exists", {"field": "email"})

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        *,
        nickname: Optional[str] = None,
        avatar: Optional[str] = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        with self._data_lock:
            self._check_unique(username, email)
            user = User.new(
                username,
                email,
                password_hash,
                nickname=nickname,
                avatar=avatar,
                status=status,
            )
            self.users[user.id] = user
            return replace(user)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user or user.deleted_at is not None:
                return None
            return replace(user)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._data_lock:
            user = next((u for u in self._live() if u.username == username), None)
            return replace(user) if user else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._data_lock:
            user = next((u for u in self._live() if u.email == email), None)
            return replace(user) if user else None

    def exists_by_username(self, username: str) -> bool:
        with self._data_lock:
            return any(u.username == username for u in self._live())

    def exists_by_email(self, email: str) -> bool:
        with self._data_lock:
            return any(u.email == email for u in self._live())

    def update_user(self, user: User) -> User:
        with self._data_lock:
            current = self.users.get(user.id)
            if not current or current.deleted_at is not None:
                raise ConstraintViolation("user does not exist", {"user_id": user.id})
            self._check_unique(user.username, user.email, exclude_id=user.id)
            updated = replace(user, updated_at=datetime.now(timezone.utc))
            self.users[user.id] = updated
            return replace(updated)

    def soft_delete_user(self, user_id: str) -> bool:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user or user.deleted_at is not None:
                return False
            now = datetime.now(timezone.utc)
            self.users[user_id] = replace(user, deleted_at=now, updated_at=now)
            self.logger.info("user_soft_deleted", user_id=user_id)
            return True

    def ping(self) -> None:
        return None
