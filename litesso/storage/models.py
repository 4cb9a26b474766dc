from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


@dataclass
class User:
    id: str
    username: str
    email: str
    password_hash: str = field(repr=False)
    nickname: Optional[str] = None
    avatar: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    deleted_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        username: str,
        email: str,
        password_hash: str,
        *,
        nickname: Optional[str] = None,
        avatar: Optional[str] = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> "User":
        now = _utcnow()
        return cls(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=password_hash,
            nickname=nickname,
            avatar=avatar,
            status=status,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE and self.deleted_at is None

    def to_public(self) -> dict:
        """Profile fields safe to hand to callers; never includes the hash."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "nickname": self.nickname,
            "avatar": self.avatar,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
