from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from litesso.logging import get_logger
from litesso.storage.errors import ConstraintViolation
from litesso.storage.models import User, UserStatus

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS app_user (
        id UUID PRIMARY KEY,
        username TEXT NOT NULL,
        email TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        nickname TEXT,
        avatar TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        deleted_at TIMESTAMPTZ
    )
    """,
    # Uniqueness only among non-deleted users so soft-deleted names can be reused
    """
    CREATE UNIQUE INDEX IF NOT EXISTS app_user_username_live
        ON app_user (username) WHERE deleted_at IS NULL
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS app_user_email_live
        ON app_user (email) WHERE deleted_at IS NULL
    """,
)

_CONSTRAINT_FIELDS = {
    "app_user_username_live": "username",
    "app_user_email_live": "email",
}


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=str(row["id"]),
        username=row["username"],
        email=row["email"],
        password_hash=row["password_hash"],
        nickname=row.get("nickname"),
        avatar=row.get("avatar"),
        status=UserStatus(row.get("status") or UserStatus.ACTIVE.value),
        created_at=row.get("created_at") or datetime.now(timezone.utc),
        updated_at=row.get("updated_at") or datetime.now(timezone.utc),
        deleted_at=row.get("deleted_at"),
    )


def _unique_violation(exc: errors.UniqueViolation) -> ConstraintViolation:
    constraint = getattr(getattr(exc, "diag", None), "constraint_name", None)
    field = _CONSTRAINT_FIELDS.get(constraint or "", "user")
    return ConstraintViolation(f"{field} already exists", {"field": field})


class PostgresStore:
    """Postgres-backed user directory."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    def _connect(self):
        return self.pool.connection()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

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
        user_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO app_user (id, username, email, password_hash, nickname, avatar, status)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (user_id, username, email, password_hash, nickname, avatar, status.value),
                ).fetchone()
        except errors.UniqueViolation as exc:
            raise _unique_violation(exc) from exc
        return _row_to_user(row)

    def _fetch_one(self, where: str, value: Any) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM app_user WHERE {where} = %s AND deleted_at IS NULL",
                (value,),
            ).fetchone()
        return _row_to_user(row) if row else None

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            uuid.UUID(str(user_id))
        except ValueError:
            return None
        return self._fetch_one("id", user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._fetch_one("username", username)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("email", email)

    def _exists(self, column: str, value: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT EXISTS (SELECT 1 FROM app_user WHERE {column} = %s AND deleted_at IS NULL) AS found",
                (value,),
            ).fetchone()
        return bool(row and row["found"])

    def exists_by_username(self, username: str) -> bool:
        return self._exists("username", username)

    def exists_by_email(self, email: str) -> bool:
        return self._exists("email", email)

    def update_user(self, user: User) -> User:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    UPDATE app_user
                    SET username = %s, email = %s, password_hash = %s, nickname = %s,
                        avatar = %s, status = %s, updated_at = now()
                    WHERE id = %s AND deleted_at IS NULL
                    RETURNING *
                    """,
                    (
                        user.username,
                        user.email,
                        user.password_hash,
                        user.nickname,
                        user.avatar,
                        user.status.value,
                        user.id,
                    ),
                ).fetchone()
        except errors.UniqueViolation as exc:
            raise _unique_violation(exc) from exc
        if not row:
            raise ConstraintViolation("user does not exist", {"user_id": user.id})
        return _row_to_user(row)

    def soft_delete_user(self, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """
                UPDATE app_user SET deleted_at = now(), updated_at = now()
                WHERE id = %s AND deleted_at IS NULL
                RETURNING id
                """,
                (user_id,),
            ).fetchone()
        if row:
            self.logger.info("user_soft_deleted", user_id=user_id)
        return row is not None

    def ping(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1")

    def close(self) -> None:
        self.pool.close()
