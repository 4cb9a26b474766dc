from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from litesso.config import Settings
from litesso.logging import get_logger
from litesso.service.errors import (
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    UserDisabledError,
    UserExistsError,
)
from litesso.service.passwords import CredentialVerifier
from litesso.service.throttle import LoginThrottle
from litesso.service.tokens import TokenClaims, TokenEngine, TokenPair, TokenType
from litesso.service.tracker import RevocationTracker, VolatileStore, session_key_for
from litesso.storage.errors import ConstraintViolation
from litesso.storage.models import User, UserStatus

logger = get_logger(__name__)


class UserDirectory(Protocol):
    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        *,
        nickname: Optional[str] = None,
        avatar: Optional[str] = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def exists_by_username(self, username: str) -> bool: ...

    def exists_by_email(self, email: str) -> bool: ...

    def update_user(self, user: User) -> User: ...

    def soft_delete_user(self, user_id: str) -> bool: ...

    def ping(self) -> None: ...


@dataclass
class AuthResult:
    user: User
    tokens: TokenPair


class AuthService:
    """Register, login, logout, refresh and validate over the shared stores.

    Holds no per-request state; everything shared lives in the directory and
    the volatile store.
    """

    def __init__(
        self,
        store: UserDirectory,
        cache: VolatileStore,
        settings: Settings,
        *,
        tokens: Optional[TokenEngine] = None,
        verifier: Optional[CredentialVerifier] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.settings = settings
        self.tokens = tokens or TokenEngine(settings)
        self.verifier = verifier or CredentialVerifier()
        self.tracker = RevocationTracker(cache)
        self.throttle = LoginThrottle(
            cache,
            max_attempts=settings.login_max_attempts,
            window_seconds=settings.login_lockout_seconds,
        )
        self.logger = logger

    def _session_key(self, access_token: str) -> str:
        return session_key_for(access_token, self.settings.session_key_prefix_length)

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        nickname: Optional[str] = None,
    ) -> User:
        if self.store.exists_by_username(username):
            raise UserExistsError("username", username)
        if self.store.exists_by_email(email):
            raise UserExistsError("email", email)
        password_hash = self.verifier.hash(password)
        try:
            user = self.store.create_user(username, email, password_hash, nickname=nickname)
        except ConstraintViolation as exc:
            # Lost a race with a concurrent registration
            field = exc.detail.get("field", "username")
            raise UserExistsError(field, email if field == "email" else username) from exc
        self.logger.info("user_registered", user_id=user.id, username=username)
        return user

    async def verify_credentials(self, username: str, password: str, client_origin: str) -> User:
        """Throttle check, credential check and status check shared by both login paths."""
        throttle_key = self.throttle.key_for(client_origin, username)
        await self.throttle.ensure_allowed(throttle_key)

        user = self.store.get_user_by_username(username)
        if user is None:
            await self.throttle.record_failure(throttle_key)
            self.logger.info("login_failed", reason="unknown_user", client_origin=client_origin)
            raise InvalidCredentialsError()

        if not self.verifier.verify(user.password_hash, password):
            await self.throttle.record_failure(throttle_key)
            self.logger.info("login_failed", reason="bad_password", user_id=user.id)
            raise InvalidCredentialsError()

        if not user.is_active:
            self.logger.info("login_rejected_disabled", user_id=user.id)
            raise UserDisabledError()

        await self.throttle.clear(throttle_key)
        return self._maybe_rehash(user, password)

    def _maybe_rehash(self, user: User, password: str) -> User:
        if not self.verifier.needs_rehash(user.password_hash):
            return user
        user.password_hash = self.verifier.hash(password)
        updated = self.store.update_user(user)
        self.logger.info("password_rehashed", user_id=user.id)
        return updated

    async def login(self, username: str, password: str, client_origin: str) -> AuthResult:
        user = await self.verify_credentials(username, password, client_origin)
        pair = self.tokens.mint_pair(user.id, user.username)
        # Session TTL is independent of token expiry
        await self.tracker.put_session(
            self._session_key(pair.access_token), user.id, self.settings.session_ttl_seconds
        )
        self.logger.info("login_succeeded", user_id=user.id, client_origin=client_origin)
        return AuthResult(user=user, tokens=pair)

    async def logout(self, token: str) -> None:
        """Blacklist the token's jti and drop its session; safe to repeat."""
        claims = self.tokens.parse(token)
        await self.tracker.blacklist(claims.token_id, self.tokens.remaining_seconds(claims))
        await self.tracker.delete_session(self._session_key(token))
        self.logger.info("logout", user_id=claims.user_id, token_id=claims.token_id)

    async def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.tokens.parse(refresh_token)
        if claims.token_type != TokenType.REFRESH:
            raise InvalidTokenError()
        if await self.tracker.is_blacklisted(claims.token_id):
            self.logger.warning("refresh_token_replayed", token_id=claims.token_id)
            raise InvalidTokenError()
        # At least 1 for any token parse() accepted, so the claim always happens
        remaining = self.tokens.remaining_seconds(claims)
        if not await self.tracker.claim(claims.token_id, remaining):
            # A concurrent refresh consumed it between the check and the claim
            self.logger.warning("refresh_token_replayed", token_id=claims.token_id)
            raise InvalidTokenError()
        self.logger.info("tokens_refreshed", user_id=claims.user_id, token_id=claims.token_id)
        return self.tokens.mint_pair(claims.user_id, claims.username)

    async def validate(self, token: str) -> TokenClaims:
        claims = self.tokens.parse(token)
        if await self.tracker.is_blacklisted(claims.token_id):
            raise InvalidTokenError()
        return claims

    async def authenticate(self, token: Optional[str]) -> TokenClaims:
        """Authorize a request: valid, unrevoked access token."""
        if not token:
            raise InvalidTokenError("authorization token required")
        claims = await self.validate(token)
        if claims.token_type != TokenType.ACCESS:
            raise InvalidTokenError("invalid token type")
        return claims

    def get_user_info(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    @staticmethod
    def extract_bearer(header: Optional[str]) -> Optional[str]:
        if not header:
            return None
        scheme, _, value = header.partition(" ")
        if scheme.lower() != "bearer" or not value.strip():
            return None
        return value.strip()
