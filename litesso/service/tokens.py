"""Signed token minting and parsing.

Tokens are compact HS256 JWTs carrying the user identity, a random ``jti``
used for revocation, a ``token_type`` tag and the registered time claims.
Validity is decided by signature, embedded claims and the caller's blacklist
check only; nothing is stored server-side when a token is minted.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import math
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from litesso.config import Settings
from litesso.logging import get_logger
from litesso.service.errors import ExpiredTokenError, InvalidTokenError

logger = get_logger(__name__)

_ALGORITHM = "HS256"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    username: str
    token_id: str
    token_type: TokenType
    issuer: str
    issued_at: int
    not_before: int
    expires_at: int

    def remaining_seconds(self, now: float | None = None, leeway: int = 0) -> int:
        """Seconds, rounded up, for which the token still parses; never negative."""
        current = time.time() if now is None else now
        return max(0, math.ceil(self.expires_at + leeway - current))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "token_id": self.token_id,
            "token_type": self.token_type.value,
            "issuer": self.issuer,
            "issued_at": self.issued_at,
            "not_before": self.not_before,
            "expires_at": self.expires_at,
        }


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
        }


class TokenEngine:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._secret = settings.jwt_secret.encode()
        self._lifetimes = {
            TokenType.ACCESS: settings.access_token_ttl_seconds,
            TokenType.REFRESH: settings.refresh_token_ttl_seconds,
        }

    def _now(self) -> float:
        return time.time()

    @staticmethod
    def _encode_segment(data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    @staticmethod
    def _decode_segment(segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        return self._encode_segment(digest)

    def mint(self, user_id: str, username: str, token_type: TokenType) -> str:
        token_type = TokenType(token_type)
        now = int(self._now())
        payload = {
            "sub": user_id,
            "username": username,
            "jti": str(uuid.uuid4()),
            "token_type": token_type.value,
            "iss": self.settings.jwt_issuer,
            "iat": now,
            "nbf": now,
            "exp": now + self._lifetimes[token_type],
        }
        header = {"alg": _ALGORITHM, "typ": "JWT"}
        header_enc = self._encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = self._encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def mint_pair(self, user_id: str, username: str) -> TokenPair:
        # Each token gets its own jti so they can be revoked independently
        return TokenPair(
            access_token=self.mint(user_id, username, TokenType.ACCESS),
            refresh_token=self.mint(user_id, username, TokenType.REFRESH),
            expires_in=self.settings.access_token_ttl_seconds,
        )

    def parse(self, token: str) -> TokenClaims:
        """Verify ``token`` and return its claims.

        Raises ``ExpiredTokenError`` only for a correctly signed token whose
        expiry has passed; every other defect raises ``InvalidTokenError``.
        """
        if not token or not isinstance(token, str):
            raise InvalidTokenError()
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise InvalidTokenError() from None

        # Reject anything but HS256 before touching the signature ("none", RS256, ...)
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, UnicodeDecodeError):
            logger.warning("jwt_header_decode_failed")
            raise InvalidTokenError() from None
        if not isinstance(header, dict) or header.get("alg") != _ALGORITHM:
            logger.warning(
                "jwt_invalid_algorithm",
                alg=header.get("alg") if isinstance(header, dict) else None,
            )
            raise InvalidTokenError()

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not sig_b64.isascii() or not hmac.compare_digest(expected_sig, sig_b64):
            raise InvalidTokenError()

        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            raise InvalidTokenError() from None
        if not isinstance(payload, dict):
            raise InvalidTokenError()

        claims = self._claims_from_payload(payload)
        leeway = self.settings.jwt_leeway_seconds
        now = self._now()
        if claims.expires_at <= now - leeway:
            raise ExpiredTokenError()
        if claims.not_before > now + leeway:
            raise InvalidTokenError("token not yet valid")
        if claims.issuer != self.settings.jwt_issuer:
            raise InvalidTokenError()
        return claims

    @staticmethod
    def _claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
        try:
            token_type = TokenType(payload["token_type"])
            claims = TokenClaims(
                user_id=str(payload["sub"]),
                username=str(payload["username"]),
                token_id=str(payload["jti"]),
                token_type=token_type,
                issuer=str(payload.get("iss", "")),
                issued_at=int(payload["iat"]),
                not_before=int(payload["nbf"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError() from None
        if not claims.user_id or not claims.token_id:
            raise InvalidTokenError()
        return claims

    def remaining_seconds(self, claims: TokenClaims) -> int:
        return claims.remaining_seconds(self._now(), self.settings.jwt_leeway_seconds)
