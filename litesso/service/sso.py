"""Service-ticket broker for single sign-on.

A relying service sends the user to ``/sso/login?service=<url>``; after the
credentials check the user is redirected back with a one-time ``ticket``
which the service redeems server-to-server at ``/sso/validate``.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from typing import Optional

from litesso.config import Settings
from litesso.logging import get_logger, mask_ticket
from litesso.service.auth import AuthService, UserDirectory
from litesso.service.errors import (
    InvalidServiceError,
    NotFoundError,
    ServiceMismatchError,
    TicketNotFoundError,
)
from litesso.service.tracker import VolatileStore
from litesso.storage.models import User

logger = get_logger(__name__)

TICKET_PREFIX = "ST-"
TICKET_KEY_PREFIX = "sso:ticket:"
# Random bytes per ticket; hex-encoded to twice this many characters
TICKET_ENTROPY_BYTES = 16


def generate_ticket_id() -> str:
    return TICKET_PREFIX + secrets.token_hex(TICKET_ENTROPY_BYTES)


def build_redirect_url(service: str, ticket: str) -> str:
    separator = "&" if "?" in service else "?"
    return f"{service}{separator}ticket={ticket}"


@dataclass
class TicketGrant:
    ticket: str
    redirect_url: str


@dataclass
class TicketIdentity:
    user_id: str
    username: str
    email: str
    nickname: Optional[str]

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "nickname": self.nickname,
        }


class SSOService:
    def __init__(
        self,
        store: UserDirectory,
        cache: VolatileStore,
        settings: Settings,
        auth: AuthService,
    ) -> None:
        self.store = store
        self.cache = cache
        self.settings = settings
        self.auth = auth
        self.logger = logger

    async def login(
        self, username: str, password: str, service: Optional[str], client_origin: str
    ) -> TicketGrant:
        # Service is checked before any throttle or credential work
        if not service:
            raise InvalidServiceError()
        user = await self.auth.verify_credentials(username, password, client_origin)
        ticket = await self.issue_ticket(user, service)
        return TicketGrant(ticket=ticket, redirect_url=build_redirect_url(service, ticket))

    async def issue_ticket(self, user: User, service: str) -> str:
        ticket = generate_ticket_id()
        payload = json.dumps(
            {"user_id": user.id, "username": user.username, "service": service},
            separators=(",", ":"),
        )
        await self.cache.set(
            f"{TICKET_KEY_PREFIX}{ticket}", payload, self.settings.sso_ticket_ttl_seconds
        )
        self.logger.info(
            "sso_ticket_issued", user_id=user.id, ticket=mask_ticket(ticket), service=service
        )
        return ticket

    async def validate_ticket(self, ticket: Optional[str], service: Optional[str]) -> TicketIdentity:
        """Redeem ``ticket`` for ``service``; succeeds at most once per ticket.

        The ticket is consumed by the atomic read even when the service check
        below rejects it.
        """
        if not ticket:
            raise TicketNotFoundError()
        if not service:
            raise InvalidServiceError()

        raw = await self.cache.get_and_delete(f"{TICKET_KEY_PREFIX}{ticket}")
        if raw is None:
            self.logger.info("sso_ticket_not_found", ticket=mask_ticket(ticket))
            raise TicketNotFoundError()
        try:
            data = json.loads(raw)
            user_id = str(data["user_id"])
            issued_service = str(data["service"])
        except (ValueError, TypeError, KeyError):
            self.logger.warning("sso_ticket_corrupt", ticket=mask_ticket(ticket))
            raise TicketNotFoundError() from None

        if issued_service != service:
            self.logger.warning(
                "sso_service_mismatch",
                ticket=mask_ticket(ticket),
                expected_service=issued_service,
                service=service,
            )
            raise ServiceMismatchError()

        # Directory is authoritative; the cached username may be stale
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user not found")
        self.logger.info("sso_ticket_validated", user_id=user.id, service=service)
        return TicketIdentity(
            user_id=user.id,
            username=user.username,
            email=user.email,
            nickname=user.nickname,
        )
