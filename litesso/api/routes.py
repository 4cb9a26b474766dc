from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Query, Request

from litesso.api.schemas import (
    Envelope,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    SSOLoginInfoResponse,
    SSOLoginRequest,
    SSOLoginResponse,
    SSOLogoutResponse,
    SSOValidateResponse,
    TokenClaimsResponse,
    TokenPairResponse,
    TokenRefreshRequest,
    UserResponse,
    UserSummary,
)
from litesso.logging import get_logger
from litesso.service.auth import AuthService
from litesso.service.errors import ExpiredTokenError, InvalidServiceError, InvalidTokenError
from litesso.service.runtime import get_runtime
from litesso.service.tokens import TokenClaims
from litesso.storage.models import User

logger = get_logger(__name__)

router = APIRouter(prefix="/v1")

SSO_LOGIN_PATH = "/v1/sso/login"


def _http_error(
    code: str, message: str, status_code: int, details: Optional[dict | str] = None
) -> HTTPException:
    payload: dict[str, object] = {
        "status": "error",
        "error": {"code": code, "message": message},
    }
    if details is not None:
        payload["error"]["details"] = details  # type: ignore[index]
    return HTTPException(status_code=status_code, detail=payload)


def _client_origin(request: Request) -> str:
    return request.client.host if request.client and request.client.host else "unknown"


def _user_response(user: User) -> UserResponse:
    return UserResponse(**user.to_public())


def _claims_response(claims: TokenClaims) -> TokenClaimsResponse:
    return TokenClaimsResponse(
        user_id=claims.user_id,
        username=claims.username,
        token_type=claims.token_type.value,
        expires_at=claims.expires_at,
    )


async def get_request_token(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
    access_token: Optional[str] = Cookie(None),
) -> str:
    """Bearer header first, then ``?token=``, then the ``access_token`` cookie."""
    found = AuthService.extract_bearer(authorization) or token or access_token
    if not found:
        raise _http_error("unauthorized", "authorization token required", status_code=401)
    return found


async def get_current_claims(raw_token: str = Depends(get_request_token)) -> TokenClaims:
    runtime = get_runtime()
    try:
        return await runtime.auth.authenticate(raw_token)
    except (InvalidTokenError, ExpiredTokenError):
        # CacheUnavailable is not caught here; it surfaces as 503
        raise _http_error("unauthorized", "invalid or expired token", status_code=401) from None


@router.post("/auth/register", response_model=Envelope, status_code=201, tags=["auth"])
async def register(body: RegisterRequest):
    """Create a user account; does not log the user in."""
    runtime = get_runtime()
    if not runtime.settings.allow_signup:
        raise _http_error("forbidden", "signup disabled", status_code=403)
    user = await runtime.auth.register(
        username=body.username,
        email=body.email,
        password=body.password,
        nickname=body.nickname,
    )
    return Envelope(
        status="ok",
        data=UserSummary(user_id=user.id, username=user.username, email=user.email),
    )


@router.post("/auth/login", response_model=Envelope, tags=["auth"])
async def login(body: LoginRequest, request: Request):
    """Exchange username and password for an access/refresh token pair.

    Raises:
        401: invalid credentials (same response for unknown user and wrong password)
        403: account disabled
        429: too many failed attempts from this origin for this username
    """
    runtime = get_runtime()
    result = await runtime.auth.login(body.username, body.password, _client_origin(request))
    return Envelope(
        status="ok",
        data=LoginResponse(
            user=_user_response(result.user),
            token=TokenPairResponse(**result.tokens.to_dict()),
        ),
    )


@router.post(
    "/auth/logout",
    response_model=Envelope,
    tags=["auth"],
    dependencies=[Depends(get_current_claims)],
)
async def logout(raw_token: str = Depends(get_request_token)):
    runtime = get_runtime()
    await runtime.auth.logout(raw_token)
    return Envelope(status="ok", data={"logged_out": True})


@router.post("/auth/refresh", response_model=Envelope, tags=["auth"])
async def refresh(body: TokenRefreshRequest):
    runtime = get_runtime()
    pair = await runtime.auth.refresh(body.refresh_token)
    return Envelope(status="ok", data=TokenPairResponse(**pair.to_dict()))


@router.get("/auth/validate", response_model=Envelope, tags=["auth"])
async def validate(raw_token: str = Depends(get_request_token)):
    """Report the claims of any unrevoked token, access or refresh."""
    runtime = get_runtime()
    claims = await runtime.auth.validate(raw_token)
    return Envelope(status="ok", data=_claims_response(claims))


@router.get("/user/info", response_model=Envelope, tags=["user"])
async def user_info(claims: TokenClaims = Depends(get_current_claims)):
    runtime = get_runtime()
    user = runtime.auth.get_user_info(claims.user_id)
    return Envelope(status="ok", data=_user_response(user))


@router.get("/sso/login", response_model=Envelope, tags=["sso"])
async def sso_login_info(service: Optional[str] = Query(None)):
    if not service:
        raise InvalidServiceError("missing required parameter: service")
    return Envelope(
        status="ok",
        data=SSOLoginInfoResponse(service=service, login_url=SSO_LOGIN_PATH),
    )


@router.post("/sso/login", response_model=Envelope, tags=["sso"])
async def sso_login(body: SSOLoginRequest, request: Request):
    """Verify credentials and issue a one-time service ticket.

    The relying service receives the ticket through ``redirect_url`` and must
    redeem it at ``/v1/sso/validate`` within the ticket lifetime.
    """
    runtime = get_runtime()
    grant = await runtime.sso.login(
        body.username, body.password, body.service, _client_origin(request)
    )
    return Envelope(
        status="ok",
        data=SSOLoginResponse(ticket=grant.ticket, redirect_url=grant.redirect_url),
    )


@router.get("/sso/validate", response_model=Envelope, tags=["sso"])
async def sso_validate(
    ticket: Optional[str] = Query(None),
    service: Optional[str] = Query(None),
):
    # An absent parameter is a malformed request; 401 is kept for unknown tickets
    if not ticket:
        raise _http_error(
            "validation_error",
            "missing required parameter: ticket",
            status_code=400,
            details={"field": "ticket"},
        )
    runtime = get_runtime()
    identity = await runtime.sso.validate_ticket(ticket, service)
    return Envelope(status="ok", data=SSOValidateResponse(**identity.to_dict()))


@router.get("/sso/logout", response_model=Envelope, tags=["sso"])
async def sso_logout(service: Optional[str] = Query(None)):
    # No single-logout fan-out to relying services
    return Envelope(status="ok", data=SSOLogoutResponse(redirect_url=service or None))
