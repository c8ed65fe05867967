"""HTTP route definitions for the identity core."""

from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel
from schemas import AccountProfile, BroadcastPublished

from ..domain.account import Account
from ..domain.broadcast import AudienceSelector, Broadcast
from ..domain.errors import CoreError
from ..domain.fanout import DEFAULT_BROADCAST_LIMIT, BroadcastService
from ..domain.service import AccountService, SessionToken
from ..security.tokens import decode_access_token
from ..security.validation import PASSWORD_REQUIREMENTS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class RegisterRequest(BaseModel):
    """Payload accepted when registering a password-based account."""

    email: str
    handle: str
    password: str
    display_name: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class FederatedLoginRequest(BaseModel):
    """Raw ID token issued by the external identity provider."""

    id_token: str


class SessionResponse(BaseModel):
    """Token issuance response containing the bearer token and the account."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountProfile

    @classmethod
    def from_session(cls, session: SessionToken) -> "SessionResponse":
        return cls(
            access_token=session.access_token,
            expires_in=session.expires_in,
            account=_profile(session.account),
        )


class BroadcastRequest(BaseModel):
    message: str


class PasswordRequirementsResponse(BaseModel):
    requirements: list[str]


def _profile(account: Account) -> AccountProfile:
    """Build the public response model from the domain aggregate."""
    return AccountProfile(
        account_id=account.account_id,
        email=account.email,
        handle=account.handle,
        display_name=account.display_name,
        avatar_url=account.avatar_url,
        emoji_avatar=account.emoji_avatar,
        is_admin=account.is_admin,
        is_online=account.is_online,
        last_seen=account.last_seen,
        created_at=account.created_at,
    )


def _published(record: Broadcast) -> BroadcastPublished:
    return BroadcastPublished(
        broadcast_id=record.broadcast_id,
        admin_id=record.admin_id,
        message=record.message,
        created_at=record.created_at,
    )


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_broadcast_service(request: Request) -> BroadcastService:
    service: BroadcastService = request.app.state.broadcast_service
    return service


def get_current_claims(authorization: str | None = Header(default=None)) -> dict:
    """Decode the bearer token from the ``Authorization`` header."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    try:
        return decode_access_token(authorization[7:].strip())
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token") from exc


def require_admin(claims: dict = Depends(get_current_claims)) -> dict:
    if not claims.get("is_admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin privilege required")
    return claims


@router.post("/auth/register", response_model=AccountProfile, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    service: AccountService = Depends(get_service),
) -> AccountProfile:
    """Create a password-based account."""
    try:
        account = service.register(payload.email, payload.handle, payload.password, payload.display_name)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc
    return _profile(account)


@router.post("/auth/login", response_model=SessionResponse)
def login(
    payload: LoginRequest,
    service: AccountService = Depends(get_service),
) -> SessionResponse:
    try:
        account = service.login_with_password(payload.email, payload.password)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc
    return SessionResponse.from_session(service.issue_session(account))


@router.post("/auth/federated", response_model=SessionResponse)
def federated_login(
    payload: FederatedLoginRequest,
    service: AccountService = Depends(get_service),
) -> SessionResponse:
    """Sign in with an identity-provider token, linking or creating the account."""
    try:
        account = service.login_with_federated_identity(payload.id_token)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc
    return SessionResponse.from_session(service.issue_session(account))


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    claims: dict = Depends(get_current_claims),
    service: AccountService = Depends(get_service),
) -> None:
    try:
        service.logout(int(claims["sub"]))
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc


@router.get("/auth/password-requirements", response_model=PasswordRequirementsResponse)
def password_requirements() -> PasswordRequirementsResponse:
    return PasswordRequirementsResponse(requirements=PASSWORD_REQUIREMENTS)


@router.post("/admin/broadcasts", response_model=BroadcastPublished, status_code=status.HTTP_201_CREATED)
def broadcast(
    payload: BroadcastRequest,
    emoji: str | None = Query(default=None),
    claims: dict = Depends(require_admin),
    service: BroadcastService = Depends(get_broadcast_service),
) -> BroadcastPublished:
    """Broadcast to every account, or only to accounts using ``emoji`` as avatar."""
    audience = AudienceSelector.everyone() if emoji is None else AudienceSelector.with_emoji_avatar(emoji)
    try:
        record = service.broadcast(int(claims["sub"]), payload.message, audience)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc
    return _published(record)


@router.get("/admin/broadcasts", response_model=list[BroadcastPublished])
def list_broadcasts(
    limit: int = Query(default=DEFAULT_BROADCAST_LIMIT, ge=1, le=100),
    _claims: dict = Depends(require_admin),
    service: BroadcastService = Depends(get_broadcast_service),
) -> list[BroadcastPublished]:
    try:
        records = service.list_broadcasts(limit)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc
    return [_published(record) for record in records]


@router.post("/admin/accounts/{account_id}/admin", status_code=status.HTTP_204_NO_CONTENT)
def grant_admin(
    account_id: int,
    _claims: dict = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> None:
    try:
        service.grant_admin(account_id)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc


@router.delete("/admin/accounts/{account_id}/admin", status_code=status.HTTP_204_NO_CONTENT)
def revoke_admin(
    account_id: int,
    _claims: dict = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> None:
    try:
        service.revoke_admin(account_id)
    except CoreError as exc:
        raise _http_error_from_core_error(exc) from exc


_STATUS_BY_CODE = {
    "invalid_format": status.HTTP_400_BAD_REQUEST,
    "weak_password": status.HTTP_400_BAD_REQUEST,
    "empty_message": status.HTTP_400_BAD_REQUEST,
    "missing_selector": status.HTTP_400_BAD_REQUEST,
    "email_taken": status.HTTP_409_CONFLICT,
    "handle_taken": status.HTTP_409_CONFLICT,
    "identity_conflict": status.HTTP_409_CONFLICT,
    "privilege_unchanged": status.HTTP_409_CONFLICT,
    "invalid_credentials": status.HTTP_401_UNAUTHORIZED,
    "provider_unavailable": status.HTTP_401_UNAUTHORIZED,
    "account_not_found": status.HTTP_404_NOT_FOUND,
}


def _http_error_from_core_error(exc: CoreError) -> HTTPException:
    status_code = _STATUS_BY_CODE.get(exc.code, status.HTTP_503_SERVICE_UNAVAILABLE)
    if status_code >= 500:
        logger.warning("request failed with %s: %s", exc.code, exc.message)
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": exc.message})
