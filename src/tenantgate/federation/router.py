"""Authentication endpoints.

Tenant-scoped entry points live under ``/{tenant}/auth``; the provider
callbacks are fixed, tenant-agnostic paths that carry the tenant in the
query string.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from tenantgate.federation.broker import (
    SIGNIN_CALLBACK_PATH,
    SIGNOUT_CALLBACK_PATH,
    TENANT_CLAIM,
    CallbackParams,
)
from tenantgate.federation.session import (
    LOGIN_COOKIE,
    SESSION_COOKIE,
    create_login_cookie,
    create_session_cookie,
    get_pending_login,
    get_session,
)
from tenantgate.tenants.schemas import IDENTIFIER_PATTERN

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

AUTH_FAILED = "authentication_failed"


class CurrentUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    user_name: Optional[str] = Field(default=None, alias="userName")
    email: Optional[str] = None
    roles: list[str] = []
    tenant: str
    is_authenticated: bool = Field(default=True, alias="isAuthenticated")


class AuthCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_authenticated: bool = Field(alias="isAuthenticated")


def _get_broker():
    from tenantgate.deps import get_broker
    return get_broker()


def _get_db():
    from tenantgate.deps import get_db
    return get_db()


def _settings():
    from tenantgate.common.config import get_settings
    return get_settings()


def _set_cookie(response, name: str, value: str, max_age: int, path: str = "/") -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        path=path,
        httponly=True,
        secure=_settings().cookie_secure,
        samesite="lax",
    )


def _landing(tenant: Optional[str]) -> str:
    """The tenant landing page; the site root when ``tenant`` is not an identifier."""
    if tenant and re.fullmatch(IDENTIFIER_PATTERN, tenant):
        return f"/{tenant}/"
    return "/"


def _tenant_session(request: Request, tenant: str) -> Optional[dict]:
    """The session, only when it belongs to ``tenant``."""
    session = get_session(request)
    if session is None or session.get(TENANT_CLAIM) != tenant:
        return None
    return session


@router.get("/{tenant}/auth/login")
async def login(tenant: str, request: Request, return_url: Optional[str] = Query(None, alias="returnUrl")):
    broker = _get_broker()
    db = _get_db()
    async with db.get_session() as session:
        challenge = await broker.begin_login(
            session, str(request.base_url), tenant, return_url
        )
    response = RedirectResponse(challenge.authorization_url, status_code=302)
    _set_cookie(
        response,
        LOGIN_COOKIE,
        create_login_cookie(challenge.pending),
        _settings().login_max_age,
    )
    return response


@router.get(SIGNIN_CALLBACK_PATH)
async def signin_callback(
    request: Request,
    tenant: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
):
    broker = _get_broker()
    db = _get_db()
    current = get_session(request)
    params = CallbackParams(
        query_tenant=tenant,
        code=code,
        state=state,
        error=error,
        pending=get_pending_login(request),
        session_tenant=current.get(TENANT_CLAIM) if current else None,
    )
    async with db.get_session() as session:
        outcome = await broker.complete_login(session, str(request.base_url), params)

    if not outcome.attempt.is_authenticated:
        landing = _landing(outcome.attempt.tenant)
        response = RedirectResponse(f"{landing}?error={AUTH_FAILED}", status_code=302)
        response.delete_cookie(LOGIN_COOKIE, path="/")
        return response

    response = RedirectResponse(outcome.return_url, status_code=302)
    response.delete_cookie(LOGIN_COOKIE, path="/")
    _set_cookie(
        response,
        SESSION_COOKIE,
        create_session_cookie(outcome.identity),
        _settings().session_max_age,
    )
    return response


@router.get(SIGNOUT_CALLBACK_PATH)
async def signout_callback(tenant: Optional[str] = Query(None)):
    return RedirectResponse(_landing(tenant), status_code=302)


@router.get("/{tenant}/auth/logout")
async def logout(tenant: str, request: Request):
    broker = _get_broker()
    db = _get_db()
    logger.info("Logout initiated", extra={"tenant": tenant})
    async with db.get_session() as session:
        target = await broker.build_logout(session, str(request.base_url), tenant)
    response = RedirectResponse(target, status_code=302)
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@router.get("/{tenant}/auth/me", response_model=CurrentUser)
async def me(tenant: str, request: Request):
    session = _tenant_session(request, tenant)
    if session is None:
        return JSONResponse(status_code=401, content={"isAuthenticated": False})
    return CurrentUser(
        user_id=session.get("sub"),
        user_name=session.get("name"),
        email=session.get("email"),
        roles=session.get("roles") or [],
        tenant=session[TENANT_CLAIM],
    )


@router.get("/{tenant}/auth/check", response_model=AuthCheck)
async def check(tenant: str, request: Request):
    return AuthCheck(is_authenticated=_tenant_session(request, tenant) is not None)
