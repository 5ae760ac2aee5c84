"""Signed cookies for the login session and the pending login."""

from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from starlette.requests import Request

SESSION_COOKIE = "tenantgate_session"
LOGIN_COOKIE = "tenantgate_login"

_SESSION_SALT = "tenantgate-session"
_LOGIN_SALT = "tenantgate-login"


def _get_serializer(salt: str) -> URLSafeTimedSerializer:
    from tenantgate.common.config import get_settings
    return URLSafeTimedSerializer(get_settings().secret_key, salt=salt)


def _max_age(name: str) -> int:
    from tenantgate.common.config import get_settings
    return getattr(get_settings(), name)


def create_session_cookie(identity: dict[str, Any]) -> str:
    """Sign the authenticated identity and return the cookie value."""
    return _get_serializer(_SESSION_SALT).dumps(identity)


def verify_session_cookie(cookie: str) -> dict[str, Any] | None:
    """Verify and decode a session cookie. Returns the identity or None."""
    try:
        return _get_serializer(_SESSION_SALT).loads(cookie, max_age=_max_age("session_max_age"))
    except (BadSignature, SignatureExpired):
        return None


def create_login_cookie(pending: dict[str, Any]) -> str:
    """Sign the state, nonce, tenant and return URL of a login in progress."""
    return _get_serializer(_LOGIN_SALT).dumps(pending)


def verify_login_cookie(cookie: str) -> dict[str, Any] | None:
    try:
        return _get_serializer(_LOGIN_SALT).loads(cookie, max_age=_max_age("login_max_age"))
    except (BadSignature, SignatureExpired):
        return None


def get_session(request: Request) -> dict[str, Any] | None:
    """Extract and verify the session from a request."""
    cookie = request.cookies.get(SESSION_COOKIE)
    if not cookie:
        return None
    return verify_session_cookie(cookie)


def get_pending_login(request: Request) -> dict[str, Any] | None:
    cookie = request.cookies.get(LOGIN_COOKIE)
    if not cookie:
        return None
    return verify_login_cookie(cookie)
