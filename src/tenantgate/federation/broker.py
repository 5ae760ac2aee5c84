"""
Per-tenant OpenID-Connect login orchestration.

A login attempt moves through::

    anonymous -> challenge_issued -> callback_received -> authenticated
                                                       -> rejected

The tenant comes from the URL on the challenge and from the callback query
parameter on the way back; it never comes from an ambient cookie. A session
or pending login naming a different tenant rejects the attempt before any
provider is contacted.

Failures of any kind (tenant mismatch, bad secret, provider outage) end in
``rejected``; callers show the user one generic "authentication failed".
"""

import asyncio
import enum
import hmac
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import urlencode, urlsplit

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.common.config import TenantGateSettings
from tenantgate.common.exceptions import (
    AuthenticationFailed,
    MissingTenant,
    NotFound,
    TenantGateError,
    TenantMismatch,
)
from tenantgate.crypto import vault
from tenantgate.federation.discovery import DocumentCache
from tenantgate.federation.provider import SCOPES, ProviderConfig, resolve_provider
from tenantgate.federation.tokens import exchange_code, validate_id_token
from tenantgate.tenants.directory import TenantDirectory
from tenantgate.tenants.models import TenantModel

logger = logging.getLogger(__name__)

SIGNIN_CALLBACK_PATH = "/auth/signin-oidc"
SIGNOUT_CALLBACK_PATH = "/auth/signout-oidc"
TENANT_CLAIM = "tenant"


class LoginState(str, enum.Enum):
    ANONYMOUS = "anonymous"
    CHALLENGE_ISSUED = "challenge_issued"
    CALLBACK_RECEIVED = "callback_received"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


_TRANSITIONS: dict[LoginState, frozenset[LoginState]] = {
    LoginState.ANONYMOUS: frozenset({LoginState.CHALLENGE_ISSUED, LoginState.REJECTED}),
    LoginState.CHALLENGE_ISSUED: frozenset({LoginState.CALLBACK_RECEIVED, LoginState.REJECTED}),
    LoginState.CALLBACK_RECEIVED: frozenset({LoginState.AUTHENTICATED, LoginState.REJECTED}),
    LoginState.AUTHENTICATED: frozenset(),
    LoginState.REJECTED: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class LoginAttempt:
    """Tracks one login attempt through its states."""

    state: LoginState = LoginState.ANONYMOUS
    tenant: Optional[str] = None
    reason: Optional[str] = None

    def _move(self, target: LoginState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target

    def issue_challenge(self, tenant: str) -> None:
        self._move(LoginState.CHALLENGE_ISSUED)
        self.tenant = tenant

    def receive_callback(self) -> None:
        self._move(LoginState.CALLBACK_RECEIVED)

    def authenticate(self) -> None:
        self._move(LoginState.AUTHENTICATED)

    def reject(self, reason: str) -> None:
        if self.state is LoginState.REJECTED:
            return
        self._move(LoginState.REJECTED)
        self.reason = reason

    @property
    def is_authenticated(self) -> bool:
        return self.state is LoginState.AUTHENTICATED


@dataclass(frozen=True)
class Challenge:
    """The redirect to the identity provider and the state to remember."""

    authorization_url: str
    pending: dict[str, Any]
    attempt: LoginAttempt


@dataclass
class LoginOutcome:
    attempt: LoginAttempt
    identity: Optional[dict[str, Any]] = None
    return_url: Optional[str] = None


@dataclass(frozen=True)
class CallbackParams:
    """What came back from the provider, plus what we remembered."""

    query_tenant: Optional[str] = None
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    pending: Optional[dict[str, Any]] = None
    session_tenant: Optional[str] = None


def _base(base_url: str) -> str:
    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}"


def signin_redirect_uri(base_url: str, tenant: str) -> str:
    return f"{_base(base_url)}{SIGNIN_CALLBACK_PATH}?{urlencode({'tenant': tenant})}"


def signout_redirect_uri(base_url: str, tenant: str) -> str:
    return f"{_base(base_url)}{SIGNOUT_CALLBACK_PATH}?{urlencode({'tenant': tenant})}"


def _with_query(endpoint: str, params: dict[str, str]) -> str:
    joiner = "&" if urlsplit(endpoint).query else "?"
    return f"{endpoint}{joiner}{urlencode(params)}"


def is_safe_return_url(return_url: Optional[str], tenant: str) -> bool:
    """A return URL must be a local path inside the tenant's own area."""
    if not return_url:
        return False
    if return_url.startswith("//") or "\\" in return_url:
        return False
    parts = urlsplit(return_url)
    if parts.scheme or parts.netloc:
        return False
    return return_url.startswith(f"/{tenant}/")


def _claim_values(claims: dict[str, Any], path: str) -> list[str]:
    """Read a role claim; dotted paths walk nested objects (``realm_access.roles``)."""
    value: Any = claims
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            raise KeyError(path)
        value = value[part]
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    raise TypeError(f"Claim '{path}' is not a string or list of strings")


def build_identity(
    claims: dict[str, Any],
    tenant: str,
    role_claim_name: Optional[str] = None,
) -> dict[str, Any]:
    """Turn validated ID token claims into the session identity.

    The tenant claim is attached once. Role mapping failures are logged and
    the identity is returned without roles.
    """
    existing = claims.get(TENANT_CLAIM)
    if existing is not None and existing != tenant:
        raise TenantMismatch("ID token names a different tenant")

    roles: list[str] = []
    if role_claim_name:
        try:
            roles = _claim_values(claims, role_claim_name)
        except (KeyError, TypeError) as exc:
            logger.warning(
                "Role claim mapping failed, continuing without roles",
                extra={"tenant": tenant, "role_claim": role_claim_name, "error": str(exc)},
            )

    return {
        "sub": claims.get("sub"),
        "name": claims.get("preferred_username") or claims.get("name") or claims.get("email"),
        "email": claims.get("email"),
        "roles": roles,
        TENANT_CLAIM: existing or tenant,
        "iss": claims.get("iss"),
    }


class FederationBroker:
    """Builds provider configuration per request and drives the login flow."""

    def __init__(
        self,
        settings: TenantGateSettings,
        directory: TenantDirectory,
        cache: DocumentCache,
        http_factory: Callable[[], httpx.AsyncClient],
    ):
        self.settings = settings
        self.directory = directory
        self.cache = cache
        self._http_factory = http_factory

    async def _load_tenant(self, session: AsyncSession, identifier: str) -> TenantModel:
        tenant = await self.directory.get_by_identifier(session, identifier)
        if tenant is None:
            raise NotFound(f"Tenant '{identifier}' not found")
        return tenant

    async def provider_for(
        self, session: AsyncSession, identifier: str
    ) -> tuple[TenantModel, ProviderConfig]:
        """Read the tenant record and resolve its provider for this request."""
        if not identifier or not identifier.strip():
            raise MissingTenant()
        tenant = await self._load_tenant(session, identifier)
        provider = await resolve_provider(tenant, self.settings, self.cache)
        return tenant, provider

    def _client_secret(self, tenant: TenantModel, provider: ProviderConfig) -> Optional[str]:
        if provider.is_default:
            return self.settings.default_client_secret
        return vault.reveal_client_secret(self.settings.master_key_bytes, tenant)

    # ── Challenge ──

    async def begin_login(
        self,
        session: AsyncSession,
        base_url: str,
        tenant_identifier: Optional[str],
        return_url: Optional[str] = None,
    ) -> Challenge:
        """
        Build the authorization redirect for a tenant.

        Raises:
            MissingTenant: no tenant in the URL (no provider is contacted)
            NotFound: unknown tenant
            FederationUnavailable: discovery failed
        """
        if not tenant_identifier or not tenant_identifier.strip():
            logger.warning("Login requested without tenant")
            raise MissingTenant()

        tenant, provider = await self.provider_for(session, tenant_identifier)

        if not is_safe_return_url(return_url, tenant_identifier):
            if return_url:
                logger.warning(
                    "Invalid returnUrl ignored",
                    extra={"tenant": tenant_identifier, "return_url": return_url},
                )
            return_url = f"/{tenant_identifier}/"

        attempt = LoginAttempt()
        attempt.issue_challenge(tenant_identifier)

        state = secrets.token_urlsafe(32)
        nonce = secrets.token_urlsafe(32)
        params = {
            "client_id": provider.client_id,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "redirect_uri": signin_redirect_uri(base_url, tenant_identifier),
            "state": state,
            "nonce": nonce,
        }
        logger.info(
            "Login challenge issued",
            extra={"tenant": tenant_identifier, "default_provider": provider.is_default},
        )
        return Challenge(
            authorization_url=_with_query(provider.authorization_endpoint, params),
            pending={
                "tenant": tenant.identifier,
                "state": state,
                "nonce": nonce,
                "return_url": return_url,
            },
            attempt=attempt,
        )

    # ── Callback ──

    async def complete_login(
        self,
        session: AsyncSession,
        base_url: str,
        params: CallbackParams,
    ) -> LoginOutcome:
        """Finish a login from the provider's callback.

        Never raises for authentication problems; the outcome's attempt is
        ``rejected`` with the internal reason. Cancellation marks the attempt
        rejected and propagates.
        """
        attempt = LoginAttempt()
        pending = params.pending or {}
        tenant_identifier = params.query_tenant or pending.get("tenant")
        outcome = LoginOutcome(attempt=attempt)
        try:
            if not tenant_identifier:
                raise MissingTenant()
            attempt.issue_challenge(tenant_identifier)
            attempt.receive_callback()

            if not params.pending:
                raise AuthenticationFailed("No login in progress")
            if pending.get("tenant") != tenant_identifier:
                raise TenantMismatch("Callback tenant differs from the challenged tenant")
            if params.session_tenant and params.session_tenant != tenant_identifier:
                raise TenantMismatch("Session tenant differs from callback tenant")
            if params.error:
                raise AuthenticationFailed(f"Provider returned error '{params.error}'")
            if not params.code or not params.state:
                raise AuthenticationFailed("Callback is missing code or state")
            if not hmac.compare_digest(
                params.state.encode(), str(pending.get("state", "")).encode()
            ):
                raise AuthenticationFailed("State mismatch")

            tenant, provider = await self.provider_for(session, tenant_identifier)
            identity = await self._redeem(
                tenant, provider, base_url, params.code, pending.get("nonce")
            )
            attempt.authenticate()
            outcome.identity = identity
            outcome.return_url = pending.get("return_url") or f"/{tenant_identifier}/"
            logger.info("Login succeeded", extra={"tenant": tenant_identifier})
        except asyncio.CancelledError:
            attempt.reject("cancelled")
            raise
        except TenantGateError as exc:
            attempt.reject(exc.code)
            logger.warning(
                "Login rejected",
                extra={"tenant": tenant_identifier, "reason": exc.code, "detail": exc.message},
            )
        return outcome

    async def _redeem(
        self,
        tenant: TenantModel,
        provider: ProviderConfig,
        base_url: str,
        code: str,
        nonce: Optional[str],
    ) -> dict[str, Any]:
        # decrypted right before the token request, dropped right after
        client_secret = self._client_secret(tenant, provider)
        try:
            tokens = await exchange_code(
                self._http_factory(),
                provider,
                code=code,
                redirect_uri=signin_redirect_uri(base_url, tenant.identifier),
                client_secret=client_secret,
                timeout=self.settings.http_timeout,
            )
        finally:
            client_secret = None

        claims = await validate_id_token(
            tokens["id_token"], provider, self.cache, nonce=nonce
        )
        return build_identity(claims, tenant.identifier, provider.role_claim_name)

    # ── Logout ──

    async def build_logout(
        self,
        session: AsyncSession,
        base_url: str,
        tenant_identifier: str,
    ) -> str:
        """Where to send the browser after the local session is cleared."""
        landing = f"/{tenant_identifier}/"
        try:
            _, provider = await self.provider_for(session, tenant_identifier)
        except TenantGateError as exc:
            logger.warning(
                "Provider sign-out skipped",
                extra={"tenant": tenant_identifier, "reason": exc.code},
            )
            return landing
        if not provider.end_session_endpoint:
            return landing
        return _with_query(
            provider.end_session_endpoint,
            {
                "client_id": provider.client_id,
                "post_logout_redirect_uri": signout_redirect_uri(base_url, tenant_identifier),
            },
        )
