"""Authorization-code exchange and ID token validation."""

import json
import logging
from typing import Any, Optional

import httpx
import jwt

from tenantgate.common.exceptions import AuthenticationFailed, FederationUnavailable
from tenantgate.federation.discovery import DocumentCache
from tenantgate.federation.provider import ProviderConfig

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = frozenset({
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
})
CLOCK_SKEW = 60  # seconds


async def exchange_code(
    http: httpx.AsyncClient,
    provider: ProviderConfig,
    *,
    code: str,
    redirect_uri: str,
    client_secret: Optional[str],
    timeout: float = 10.0,
) -> dict[str, Any]:
    """POST the authorization code to the token endpoint.

    Never retried: the provider may already have redeemed the code.

    Raises:
        FederationUnavailable: network failure or 5xx from the provider
        AuthenticationFailed: the provider refused the code
    """
    if not provider.token_endpoint:
        raise FederationUnavailable("Provider has no token endpoint")

    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": provider.client_id,
    }
    if client_secret:
        form["client_secret"] = client_secret

    try:
        resp = await http.post(
            provider.token_endpoint,
            data=form,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        raise FederationUnavailable(
            f"Token endpoint unreachable: {type(exc).__name__}"
        ) from exc
    finally:
        form.pop("client_secret", None)

    if resp.status_code >= 500:
        raise FederationUnavailable(f"Token endpoint failed: HTTP {resp.status_code}")
    if resp.status_code >= 400:
        raise AuthenticationFailed(f"Token endpoint refused the code: HTTP {resp.status_code}")
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError) as exc:
        raise FederationUnavailable("Token endpoint returned invalid JSON") from exc
    if not isinstance(data, dict) or not data.get("id_token"):
        raise AuthenticationFailed("Token response carries no id_token")
    return data


def _find_key(jwks: dict[str, Any], kid: Optional[str]) -> Optional[jwt.PyJWK]:
    try:
        key_set = jwt.PyJWKSet.from_dict(jwks)
    except jwt.PyJWTError:
        return None
    for key in key_set.keys:
        if kid is None or key.key_id == kid:
            return key
    return None


async def validate_id_token(
    id_token: str,
    provider: ProviderConfig,
    cache: DocumentCache,
    *,
    nonce: Optional[str] = None,
) -> dict[str, Any]:
    """Verify signature, issuer, audience, expiry and nonce of an ID token.

    Signing keys come from the provider's JWKS (cached by URI). An unknown
    key id forces a JWKS refresh to pick up rotated keys (throttled per URI
    by the cache).
    """
    if not provider.jwks_uri:
        raise FederationUnavailable("Provider has no JWKS URI")
    if not provider.issuer:
        # jwt.decode skips the issuer check when none is given
        raise FederationUnavailable("Provider has no issuer")
    try:
        header = jwt.get_unverified_header(id_token)
    except jwt.PyJWTError as exc:
        raise AuthenticationFailed("Malformed ID token") from exc

    algorithm = header.get("alg")
    if algorithm not in ALLOWED_ALGORITHMS:
        raise AuthenticationFailed(f"ID token algorithm '{algorithm}' is not allowed")
    kid = header.get("kid")

    signing_key = _find_key(await cache.get(provider.jwks_uri), kid)
    if signing_key is None:
        signing_key = _find_key(await cache.get(provider.jwks_uri, force_refresh=True), kid)
    if signing_key is None:
        raise AuthenticationFailed("No matching signing key for ID token")

    options = {"require": ["exp", "iat", "sub"]}
    try:
        claims = jwt.decode(
            id_token,
            key=signing_key.key,
            algorithms=[algorithm],
            audience=provider.client_id,
            issuer=provider.issuer,
            leeway=CLOCK_SKEW,
            options=options,
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationFailed(f"ID token rejected: {type(exc).__name__}") from exc

    if nonce is not None and claims.get("nonce") != nonce:
        raise AuthenticationFailed("ID token nonce mismatch")
    return claims
