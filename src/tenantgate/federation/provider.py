"""Per-request identity provider configuration.

A ProviderConfig is built fresh from the tenant record on every request and
is never mutated; tenant configuration can change between requests.
"""

from dataclasses import dataclass, replace
from typing import Optional

from tenantgate.common.config import TenantGateSettings
from tenantgate.common.exceptions import FederationUnavailable
from tenantgate.federation.discovery import DocumentCache
from tenantgate.tenants.models import TenantModel

SCOPES = ("openid", "profile", "email")


@dataclass(frozen=True)
class ProviderConfig:
    issuer: Optional[str]
    authorization_endpoint: str
    token_endpoint: Optional[str]
    jwks_uri: Optional[str]
    end_session_endpoint: Optional[str]
    client_id: str
    is_default: bool = False
    role_claim_name: Optional[str] = None
    metadata_address: Optional[str] = None


def default_provider(settings: TenantGateSettings) -> ProviderConfig:
    return ProviderConfig(
        issuer=settings.default_issuer or None,
        authorization_endpoint=settings.default_authorization_endpoint,
        token_endpoint=settings.default_token_endpoint or None,
        jwks_uri=settings.default_jwks_uri or None,
        end_session_endpoint=settings.default_end_session_endpoint or None,
        client_id=settings.default_client_id,
        is_default=True,
    )


async def resolve_provider(
    tenant: TenantModel | None,
    settings: TenantGateSettings,
    cache: DocumentCache,
) -> ProviderConfig:
    """Pick the tenant's own provider when fully configured, else the default.

    With a metadata address the endpoints come from the (cached) discovery
    document, stored values filling any gaps; otherwise the stored explicit
    endpoints are used without a fetch.
    """
    if tenant is None or not tenant.has_oidc_config:
        provider = default_provider(settings)
        if tenant is not None and tenant.role_claim_name:
            provider = replace(provider, role_claim_name=tenant.role_claim_name)
        return provider

    issuer = tenant.oidc_authority
    authorization_endpoint = tenant.oidc_authorization_endpoint
    token_endpoint = tenant.oidc_token_endpoint
    jwks_uri = tenant.oidc_jwks_uri
    end_session_endpoint = tenant.oidc_end_session_endpoint

    if tenant.oidc_metadata_address:
        doc = await cache.get_discovery(tenant.oidc_metadata_address)
        issuer = doc.issuer or issuer
        authorization_endpoint = doc.authorization_endpoint or authorization_endpoint
        token_endpoint = doc.token_endpoint or token_endpoint
        jwks_uri = doc.jwks_uri or jwks_uri
        end_session_endpoint = doc.end_session_endpoint or end_session_endpoint

    if not authorization_endpoint:
        raise FederationUnavailable(
            f"Provider for tenant '{tenant.identifier}' has no authorization endpoint"
        )

    return ProviderConfig(
        issuer=issuer,
        authorization_endpoint=authorization_endpoint,
        token_endpoint=token_endpoint,
        jwks_uri=jwks_uri,
        end_session_endpoint=end_session_endpoint,
        client_id=tenant.oidc_client_id,
        role_claim_name=tenant.role_claim_name,
        metadata_address=tenant.oidc_metadata_address,
    )
