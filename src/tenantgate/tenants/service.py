"""Tenant registration and administration."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.engine import URL
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.common.config import TenantGateSettings
from tenantgate.common.exceptions import Conflict, NotFound, ValidationError
from tenantgate.crypto import obfuscation, vault
from tenantgate.federation.discovery import DocumentCache
from tenantgate.tenants.connections import build_database_url, normalize_provider
from tenantgate.tenants.directory import TenantDirectory
from tenantgate.tenants.models import TenantModel
from tenantgate.tenants.schemas import TenantCreate, TenantResponse
from tenantgate.tenants.setup_tokens import SetupTokenIssuer

logger = logging.getLogger(__name__)

_OIDC_FIELDS = (
    "oidc_metadata_address",
    "oidc_authority",
    "oidc_authorization_endpoint",
    "oidc_token_endpoint",
    "oidc_jwks_uri",
    "oidc_end_session_endpoint",
    "oidc_client_id",
    "oidc_client_secret",
)
# all set or all unset
_CORE_OIDC_FIELDS = ("oidc_authority", "oidc_authorization_endpoint", "oidc_client_id")
# needed to finish a login once the core fields are set
_EXCHANGE_OIDC_FIELDS = ("oidc_token_endpoint", "oidc_jwks_uri")


@dataclass
class RegisteredTenant:
    tenant: TenantModel
    setup_token: str
    setup_token_expires_at: datetime


def public_id(tenant: TenantModel) -> str:
    """The tenant id as shown outside the service."""
    return obfuscation.obfuscate(
        tenant.id,
        obfuscation.key_from_hex(tenant.obfuscation_key_k0),
        obfuscation.key_from_hex(tenant.obfuscation_key_k1),
    )


def to_response(tenant: TenantModel) -> TenantResponse:
    return TenantResponse(
        id=public_id(tenant),
        identifier=tenant.identifier,
        name=tenant.name,
        db_provider=tenant.db_provider,
        uses_default_provider=not tenant.has_oidc_config,
        oidc_authority=tenant.oidc_authority,
        oidc_client_id=tenant.oidc_client_id,
        role_claim_name=tenant.role_claim_name,
        created_at=tenant.created_at,
    )


class TenantService:
    """Tenant management operations."""

    def __init__(
        self,
        settings: TenantGateSettings,
        directory: TenantDirectory,
        setup_tokens: SetupTokenIssuer,
        cache: DocumentCache,
    ):
        self.settings = settings
        self.directory = directory
        self.setup_tokens = setup_tokens
        self.cache = cache

    async def _resolve_oidc(self, body: TenantCreate) -> dict[str, Optional[str]]:
        """Collect the OIDC fields, fill them from discovery, and check completeness.

        The whole group is validated here, once, at registration.
        """
        oidc: dict[str, Optional[str]] = {}
        for name in _OIDC_FIELDS:
            value = getattr(body, name)
            oidc[name] = value.strip() if isinstance(value, str) and value.strip() else None

        address = oidc["oidc_metadata_address"]
        if address:
            if not oidc["oidc_client_id"]:
                raise ValidationError("oidc_client_id is required with oidc_metadata_address")
            # fails closed: an unreachable provider rejects the registration
            doc = await self.cache.get_discovery(address)
            oidc["oidc_authority"] = doc.issuer or oidc["oidc_authority"]
            oidc["oidc_authorization_endpoint"] = (
                doc.authorization_endpoint or oidc["oidc_authorization_endpoint"]
            )
            oidc["oidc_token_endpoint"] = doc.token_endpoint or oidc["oidc_token_endpoint"]
            oidc["oidc_jwks_uri"] = doc.jwks_uri or oidc["oidc_jwks_uri"]
            oidc["oidc_end_session_endpoint"] = (
                doc.end_session_endpoint or oidc["oidc_end_session_endpoint"]
            )

        present = [name for name in _CORE_OIDC_FIELDS if oidc[name]]
        if present and len(present) != len(_CORE_OIDC_FIELDS):
            missing = ", ".join(n for n in _CORE_OIDC_FIELDS if not oidc[n])
            raise ValidationError(f"Incomplete OIDC configuration, missing: {missing}")
        if present:
            missing = [n for n in _EXCHANGE_OIDC_FIELDS if not oidc[n]]
            if missing:
                raise ValidationError(
                    f"Incomplete OIDC configuration, missing: {', '.join(missing)}"
                )
        elif any(oidc[n] for n in _OIDC_FIELDS):
            raise ValidationError(
                "OIDC settings require oidc_authority, oidc_authorization_endpoint "
                "and oidc_client_id (or oidc_metadata_address and oidc_client_id)"
            )
        return oidc

    async def register(self, session: AsyncSession, body: TenantCreate) -> RegisteredTenant:
        """Create a tenant with sealed credentials and a fresh setup token.

        Raises:
            ValidationError: bad provider, unusable connection string, or partial
                OIDC configuration
            Conflict: identifier or name already registered
            FederationUnavailable: metadata address could not be resolved
        """
        db_provider = normalize_provider(body.db_provider)
        # rejected now rather than on first use of the tenant database
        build_database_url(db_provider, body.connection_string)

        if await self.directory.identifier_exists(session, body.identifier):
            raise Conflict(f"Tenant with identifier '{body.identifier}' already exists")
        if await self.directory.name_exists(session, body.name):
            raise Conflict(f"Tenant with name '{body.name}' already exists")

        oidc = await self._resolve_oidc(body)

        sealed = vault.seal_new_tenant(
            self.settings.master_key_bytes,
            body.connection_string,
            oidc.pop("oidc_client_secret"),
        )
        k0, k1 = obfuscation.new_key()

        tenant = TenantModel(
            identifier=body.identifier,
            name=body.name,
            db_provider=db_provider,
            tenant_encryption_key=sealed.tenant_encryption_key,
            connection_string=sealed.connection_string,
            oidc_client_secret=sealed.client_secret,
            role_claim_name=body.role_claim_name or None,
            obfuscation_key_k0=obfuscation.key_to_hex(k0),
            obfuscation_key_k1=obfuscation.key_to_hex(k1),
            **oidc,
        )
        session.add(tenant)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise Conflict(f"Tenant with identifier '{body.identifier}' already exists") from exc

        now = self.setup_tokens.now()
        token = await self.setup_tokens.issue(session, tenant.id, now=now)
        logger.info(
            "Tenant registered",
            extra={"tenant": tenant.identifier, "default_provider": not tenant.has_oidc_config},
        )
        return RegisteredTenant(
            tenant=tenant,
            setup_token=token,
            setup_token_expires_at=now + self.setup_tokens.ttl,
        )

    async def get(self, session: AsyncSession, identifier: str) -> TenantModel:
        tenant = await self.directory.get_by_identifier(session, identifier)
        if tenant is None:
            raise NotFound(f"Tenant '{identifier}' not found")
        return tenant

    async def list_tenants(
        self, session: AsyncSession, page: int = 1, page_size: int | None = None
    ) -> list[TenantModel]:
        return await self.directory.list_tenants(session, page=page, page_size=page_size)

    async def delete(self, session: AsyncSession, identifier: str, external_id: str) -> None:
        """Delete a tenant named by identifier and its external (masked) id.

        Setup tokens go with it (ON DELETE CASCADE).
        """
        tenant = await self.get(session, identifier)
        internal = obfuscation.deobfuscate(
            external_id,
            obfuscation.key_from_hex(tenant.obfuscation_key_k0),
            obfuscation.key_from_hex(tenant.obfuscation_key_k1),
        )
        if str(internal) != tenant.id:
            raise NotFound(f"Tenant '{identifier}' not found")
        await session.delete(tenant)
        await session.flush()
        logger.info("Tenant deleted", extra={"tenant": identifier})

    async def claim_setup_token(
        self, session: AsyncSession, identifier: str, token: str
    ) -> None:
        """Spend a tenant's setup token; it cannot be used again."""
        tenant = await self.get(session, identifier)
        await self.setup_tokens.consume(session, tenant.id, token)
        logger.info("Setup token claimed", extra={"tenant": identifier})

    async def database_url(self, session: AsyncSession, identifier: str) -> URL:
        """Async SQLAlchemy URL for the tenant's own database.

        The connection string is decrypted for this call only.
        """
        tenant = await self.get(session, identifier)
        return build_database_url(
            tenant.db_provider,
            vault.reveal_connection_string(self.settings.master_key_bytes, tenant),
        )
