"""
Envelope encryption of tenant credentials.

Stage 1: the tenant's own AES key is sealed under the master key and stored
on the tenant record (as the sealed base64 text of the key).
Stage 2: the connection string and OIDC client secret are sealed under the
tenant key.

Compromising one tenant key exposes only that tenant; the catalog holds
ciphertext only. Functions here are pure: no I/O, no caching.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from tenantgate.common.exceptions import (
    AuthenticationFailure,
    CredentialUnavailable,
    InvalidKey,
    MissingKeyMaterial,
)
from tenantgate.crypto import box

logger = logging.getLogger(__name__)


class SealedTenant(Protocol):
    identifier: Optional[str]
    tenant_encryption_key: Optional[str]
    connection_string: Optional[str]
    oidc_client_secret: Optional[str]


@dataclass(frozen=True)
class SealedCredentials:
    """Ciphertext produced for a new tenant."""

    tenant_encryption_key: str
    connection_string: str
    client_secret: Optional[str] = None


def _open_field(key: bytes, payload: str, field: str, tenant: Optional[str]) -> bytes:
    try:
        return box.open(key, payload)
    except (AuthenticationFailure, InvalidKey) as exc:
        logger.error(
            "Credential decryption failed",
            extra={"tenant": tenant, "field": field, "error_code": exc.code},
        )
        raise CredentialUnavailable(field, tenant) from exc


def unwrap_tenant_key(master_key: bytes, tenant: SealedTenant) -> bytes:
    """Open the tenant's key with the master key."""
    if not tenant.tenant_encryption_key:
        raise MissingKeyMaterial(f"Tenant '{tenant.identifier}' has no encryption key")
    encoded = _open_field(
        master_key, tenant.tenant_encryption_key, "tenant_key", tenant.identifier
    )
    try:
        return box.decode_key(encoded.decode("ascii"))
    except (InvalidKey, UnicodeDecodeError) as exc:
        raise CredentialUnavailable("tenant_key", tenant.identifier) from exc


def reveal_connection_string(master_key: bytes, tenant: SealedTenant) -> str:
    tenant_key = unwrap_tenant_key(master_key, tenant)
    if not tenant.connection_string:
        raise MissingKeyMaterial(
            f"Tenant '{tenant.identifier}' has no connection string"
        )
    plaintext = _open_field(
        tenant_key, tenant.connection_string, "connection_string", tenant.identifier
    )
    return plaintext.decode("utf-8")


def reveal_client_secret(master_key: bytes, tenant: SealedTenant) -> Optional[str]:
    """Return the tenant's OIDC client secret, or None when none is configured."""
    if not tenant.oidc_client_secret:
        return None
    tenant_key = unwrap_tenant_key(master_key, tenant)
    plaintext = _open_field(
        tenant_key, tenant.oidc_client_secret, "client_secret", tenant.identifier
    )
    return plaintext.decode("utf-8")


def seal_new_tenant(
    master_key: bytes,
    connection_string: str,
    client_secret: Optional[str] = None,
) -> SealedCredentials:
    """
    Generate a fresh tenant key and seal a new tenant's credentials.

    Args:
        master_key: 32-byte master key
        connection_string: plaintext tenant database connection string
        client_secret: optional plaintext OIDC client secret

    Returns:
        SealedCredentials holding only ciphertext
    """
    tenant_key = box.generate_key()
    wrapped = box.seal(master_key, box.encode_key(tenant_key).encode("ascii"))
    sealed_conn = box.seal(tenant_key, connection_string.encode("utf-8"))
    sealed_secret = (
        box.seal(tenant_key, client_secret.encode("utf-8")) if client_secret else None
    )
    del tenant_key
    return SealedCredentials(
        tenant_encryption_key=wrapped,
        connection_string=sealed_conn,
        client_secret=sealed_secret,
    )
