"""TenantGate: multi-tenant identity broker with sealed tenant credentials."""

from tenantgate.crypto.box import generate_key
from tenantgate.crypto.obfuscation import deobfuscate, obfuscate
from tenantgate.crypto.vault import (
    reveal_client_secret,
    reveal_connection_string,
    seal_new_tenant,
    unwrap_tenant_key,
)

__all__ = [
    "generate_key",
    "obfuscate",
    "deobfuscate",
    "seal_new_tenant",
    "unwrap_tenant_key",
    "reveal_connection_string",
    "reveal_client_secret",
]
__version__ = "0.1.0"
