"""Pydantic schemas for tenant endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

IDENTIFIER_PATTERN = r"^[a-z0-9-]{3,50}$"


class TenantCreate(BaseModel):
    identifier: str = Field(..., min_length=3, max_length=50, pattern=IDENTIFIER_PATTERN)
    name: str = Field(..., min_length=1, max_length=255)
    db_provider: str = Field(..., pattern=r"(?i)^(postgres|postgresql|mysql)$")
    connection_string: str = Field(..., min_length=10, max_length=3000)
    role_claim_name: Optional[str] = Field(default=None, max_length=100)
    oidc_metadata_address: Optional[str] = Field(default=None, max_length=500)
    oidc_authority: Optional[str] = Field(default=None, max_length=500)
    oidc_authorization_endpoint: Optional[str] = Field(default=None, max_length=500)
    oidc_token_endpoint: Optional[str] = Field(default=None, max_length=500)
    oidc_jwks_uri: Optional[str] = Field(default=None, max_length=500)
    oidc_end_session_endpoint: Optional[str] = Field(default=None, max_length=500)
    oidc_client_id: Optional[str] = Field(default=None, max_length=500)
    oidc_client_secret: Optional[str] = Field(default=None, max_length=500)


class TenantRegisterResponse(BaseModel):
    """Includes the raw setup token, only returned once at registration time."""
    id: str
    identifier: str
    setup_token: str
    setup_token_expires_at: datetime


class TenantResponse(BaseModel):
    # obfuscated, the internal id is never exposed
    id: str
    identifier: str
    name: str
    db_provider: str
    uses_default_provider: bool
    oidc_authority: Optional[str] = None
    oidc_client_id: Optional[str] = None
    role_claim_name: Optional[str] = None
    created_at: datetime


class SetupTokenClaim(BaseModel):
    token: str = Field(..., min_length=1, max_length=200)


class SetupTokenClaimResponse(BaseModel):
    tenant: str
    claimed: bool = True
