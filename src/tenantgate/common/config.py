"""TenantGate configuration via pydantic-settings."""

import base64
import binascii
import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "super_admin_key": "insecure-super-admin-key-change-me",
    "default_client_secret": "insecure-client-secret-change-me",
}


class TenantGateSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TENANTGATE_")

    environment: str = "development"
    log_level: str = "INFO"
    secret_key: str = "insecure-dev-key-change-me"

    # Base64 of the 32-byte master key wrapping every tenant key.
    # Left empty in development, a throwaway key is generated per process.
    master_key: str = ""

    # Database (tenant catalog)
    db_url: str = "sqlite+aiosqlite:///./data/tenantgate.db"

    # API
    api_title: str = "TenantGate"
    api_version: str = "0.1.0"
    super_admin_key: str = "insecure-super-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Default identity provider, used when a tenant has no complete OIDC config
    default_issuer: str = "https://accounts.google.com"
    default_authorization_endpoint: str = "https://accounts.google.com/o/oauth2/v2/auth"
    default_token_endpoint: str = "https://oauth2.googleapis.com/token"
    default_jwks_uri: str = "https://www.googleapis.com/oauth2/v3/certs"
    default_end_session_endpoint: str = ""
    default_client_id: str = "tenantgate-default-client"
    default_client_secret: str = "insecure-client-secret-change-me"

    # Federation networking
    discovery_ttl: int = 3600  # seconds
    http_timeout: float = 10.0  # seconds
    discovery_max_retries: int = 3
    discovery_min_refresh_interval: int = 60  # seconds between forced refreshes
    retry_backoff_base: float = 0.5

    # Sessions
    session_max_age: int = 8 * 3600
    login_max_age: int = 600
    cookie_secure: bool = True

    # Setup tokens
    setup_token_ttl: int = 3600

    # Registration rate limiting
    register_rate_limit: int = 10
    register_rate_window: int = 3600
    register_rate_max_clients: int = 10000

    @property
    def master_key_bytes(self) -> bytes:
        """Decode the configured master key.

        In development with no key configured, a per-process key is generated
        so the service can start; anything sealed with it is lost on restart.
        """
        if not self.master_key:
            if self.environment != "development":
                raise RuntimeError(
                    "TENANTGATE_MASTER_KEY is not configured. "
                    "Generate one with: tenantgate generate-key"
                )
            return _ephemeral_master_key()
        try:
            key = base64.b64decode(self.master_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("TENANTGATE_MASTER_KEY must be base64-encoded") from exc
        if len(key) != 32:
            raise ValueError(
                f"TENANTGATE_MASTER_KEY must decode to 32 bytes, got {len(key)}"
            )
        return key

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development":
            if insecure_fields:
                env_vars = ", ".join(f"TENANTGATE_{f.upper()}" for f in insecure_fields)
                raise RuntimeError(
                    f"Insecure default values detected in '{self.environment}' environment. "
                    f"Set these environment variables to secure values: {env_vars}. "
                    "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
                )
            # fail at startup rather than on the first login
            self.master_key_bytes

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys, set TENANTGATE_SECRET_KEY, "
                "TENANTGATE_SUPER_ADMIN_KEY, TENANTGATE_DEFAULT_CLIENT_SECRET for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def _ephemeral_master_key() -> bytes:
    from tenantgate.crypto.box import generate_key

    warnings.warn(
        "No TENANTGATE_MASTER_KEY configured, using a temporary key for this process",
        UserWarning,
        stacklevel=3,
    )
    return generate_key()


@lru_cache
def get_settings() -> TenantGateSettings:
    settings = TenantGateSettings()
    settings.validate_for_production()
    return settings
