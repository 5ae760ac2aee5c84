"""Dependency injection singletons for TenantGate."""

import httpx

from tenantgate.common.config import get_settings
from tenantgate.common.database import DatabaseManager
from tenantgate.federation.broker import FederationBroker
from tenantgate.federation.discovery import DocumentCache
from tenantgate.tenants.directory import TenantDirectory
from tenantgate.tenants.service import TenantService
from tenantgate.tenants.setup_tokens import SetupTokenIssuer

_db: DatabaseManager | None = None
_http: httpx.AsyncClient | None = None
_cache: DocumentCache | None = None
_directory: TenantDirectory | None = None
_setup_tokens: SetupTokenIssuer | None = None
_tenants: TenantService | None = None
_broker: FederationBroker | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_http_client() -> httpx.AsyncClient:
    """Lazy-init the shared httpx.AsyncClient used for provider calls."""
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=get_settings().http_timeout)
    return _http


def set_http_client(client: httpx.AsyncClient) -> None:
    """Swap the provider HTTP client (tests plug in an httpx.MockTransport)."""
    global _http
    _http = client


def get_document_cache() -> DocumentCache:
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = DocumentCache(
            get_http_client,
            ttl=settings.discovery_ttl,
            timeout=settings.http_timeout,
            max_retries=settings.discovery_max_retries,
            backoff_base=settings.retry_backoff_base,
            min_refresh_interval=settings.discovery_min_refresh_interval,
        )
    return _cache


def get_directory() -> TenantDirectory:
    global _directory
    if _directory is None:
        _directory = TenantDirectory()
    return _directory


def get_setup_token_issuer() -> SetupTokenIssuer:
    global _setup_tokens
    if _setup_tokens is None:
        _setup_tokens = SetupTokenIssuer(get_settings().setup_token_ttl)
    return _setup_tokens


def get_tenant_service() -> TenantService:
    global _tenants
    if _tenants is None:
        _tenants = TenantService(
            get_settings(),
            get_directory(),
            get_setup_token_issuer(),
            get_document_cache(),
        )
    return _tenants


def get_broker() -> FederationBroker:
    global _broker
    if _broker is None:
        _broker = FederationBroker(
            get_settings(),
            get_directory(),
            get_document_cache(),
            get_http_client,
        )
    return _broker


async def close_http_client() -> None:
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _http, _cache, _directory, _setup_tokens, _tenants, _broker
    _db = None
    _http = None
    _cache = None
    _directory = None
    _setup_tokens = None
    _tenants = None
    _broker = None
