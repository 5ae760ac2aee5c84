"""Tenant database connection options.

Builds an SQLAlchemy URL for a tenant's own database from its provider and
its (decrypted) connection string. Two input forms are accepted:

- URL form: ``postgresql://user:pw@host:5432/db``
- key/value form: ``Host=db;Port=5432;Database=app;Username=u;Password=p``
"""

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from tenantgate.common.exceptions import ValidationError

PROVIDERS = ("postgres", "mysql")

DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
}

_BACKENDS = {
    "postgres": "postgresql",
    "mysql": "mysql",
}

_KEY_ALIASES = {
    "host": "host",
    "server": "host",
    "data source": "host",
    "port": "port",
    "database": "database",
    "initial catalog": "database",
    "username": "username",
    "user": "username",
    "user id": "username",
    "uid": "username",
    "password": "password",
    "pwd": "password",
}


def normalize_provider(value: str | None) -> str:
    """Lower-case a provider name; ``postgresql`` becomes ``postgres``."""
    provider = (value or "postgres").strip().lower()
    if provider == "postgresql":
        provider = "postgres"
    if provider not in PROVIDERS:
        raise ValidationError("DbProvider must be 'postgres', 'postgresql', or 'mysql'")
    return provider


def _parse_key_value(connection_string: str) -> tuple[dict[str, str], dict[str, str]]:
    parts: dict[str, str] = {}
    query: dict[str, str] = {}
    for item in connection_string.split(";"):
        if not item.strip():
            continue
        if "=" not in item:
            raise ValidationError("Connection string entries must be 'Key=Value'")
        key, value = item.split("=", 1)
        name = _KEY_ALIASES.get(key.strip().lower())
        if name is None:
            query[key.strip()] = value.strip()
        else:
            parts[name] = value.strip()
    if "host" not in parts:
        raise ValidationError("Connection string must name a host")
    return parts, query


def build_database_url(provider: str, connection_string: str) -> URL:
    """
    Build the async SQLAlchemy URL for a tenant database.

    Args:
        provider: ``postgres`` or ``mysql`` (``postgresql`` accepted)
        connection_string: decrypted connection string

    Returns:
        sqlalchemy.engine.URL using the async driver for the provider
    """
    provider = normalize_provider(provider)
    driver = DRIVERS[provider]

    if "://" in connection_string:
        try:
            url = make_url(connection_string)
        except ArgumentError as exc:
            raise ValidationError("Connection string is not a valid database URL") from exc
        if url.get_backend_name() != _BACKENDS[provider]:
            raise ValidationError(
                f"Connection string backend '{url.get_backend_name()}' does not match provider '{provider}'"
            )
        return url.set(drivername=driver)

    parts, query = _parse_key_value(connection_string)
    port = parts.get("port")
    try:
        port_number = int(port) if port else None
    except ValueError as exc:
        raise ValidationError("Connection string port must be a number") from exc
    return URL.create(
        driver,
        username=parts.get("username"),
        password=parts.get("password"),
        host=parts["host"],
        port=port_number,
        database=parts.get("database"),
        query=query,
    )
