"""Typer CLI for TenantGate."""

import typer
from rich.console import Console

app = typer.Typer(name="tenantgate", help="TenantGate: multi-tenant identity broker")
console = Console()


def _tenant_key(k0: str, k1: str):
    from tenantgate.common.exceptions import InvalidToken
    from tenantgate.crypto.obfuscation import key_from_hex

    try:
        return key_from_hex(k0), key_from_hex(k1)
    except InvalidToken as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind host (defaults to TENANTGATE_HOST)"),
    port: int = typer.Option(None, help="Bind port (defaults to TENANTGATE_PORT)"),
):
    """Start the TenantGate API server."""
    import uvicorn
    from tenantgate.app import create_app
    from tenantgate.common.config import get_settings
    from tenantgate.common.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level)
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting TenantGate on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("generate-key")
def generate_key():
    """Generate a base64 master key for TENANTGATE_MASTER_KEY."""
    from tenantgate.crypto.box import encode_key, generate_key as new_key

    console.print(encode_key(new_key()))


@app.command()
def obfuscate(
    tenant_id: str = typer.Argument(..., help="Internal tenant UUID"),
    k0: str = typer.Option(..., help="First key half (16 hex digits)"),
    k1: str = typer.Option(..., help="Second key half (16 hex digits)"),
):
    """Mask a tenant UUID with the tenant's obfuscation key."""
    from tenantgate.common.exceptions import InvalidToken
    from tenantgate.crypto.obfuscation import obfuscate as mask

    key0, key1 = _tenant_key(k0, k1)
    try:
        console.print(mask(tenant_id, key0, key1))
    except InvalidToken as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)


@app.command()
def deobfuscate(
    token: str = typer.Argument(..., help="Masked tenant id"),
    k0: str = typer.Option(..., help="First key half (16 hex digits)"),
    k1: str = typer.Option(..., help="Second key half (16 hex digits)"),
):
    """Recover the internal tenant UUID from a masked id."""
    from tenantgate.common.exceptions import InvalidToken
    from tenantgate.crypto.obfuscation import deobfuscate as unmask

    key0, key1 = _tenant_key(k0, k1)
    try:
        console.print(str(unmask(token, key0, key1)))
    except InvalidToken as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check TenantGate server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
