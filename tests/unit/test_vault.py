"""Tests for crypto.vault — envelope encryption of tenant credentials."""

from types import SimpleNamespace

import pytest

from tenantgate.common.exceptions import CredentialUnavailable, MissingKeyMaterial
from tenantgate.crypto import box, vault


MASTER = bytes(range(32))
OTHER_MASTER = bytes(range(100, 132))
CONN = "Host=db.internal;Database=acme;Username=acme;Password=s3cret"


def make_tenant(connection_string=CONN, client_secret=None, master=MASTER):
    sealed = vault.seal_new_tenant(master, connection_string, client_secret)
    return SimpleNamespace(
        identifier="acme",
        tenant_encryption_key=sealed.tenant_encryption_key,
        connection_string=sealed.connection_string,
        oidc_client_secret=sealed.client_secret,
    )


class TestSealNewTenant:
    def test_only_ciphertext(self):
        sealed = vault.seal_new_tenant(MASTER, CONN, "client-secret")
        assert CONN not in sealed.connection_string
        assert "client-secret" not in sealed.client_secret
        for value in (sealed.tenant_encryption_key, sealed.connection_string, sealed.client_secret):
            assert value.count(":") == 2

    def test_no_secret(self):
        sealed = vault.seal_new_tenant(MASTER, CONN)
        assert sealed.client_secret is None

    def test_fresh_tenant_key_each_time(self):
        a = make_tenant()
        b = make_tenant()
        assert vault.unwrap_tenant_key(MASTER, a) != vault.unwrap_tenant_key(MASTER, b)


class TestReveal:
    def test_connection_string_round_trip(self):
        tenant = make_tenant()
        assert vault.reveal_connection_string(MASTER, tenant) == CONN

    def test_client_secret_round_trip(self):
        tenant = make_tenant(client_secret="top-secret")
        assert vault.reveal_client_secret(MASTER, tenant) == "top-secret"

    def test_absent_client_secret(self):
        tenant = make_tenant()
        assert vault.reveal_client_secret(MASTER, tenant) is None

    def test_tenant_key_is_32_bytes(self):
        assert len(vault.unwrap_tenant_key(MASTER, make_tenant())) == 32

    def test_wrong_master_key(self):
        tenant = make_tenant()
        with pytest.raises(CredentialUnavailable) as exc_info:
            vault.reveal_connection_string(OTHER_MASTER, tenant)
        assert exc_info.value.field == "tenant_key"
        assert exc_info.value.tenant == "acme"
        assert CONN not in str(exc_info.value)

    def test_corrupted_connection_string(self):
        tenant = make_tenant()
        nonce, ciphertext, tag = tenant.connection_string.split(":")
        tenant.connection_string = f"{nonce}:{ciphertext}:{box.seal(MASTER, b'x').split(':')[2]}"
        with pytest.raises(CredentialUnavailable) as exc_info:
            vault.reveal_connection_string(MASTER, tenant)
        assert exc_info.value.field == "connection_string"

    def test_secret_swapped_between_tenants(self):
        a = make_tenant(client_secret="a-secret")
        b = make_tenant(client_secret="b-secret")
        a.oidc_client_secret = b.oidc_client_secret
        with pytest.raises(CredentialUnavailable) as exc_info:
            vault.reveal_client_secret(MASTER, a)
        assert exc_info.value.field == "client_secret"

    def test_missing_tenant_key(self):
        tenant = make_tenant()
        tenant.tenant_encryption_key = None
        with pytest.raises(MissingKeyMaterial):
            vault.reveal_connection_string(MASTER, tenant)

    def test_status_code(self):
        assert CredentialUnavailable("connection_string").status_code == 500
