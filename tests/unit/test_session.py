"""Tests for signed session and pending-login cookies."""

import pytest

from tenantgate.federation.session import (
    create_login_cookie,
    create_session_cookie,
    verify_login_cookie,
    verify_session_cookie,
)


@pytest.fixture(autouse=True)
def configured(app):
    """Cookies are signed with the configured secret key."""
    return app


class TestSessionCookie:
    def test_round_trip(self):
        identity = {"sub": "u1", "tenant": "acme", "roles": ["admin"]}
        assert verify_session_cookie(create_session_cookie(identity)) == identity

    def test_garbage(self):
        assert verify_session_cookie("garbage-value") is None

    def test_tampered(self):
        cookie = create_session_cookie({"sub": "u1", "tenant": "acme"})
        tampered = cookie[:-2] + ("AA" if not cookie.endswith("AA") else "BB")
        assert verify_session_cookie(tampered) is None

    def test_login_cookie_not_accepted_as_session(self):
        cookie = create_login_cookie({"tenant": "acme", "state": "s"})
        assert verify_session_cookie(cookie) is None
        assert verify_login_cookie(cookie) == {"tenant": "acme", "state": "s"}
