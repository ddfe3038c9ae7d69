# tests/test_auth.py
from types import SimpleNamespace

import pytest

from auth import AdminAuthenticator, client_identity, hash_password
from constants import DEFAULT_ADMIN_SECRET


def test_hash_password_is_sha256_hex():
    assert hash_password("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_bearer_check(admin_auth):
    assert admin_auth.check_bearer("Bearer test-admin-secret")
    assert not admin_auth.check_bearer("Bearer wrong")
    assert not admin_auth.check_bearer("test-admin-secret")
    assert not admin_auth.check_bearer(None)


def test_password_check(admin_auth):
    assert admin_auth.check_password("hunter2")
    assert not admin_auth.check_password("hunter3")
    assert not admin_auth.check_password(None)
    assert admin_auth.is_authorized(None, "hunter2")
    assert admin_auth.is_authorized("Bearer test-admin-secret", None)
    assert not admin_auth.is_authorized("Bearer nope", "nope")


def test_password_auth_disabled_without_hash():
    auth = AdminAuthenticator(secret="s", password_hash=None)
    assert not auth.check_password("")
    assert AdminAuthenticator(secret="s", password_hash=hash_password("x").upper()).check_password("x")


def test_default_secret_flag():
    assert AdminAuthenticator(secret=DEFAULT_ADMIN_SECRET).using_default_secret
    assert not AdminAuthenticator(secret="custom").using_default_secret


def fake_request(headers=None, host="192.168.1.5"):
    client = SimpleNamespace(host=host) if host else None
    return SimpleNamespace(headers=headers or {}, client=client)


@pytest.mark.parametrize("headers,host,expected", [
    ({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "10.0.0.1", "203.0.113.7"),
    ({"x-real-ip": "198.51.100.2"}, "10.0.0.1", "198.51.100.2"),
    ({"x-forwarded-for": " , "}, "10.0.0.1", "10.0.0.1"),
    ({}, "10.0.0.1", "10.0.0.1"),
    ({}, None, "unknown"),
])
def test_client_identity(headers, host, expected):
    assert client_identity(fake_request(headers, host)) == expected
