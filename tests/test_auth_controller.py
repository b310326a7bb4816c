from __future__ import annotations

from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import CLIENT_ID, DISCOVERY, set_cookie_headers, set_cookie_value
from weblogin.auth.models import AuthUser
from weblogin.auth.session import CORRELATION_SALT, correlation_cookie_name, encode_session, unprotect


def _correlation_cookie_name(resp) -> str:
    state = parse_qs(urlparse(resp.headers["location"]).query)["state"][0]
    return correlation_cookie_name(state)


def _challenge_target(auth_config, resp) -> str:
    value = set_cookie_value(resp, _correlation_cookie_name(resp))
    assert value, "correlation cookie not set"
    data = unprotect(auth_config, CORRELATION_SALT, value, 600)
    assert data is not None
    return data["properties"]["redirect_uri"]


def test_login_challenges_identity_provider(client, auth_config) -> None:
    r = client.get("/Auth/Login", params={"redirectUrl": "/dashboard"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["cache-control"] == "no-store"

    location = urlparse(r.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == DISCOVERY["authorization_endpoint"]
    q = parse_qs(location.query)
    assert q["client_id"] == [CLIENT_ID]
    assert q["redirect_uri"] == ["https://testserver/signin-oidc"]
    assert q["code_challenge_method"] == ["S256"]

    data = unprotect(auth_config, CORRELATION_SALT, set_cookie_value(r, _correlation_cookie_name(r)), 600)
    assert data["state"] == q["state"][0]
    assert data["nonce"] == q["nonce"][0]
    assert data["properties"]["redirect_uri"] == "/dashboard"

    (cookie,) = set_cookie_headers(r, _correlation_cookie_name(r))
    assert "path=/signin-oidc" in cookie.lower()
    assert "httponly" in cookie.lower()
    assert "secure" in cookie.lower()


def test_login_route_matches_any_casing(client, auth_config) -> None:
    r = client.get("/auth/login", params={"redirectUrl": "/dashboard"}, follow_redirects=False)
    assert r.status_code == 302
    assert _challenge_target(auth_config, r) == "/dashboard"


def test_cookies_are_not_secure_over_plain_http(monkeypatch, auth_env, discovery) -> None:
    from fastapi.testclient import TestClient

    from weblogin.app import create_app

    monkeypatch.setenv("WEBLOGIN_HTTPS_REDIRECTION", "false")
    plain = TestClient(create_app(), base_url="http://testserver", raise_server_exceptions=False)
    r = plain.get("/Auth/Login", follow_redirects=False)
    assert r.status_code == 302
    (cookie,) = set_cookie_headers(r, _correlation_cookie_name(r))
    assert "secure" not in cookie.lower()


@pytest.mark.parametrize("target", ["/dashboard", "/reports?year=2024", "~/settings", "/"])
def test_login_keeps_local_redirect_target(client, auth_config, target: str) -> None:
    r = client.get("/Auth/Login", params={"redirectUrl": target}, follow_redirects=False)
    assert _challenge_target(auth_config, r) == target


@pytest.mark.parametrize(
    "target",
    [
        "https://evil.example/phish",
        "//evil.example/phish",
        "/\\evil.example",
        "javascript:alert(1)",
    ],
)
def test_login_replaces_external_redirect_with_home(client, auth_config, target: str) -> None:
    r = client.get("/Auth/Login", params={"redirectUrl": target}, follow_redirects=False)
    assert r.status_code == 302
    assert _challenge_target(auth_config, r) == "https://testserver/"


def test_login_defaults_to_root(client, auth_config) -> None:
    r = client.get("/Auth/Login", follow_redirects=False)
    assert _challenge_target(auth_config, r) == "/"


def test_logout_requires_authentication(client) -> None:
    with patch("weblogin.auth.oidc.build_end_session_url") as mock_end_session:
        r = client.get("/Auth/Logout", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/Auth/Login?redirectUrl=%2FAuth%2FLogout"
    assert set_cookie_headers(r, "weblogin_session") == []
    mock_end_session.assert_not_called()


def test_logout_with_invalid_session_is_treated_as_anonymous(client) -> None:
    r = client.get("/Auth/Logout", headers={"Cookie": "weblogin_session=forged"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"].startswith("/Auth/Login?")


def test_logout_signs_out_of_both_schemes(client, auth_config) -> None:
    session = encode_session(auth_config, AuthUser(provider="OpenIdConnect", subject="oid-1", name="Ada"))
    r = client.get("/Auth/Logout", headers={"Cookie": f"weblogin_session={session}"}, follow_redirects=False)
    assert r.status_code == 302

    location = urlparse(r.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == DISCOVERY["end_session_endpoint"]
    q = parse_qs(location.query)
    assert q["post_logout_redirect_uri"] == ["https://testserver/signout-callback-oidc"]
    assert q["client_id"] == [CLIENT_ID]
    assert q["state"][0]

    (cookie,) = set_cookie_headers(r, "weblogin_session")
    assert "max-age=0" in cookie.lower()
    assert "secure" in cookie.lower()


def test_logout_without_end_session_endpoint_stays_local(client, auth_config, discovery) -> None:
    discovery.return_value = {k: v for k, v in DISCOVERY.items() if k != "end_session_endpoint"}
    session = encode_session(auth_config, AuthUser(provider="OpenIdConnect", subject="oid-1"))
    r = client.get("/Auth/Logout", headers={"Cookie": f"weblogin_session={session}"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert "max-age=0" in set_cookie_headers(r, "weblogin_session")[0].lower()
