from __future__ import annotations

from dataclasses import replace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from weblogin.app import create_app
from weblogin.auth.config import ConfigurationError, CookieOptions
from weblogin.auth.models import AuthUser
from weblogin.auth.session import encode_session
from weblogin.config import load_app_settings


def test_healthz(client) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_hsts_outside_development(client) -> None:
    r = client.get("/healthz")
    assert r.headers["strict-transport-security"] == "max-age=2592000"


def test_no_hsts_in_development(monkeypatch, auth_env, discovery) -> None:
    monkeypatch.setenv("WEBLOGIN_ENVIRONMENT", "Development")
    client = TestClient(create_app(), base_url="https://testserver")
    r = client.get("/healthz")
    assert r.status_code == 200
    assert "strict-transport-security" not in r.headers


def test_no_hsts_for_localhost(app) -> None:
    client = TestClient(app, base_url="https://localhost")
    assert "strict-transport-security" not in client.get("/healthz").headers


def test_http_is_redirected_to_https(app) -> None:
    client = TestClient(app, base_url="http://testserver")
    r = client.get("/Home/Privacy", follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "https://testserver/Home/Privacy"


def test_https_redirection_can_be_disabled(monkeypatch, auth_env, discovery) -> None:
    monkeypatch.setenv("WEBLOGIN_HTTPS_REDIRECTION", "false")
    client = TestClient(create_app(), base_url="http://testserver")
    assert client.get("/healthz").status_code == 200


def test_missing_client_id_is_fatal(monkeypatch, auth_env) -> None:
    monkeypatch.delenv("AZUREAD_CLIENT_ID")
    with pytest.raises(ConfigurationError, match="AZUREAD_CLIENT_ID"):
        create_app()


def test_home_page_for_anonymous_user(client) -> None:
    r = client.get("/")
    assert r.status_code == 200
    assert "You are not signed in." in r.text
    assert 'href="/Auth/Login?redirectUrl=/"' in r.text


def test_home_page_for_signed_in_user(client, auth_config) -> None:
    session = encode_session(auth_config, AuthUser(provider="OpenIdConnect", subject="oid-1", name="Grace Hopper"))
    r = client.get("/Home/Index", headers={"Cookie": f"weblogin_session={session}"})
    assert r.status_code == 200
    assert "Grace Hopper" in r.text
    assert 'href="/Auth/Logout"' in r.text


def test_privacy_page(client) -> None:
    r = client.get("/Home/Privacy")
    assert r.status_code == 200
    assert "Privacy Policy" in r.text


def test_conventional_routes_ignore_case_and_accept_id(client) -> None:
    assert "Privacy Policy" in client.get("/home/privacy").text
    assert "Privacy Policy" in client.get("/Home/Privacy/1").text

    r = client.get("/Auth/Logout/123", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/Auth/Login?redirectUrl=%2FAuth%2FLogout%2F123"


def test_unhandled_error_renders_error_page(client) -> None:
    with patch("weblogin.auth.oidc.build_authorize_url", side_effect=RuntimeError("boom")):
        r = client.get("/Auth/Login", headers={"x-request-id": "req-42"}, follow_redirects=False)
    assert r.status_code == 500
    assert "An error occurred while processing your request." in r.text
    assert "req-42" in r.text
    assert "boom" not in r.text


def test_unhandled_error_propagates_in_development(monkeypatch, auth_env, discovery) -> None:
    monkeypatch.setenv("WEBLOGIN_ENVIRONMENT", "Development")
    client = TestClient(create_app(), base_url="https://testserver")
    with patch("weblogin.auth.oidc.build_authorize_url", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError, match="boom"):
            client.get("/Auth/Login")


def test_static_files_and_unknown_paths(client) -> None:
    css = client.get("/css/site.css")
    assert css.status_code == 200
    assert "text/css" in css.headers["content-type"]
    assert client.get("/no/such/page").status_code == 404


def test_custom_cookie_options(auth_env, discovery, auth_config) -> None:
    options = CookieOptions(login_path="/Auth/Login", logout_path="/Auth/Logout", return_url_parameter="next")
    client = TestClient(
        create_app(load_app_settings(), auth_config, cookie_options=options), base_url="https://testserver"
    )
    r = client.get("/Auth/Logout", follow_redirects=False)
    assert r.headers["location"] == "/Auth/Login?next=%2FAuth%2FLogout"


def test_public_base_url_drives_callback(auth_env, discovery, auth_config) -> None:
    cfg = replace(auth_config, public_base_url="https://app.example/")
    client = TestClient(create_app(load_app_settings(), cfg), base_url="https://testserver")
    r = client.get("/Auth/Login", follow_redirects=False)
    assert "redirect_uri=https%3A%2F%2Fapp.example%2Fsignin-oidc" in r.headers["location"]
