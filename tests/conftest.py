"""
Pytest config.

Local imports like `import weblogin` rely on the repo root being on sys.path. When
invoking a global `pytest` entrypoint without an editable install that doesn't
happen reliably during collection, so we pin the behavior here.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

TENANT_ID = "11111111-2222-3333-4444-555555555555"
CLIENT_ID = "test-client-id"
AUTHORITY = f"https://login.microsoftonline.com/{TENANT_ID}/v2.0"

DISCOVERY = {
    "issuer": AUTHORITY,
    "authorization_endpoint": f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/authorize",
    "token_endpoint": f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token",
    "jwks_uri": f"https://login.microsoftonline.com/{TENANT_ID}/discovery/v2.0/keys",
    "end_session_endpoint": f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/logout",
}


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


def set_cookie_value(resp, name: str) -> Optional[str]:
    """Return the value of a cookie from the Set-Cookie headers (None if absent)."""
    for header in resp.headers.get_list("set-cookie"):
        key, _, rest = header.partition("=")
        if key.strip() == name:
            return rest.split(";", 1)[0]
    return None


def set_cookie_headers(resp, name: str) -> List[str]:
    return [h for h in resp.headers.get_list("set-cookie") if h.partition("=")[0].strip() == name]


@pytest.fixture(autouse=True)
def _clear_config_caches():
    from weblogin.auth.config import load_auth_config
    from weblogin.auth.oidc import clear_caches
    from weblogin.config import load_app_settings

    load_auth_config.cache_clear()
    load_app_settings.cache_clear()
    clear_caches()
    yield
    load_auth_config.cache_clear()
    load_app_settings.cache_clear()
    clear_caches()


@pytest.fixture
def auth_env(monkeypatch: pytest.MonkeyPatch) -> Dict[str, str]:
    env = {
        "AZUREAD_TENANT_ID": TENANT_ID,
        "AZUREAD_CLIENT_ID": CLIENT_ID,
        "AZUREAD_CLIENT_SECRET": "test-client-secret",
        "AUTH_SESSION_SECRET": "test-secret-key-for-testing-purposes-only",
        "WEBLOGIN_ENVIRONMENT": "Production",
    }
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    return env


@pytest.fixture
def discovery():
    """Serve a canned discovery document instead of calling the provider."""
    with patch("weblogin.auth.oidc._get_discovery") as mock_discovery:
        mock_discovery.return_value = dict(DISCOVERY)
        yield mock_discovery


@pytest.fixture
def auth_config(auth_env):
    from weblogin.auth.config import load_auth_config

    return load_auth_config()


@pytest.fixture
def app(auth_env, discovery):
    from weblogin.app import create_app

    return create_app()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app, base_url="https://testserver", raise_server_exceptions=False)
