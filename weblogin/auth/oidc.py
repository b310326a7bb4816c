"""
OpenID Connect relying-party client.

The protocol requests (authorization request with PKCE, code redemption) go
through authlib's requests-based `OAuth2Session`. ID tokens are verified by
PyJWT, with signing keys resolved by `PyJWKClient`, which refetches the key set
when it meets an unknown `kid` (key rotation).

Everything provider specific comes from the discovery document, cached per URL
for an hour.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import jwt  # PyJWT
import requests
from authlib.common.urls import add_params_to_uri
from authlib.integrations.base_client import OAuthError
from authlib.integrations.requests_client import OAuth2Session

from weblogin.auth.config import AuthConfig

_CACHE_TTL_SECONDS = 3600
_HTTP_TIMEOUT_SECONDS = 10

_TENANT_PLACEHOLDER = "{tenantid}"

_discovery_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
_jwk_clients: Dict[str, jwt.PyJWKClient] = {}


def _get_discovery(discovery_url: str) -> Dict[str, Any]:
    """Provider metadata (`.well-known/openid-configuration`)."""
    fetched_at, doc = _discovery_cache.get(discovery_url, (0.0, None))
    now = time.time()
    if doc is not None and now - fetched_at < _CACHE_TTL_SECONDS:
        return doc
    resp = requests.get(discovery_url, timeout=_HTTP_TIMEOUT_SECONDS)
    resp.raise_for_status()
    body = resp.json()
    if not isinstance(body, dict):
        raise ValueError("Invalid OIDC discovery document")
    _discovery_cache[discovery_url] = (now, body)
    return body


def _jwk_client(jwks_uri: str) -> jwt.PyJWKClient:
    client = _jwk_clients.get(jwks_uri)
    if client is None:
        client = jwt.PyJWKClient(jwks_uri, cache_jwk_set=True, lifespan=_CACHE_TTL_SECONDS)
        _jwk_clients[jwks_uri] = client
    return client


def clear_caches() -> None:
    _discovery_cache.clear()
    _jwk_clients.clear()


def _discovery(cfg: AuthConfig) -> Dict[str, Any]:
    if not cfg.discovery_url:
        raise ValueError("OIDC discovery URL not configured")
    return _get_discovery(cfg.discovery_url)


def _require_endpoint(cfg: AuthConfig, name: str) -> str:
    value = str(_discovery(cfg).get(name) or "")
    if not value:
        raise ValueError(f"OIDC discovery missing {name}")
    return value


def _require_client_id(cfg: AuthConfig) -> str:
    if not cfg.client_id:
        raise ValueError("OIDC client ID not configured")
    return cfg.client_id


def _session(cfg: AuthConfig, *, redirect_uri: str) -> OAuth2Session:
    # Confidential clients post their secret; public clients rely on PKCE alone.
    return OAuth2Session(
        client_id=_require_client_id(cfg),
        client_secret=cfg.client_secret,
        token_endpoint_auth_method="client_secret_post" if cfg.client_secret else "none",
        scope=" ".join(cfg.scopes),
        redirect_uri=redirect_uri,
        code_challenge_method="S256",
    )


def build_authorize_url(
    cfg: AuthConfig,
    *,
    redirect_uri: str,
    nonce: str,
    code_verifier: str,
    state: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Authorization code request with PKCE; the code comes back on the query
    string. Returns `(url, state)`; authlib generates the state when none is
    given.
    """
    extra: Dict[str, str] = {"nonce": nonce, "response_mode": "query"}
    if cfg.domain:
        # Account chooser hint only.
        extra["domain_hint"] = cfg.domain

    endpoint = _require_endpoint(cfg, "authorization_endpoint")
    with _session(cfg, redirect_uri=redirect_uri) as client:
        return client.create_authorization_url(endpoint, state=state, code_verifier=code_verifier, **extra)


def build_end_session_url(
    cfg: AuthConfig,
    *,
    post_logout_redirect_uri: str,
    state: str,
) -> Optional[str]:
    """
    RP-initiated logout URL, or None when the provider does not publish an
    `end_session_endpoint`.
    """
    endpoint = str(_discovery(cfg).get("end_session_endpoint") or "")
    if not endpoint:
        return None

    params = [("post_logout_redirect_uri", post_logout_redirect_uri), ("state", state)]
    if cfg.client_id:
        params.append(("client_id", cfg.client_id))
    return add_params_to_uri(endpoint, params)


def exchange_code_for_tokens(
    cfg: AuthConfig,
    *,
    redirect_uri: str,
    code: str,
    code_verifier: str,
) -> Dict[str, Any]:
    """
    Redeem an authorization code at the token endpoint.

    OAuth error descriptions from the provider are not surfaced; network
    failures propagate as `requests` exceptions.
    """
    endpoint = _require_endpoint(cfg, "token_endpoint")
    with _session(cfg, redirect_uri=redirect_uri) as client:
        try:
            tokens = client.fetch_token(
                endpoint,
                grant_type="authorization_code",
                code=code,
                code_verifier=code_verifier,
                timeout=_HTTP_TIMEOUT_SECONDS,
            )
        except OAuthError as e:
            raise ValueError(f"Token exchange failed ({e.error or 'error'})") from e
    return dict(tokens)


def _expected_issuer(issuer: str, id_token: str) -> str:
    """Resolve the `{tenantid}` template multi-tenant Entra ID authorities publish."""
    if _TENANT_PLACEHOLDER not in issuer:
        return issuer
    unverified = jwt.decode(id_token, options={"verify_signature": False})
    tid = str(unverified.get("tid") or "")
    return issuer.replace(_TENANT_PLACEHOLDER, tid) if tid else issuer


def validate_id_token(
    cfg: AuthConfig,
    *,
    id_token: str,
    expected_nonce: str,
) -> Dict[str, Any]:
    """
    Verify an ID token and return its claims.

    PyJWT checks the RS256 signature, `aud`, `iss`, `exp` and `iat`; the nonce
    must match the one sent with the authorization request.
    """
    client_id = _require_client_id(cfg)
    disc = _discovery(cfg)
    issuer = str(disc.get("issuer") or "")
    jwks_uri = str(disc.get("jwks_uri") or "")
    if not issuer or not jwks_uri:
        raise ValueError("OIDC discovery missing issuer/jwks_uri")

    signing_key = _jwk_client(jwks_uri).get_signing_key_from_jwt(id_token)
    claims = jwt.decode(
        id_token,
        key=signing_key.key,
        algorithms=["RS256"],
        audience=client_id,
        issuer=_expected_issuer(issuer, id_token),
        options={"require": ["exp", "iat", "iss", "aud"]},
    )
    if not expected_nonce or str(claims.get("nonce") or "") != expected_nonce:
        raise ValueError("Nonce mismatch")
    return claims
