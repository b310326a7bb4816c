"""
Signed cookies.

Three payloads share one secret (`AUTH_SESSION_SECRET`) and differ by salt, so
a value signed for one purpose never verifies for another:

- the session (the signed-in `AuthUser`, no tokens)
- the OIDC correlation data for one sign-in round trip
- the sign-out state echoed back by the provider
"""

from __future__ import annotations

import hashlib
from dataclasses import asdict
from typing import Any, Dict, Optional

from itsdangerous import BadData, URLSafeTimedSerializer

from weblogin.auth.config import AuthConfig
from weblogin.auth.models import AuthUser

SESSION_SALT = "weblogin-session-v1"
CORRELATION_SALT = "weblogin-oidc-correlation-v1"
SIGNOUT_STATE_SALT = "weblogin-oidc-signout-v1"

# One cookie per pending sign-in: `<prefix>.<digest of state>`.
CORRELATION_COOKIE = "weblogin_oidc_correlation"

# The provider round trip must complete within this window.
CORRELATION_TTL_SECONDS = 10 * 60

_USER_FIELDS = ("subject", "email", "name", "username")


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` cookies are only accepted over HTTPS.
    return "__Host-weblogin_session" if cfg.cookie_secure is True else "weblogin_session"


def correlation_cookie_name(state: str) -> str:
    digest = hashlib.sha256(state.encode("utf-8")).hexdigest()[:16]
    return f"{CORRELATION_COOKIE}.{digest}"


def cookie_secure(cfg: AuthConfig, scheme: str) -> bool:
    """Configured Secure flag, or the request scheme when unset."""
    if cfg.cookie_secure is not None:
        return cfg.cookie_secure
    return scheme == "https"


def _serializer(cfg: AuthConfig, salt: str) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=salt)


def protect(cfg: AuthConfig, salt: str, payload: Dict[str, Any]) -> str:
    """Sign a small JSON payload."""
    s = _serializer(cfg, salt)
    if s is None:
        raise ValueError("Session signing is not configured (AUTH_SESSION_SECRET)")
    return s.dumps(payload)


def unprotect(cfg: AuthConfig, salt: str, value: str | None, max_age: int) -> Optional[Dict[str, Any]]:
    """Verify and load a payload from `protect`; None if absent, forged, expired or not an object."""
    s = _serializer(cfg, salt) if value else None
    if s is None:
        return None
    try:
        data = s.loads(value, max_age=max_age)
    except BadData:
        return None
    return data if isinstance(data, dict) else None


def encode_session(cfg: AuthConfig, user: AuthUser) -> Optional[str]:
    if _serializer(cfg, SESSION_SALT) is None:
        return None
    return protect(cfg, SESSION_SALT, {k: v for k, v in asdict(user).items() if v})


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[AuthUser]:
    data = unprotect(cfg, SESSION_SALT, value, cfg.session_ttl_seconds)
    if data is None:
        return None
    provider = str(data.get("provider") or "").strip()
    if not provider:
        return None
    fields = {k: str(data[k]) for k in _USER_FIELDS if data.get(k)}
    return AuthUser(provider=provider, **fields)


def _cookie_kwargs(*, key: str, value: str, max_age: int, path: str, secure: bool) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "path": path,
        "httponly": True,
        "secure": secure,
        "samesite": "lax",
    }


def session_cookie_kwargs(cfg: AuthConfig, value: str, *, secure: bool, max_age: Optional[int] = None) -> dict:
    return _cookie_kwargs(
        key=session_cookie_name(cfg),
        value=value,
        max_age=cfg.session_ttl_seconds if max_age is None else max_age,
        path="/",
        secure=secure,
    )


def clear_session_cookie_kwargs(cfg: AuthConfig, *, secure: bool) -> dict:
    return session_cookie_kwargs(cfg, "", secure=secure, max_age=0)


def correlation_cookie_kwargs(
    cfg: AuthConfig,
    state: str,
    value: str,
    *,
    secure: bool,
    max_age: int = CORRELATION_TTL_SECONDS,
) -> dict:
    # Only sent back to the callback endpoint.
    return _cookie_kwargs(
        key=correlation_cookie_name(state),
        value=value,
        max_age=max_age,
        path=cfg.callback_path,
        secure=secure,
    )
