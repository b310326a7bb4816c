from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

OPENID_CONNECT_SCHEME = "OpenIdConnect"
COOKIE_SCHEME = "Cookies"

DEFAULT_SECTION = "AzureAd"
DEFAULT_INSTANCE = "https://login.microsoftonline.com/"


class ConfigurationError(ValueError):
    """Raised at startup when the identity provider section is incomplete."""


@dataclass(frozen=True)
class CookieOptions:
    login_path: str = "/Auth/Login"
    logout_path: str = "/Auth/Logout"
    return_url_parameter: str = "redirectUrl"


@dataclass(frozen=True)
class AuthConfig:
    # Identity provider section (e.g. AZUREAD_CLIENT_ID)
    section: str
    instance: str
    tenant_id: Optional[str]
    domain: Optional[str]
    client_id: Optional[str]
    client_secret: Optional[str]
    callback_path: str
    signed_out_callback_path: str
    authority_override: Optional[str]
    metadata_address: Optional[str]
    scopes: List[str]

    # Session configuration
    public_base_url: Optional[str]
    session_secret: Optional[str]
    session_ttl_seconds: int
    # None: Secure follows the request scheme.
    cookie_secure: Optional[bool]

    @property
    def authority(self) -> Optional[str]:
        if self.authority_override:
            return self.authority_override.rstrip("/")
        if not self.tenant_id:
            return None
        return f"{self.instance.rstrip('/')}/{self.tenant_id}/v2.0"

    @property
    def discovery_url(self) -> Optional[str]:
        """Metadata address wins; otherwise the authority's well-known document."""
        if self.metadata_address:
            return self.metadata_address
        authority = self.authority
        if not authority:
            return None
        return f"{authority}/.well-known/openid-configuration"

    def validate(self) -> None:
        missing = []
        if not self.client_id:
            missing.append(f"{_env_prefix(self.section)}CLIENT_ID")
        if not self.discovery_url:
            missing.append(f"{_env_prefix(self.section)}TENANT_ID (or AUTHORITY / METADATA_ADDRESS)")
        if not self.session_secret:
            missing.append("AUTH_SESSION_SECRET")
        if missing:
            raise ConfigurationError(f"Missing authentication configuration: {', '.join(missing)}")
        for path in (self.callback_path, self.signed_out_callback_path):
            if not path.startswith("/"):
                raise ConfigurationError(f"Callback paths must start with '/': {path!r}")


def _env_prefix(section: str) -> str:
    return f"{section.upper()}_"


def _env(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _parse_scopes(value: Optional[str]) -> List[str]:
    items = [x.strip() for x in (value or "openid profile email").replace(",", " ").split()]
    scopes = [x for x in items if x]
    if "openid" not in scopes:
        scopes.insert(0, "openid")
    return scopes


@lru_cache(maxsize=4)
def load_auth_config(section: str = DEFAULT_SECTION) -> AuthConfig:
    """
    Load identity provider and session settings from environment variables.

    Provider settings are read from the named section, e.g. section "AzureAd"
    reads AZUREAD_CLIENT_ID, AZUREAD_TENANT_ID and friends.
    """
    prefix = _env_prefix(section)

    public_base_url = _env("AUTH_PUBLIC_BASE_URL")
    cookie_secure_env = (_env("AUTH_COOKIE_SECURE") or "").lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    elif (public_base_url or "").startswith("https://"):
        cookie_secure = True
    else:
        cookie_secure = None

    ttl = int(float(_env("AUTH_SESSION_TTL_SECONDS") or "43200"))  # 12h default
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        section=section,
        instance=_env(f"{prefix}INSTANCE") or DEFAULT_INSTANCE,
        tenant_id=_env(f"{prefix}TENANT_ID"),
        domain=_env(f"{prefix}DOMAIN"),
        client_id=_env(f"{prefix}CLIENT_ID"),
        client_secret=_env(f"{prefix}CLIENT_SECRET"),
        callback_path=_env(f"{prefix}CALLBACK_PATH") or "/signin-oidc",
        signed_out_callback_path=_env(f"{prefix}SIGNED_OUT_CALLBACK_PATH") or "/signout-callback-oidc",
        authority_override=_env(f"{prefix}AUTHORITY"),
        metadata_address=_env(f"{prefix}METADATA_ADDRESS"),
        scopes=_parse_scopes(_env(f"{prefix}SCOPES")),
        public_base_url=public_base_url,
        session_secret=_env("AUTH_SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
    )
