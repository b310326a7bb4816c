"""
Authentication schemes.

Each scheme implements the same small capability interface (challenge and
sign-out). The OpenID Connect scheme delegates the protocol work to
`weblogin.auth.oidc`; the cookie scheme owns the local session cookie.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol

import jwt  # PyJWT
import requests
from authlib.common.security import generate_token
from fastapi import Request, Response
from fastapi.responses import RedirectResponse

from weblogin.auth import oidc
from weblogin.auth.config import COOKIE_SCHEME, OPENID_CONNECT_SCHEME, AuthConfig, CookieOptions
from weblogin.auth.models import AuthenticationProperties, AuthUser
from weblogin.auth.session import (
    CORRELATION_SALT,
    CORRELATION_TTL_SECONDS,
    SIGNOUT_STATE_SALT,
    clear_session_cookie_kwargs,
    cookie_secure,
    correlation_cookie_kwargs,
    correlation_cookie_name,
    decode_session,
    encode_session,
    protect,
    session_cookie_kwargs,
    session_cookie_name,
    unprotect,
)
from weblogin.auth.util import append_query, is_local_url, resolve_app_relative

logger = logging.getLogger(__name__)

# Network failures talking to the provider (discovery, token or JWKS endpoint).
PROVIDER_UNREACHABLE = (requests.RequestException, jwt.PyJWKClientConnectionError)


class AuthenticationFailure(ValueError):
    """A remote sign-in or sign-out round trip could not be completed."""


class UnknownSchemeError(KeyError):
    pass


class AuthenticationHandler(Protocol):
    """
    Minimal scheme interface. Implementations can be remote (OpenID Connect)
    or local (cookie).
    """

    scheme: str

    def challenge(self, request: Request, properties: AuthenticationProperties) -> Response:
        """Start authentication; returns the response that begins the handshake."""

    def sign_out(self, request: Request, response: Response, properties: AuthenticationProperties) -> None:
        """Apply this scheme's sign-out to a response being built."""


def _base_url(cfg: AuthConfig, request: Request) -> str:
    base = (cfg.public_base_url or "").strip().rstrip("/")
    if base:
        return base
    return str(request.base_url).rstrip("/")


def _no_store(resp: Response) -> Response:
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _secure(cfg: AuthConfig, request: Request) -> bool:
    return cookie_secure(cfg, request.url.scheme)


class CookieAuthenticationHandler:
    scheme = COOKIE_SCHEME

    def __init__(self, cfg: AuthConfig, options: CookieOptions) -> None:
        self.cfg = cfg
        self.options = options

    def authenticate(self, request: Request) -> Optional[AuthUser]:
        return decode_session(self.cfg, request.cookies.get(session_cookie_name(self.cfg)))

    def sign_in(self, request: Request, response: Response, user: AuthUser) -> None:
        value = encode_session(self.cfg, user)
        if not value:
            raise ValueError("Session signing is not configured (AUTH_SESSION_SECRET)")
        response.set_cookie(**session_cookie_kwargs(self.cfg, value, secure=_secure(self.cfg, request)))

    def challenge(self, request: Request, properties: AuthenticationProperties) -> Response:
        """Send the browser to the login action, remembering where it was going."""
        target = properties.redirect_uri
        if not target:
            target = request.url.path
            if request.url.query:
                target = f"{target}?{request.url.query}"
        url = append_query(self.options.login_path, {self.options.return_url_parameter: target})
        return _no_store(RedirectResponse(url=url, status_code=302))

    def sign_out(self, request: Request, response: Response, properties: AuthenticationProperties) -> None:
        response.set_cookie(**clear_session_cookie_kwargs(self.cfg, secure=_secure(self.cfg, request)))


class OpenIdConnectHandler:
    scheme = OPENID_CONNECT_SCHEME

    def __init__(self, cfg: AuthConfig, cookies: CookieAuthenticationHandler) -> None:
        self.cfg = cfg
        self.cookies = cookies

    def challenge(self, request: Request, properties: AuthenticationProperties) -> Response:
        base = _base_url(self.cfg, request)
        redirect_uri = f"{base}{self.cfg.callback_path}"

        nonce = generate_token(32)
        verifier = generate_token(48)  # RFC 7636: 43-128 characters

        url, state = oidc.build_authorize_url(
            self.cfg,
            redirect_uri=redirect_uri,
            nonce=nonce,
            code_verifier=verifier,
        )
        correlation = protect(
            self.cfg,
            CORRELATION_SALT,
            {"state": state, "nonce": nonce, "verifier": verifier, "properties": properties.to_dict()},
        )

        logger.info("OIDC challenge issued (callback=%s)", redirect_uri)
        resp = _no_store(RedirectResponse(url=url, status_code=302))
        resp.set_cookie(**correlation_cookie_kwargs(self.cfg, state, correlation, secure=_secure(self.cfg, request)))
        return resp

    def expire_correlation(self, request: Request, response: Response, state: Optional[str]) -> None:
        """Drop the correlation cookie of the sign-in identified by `state`."""
        if state:
            response.set_cookie(
                **correlation_cookie_kwargs(self.cfg, state, "", secure=_secure(self.cfg, request), max_age=0)
            )

    def sign_out(self, request: Request, response: Response, properties: AuthenticationProperties) -> None:
        base = _base_url(self.cfg, request)
        state = protect(self.cfg, SIGNOUT_STATE_SALT, {"redirect_uri": properties.redirect_uri or "/"})
        url = oidc.build_end_session_url(
            self.cfg,
            post_logout_redirect_uri=f"{base}{self.cfg.signed_out_callback_path}",
            state=state,
        )
        if url:
            response.headers["location"] = url
        else:
            logger.info("Provider has no end_session_endpoint; signing out locally only")

    def handle_signin_callback(
        self,
        request: Request,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> Response:
        """Complete the authorization code flow and establish the local session."""
        if error:
            raise AuthenticationFailure(f"Identity provider returned an error: {error_description or error}")
        if not code or not state:
            raise AuthenticationFailure("Missing code or state")
        state = state.strip()

        correlation = unprotect(
            self.cfg, CORRELATION_SALT, request.cookies.get(correlation_cookie_name(state)), CORRELATION_TTL_SECONDS
        )
        if correlation is None:
            raise AuthenticationFailure("Correlation failed (missing or expired correlation cookie)")
        if str(correlation.get("state") or "") != state:
            raise AuthenticationFailure("Invalid OAuth state")
        nonce = str(correlation.get("nonce") or "")
        verifier = str(correlation.get("verifier") or "")
        if not nonce or not verifier:
            raise AuthenticationFailure("Missing OAuth verifier/nonce")
        properties = AuthenticationProperties.from_dict(correlation.get("properties"))

        redirect_uri = f"{_base_url(self.cfg, request)}{self.cfg.callback_path}"
        try:
            tokens = oidc.exchange_code_for_tokens(self.cfg, redirect_uri=redirect_uri, code=code, code_verifier=verifier)
            id_token = str(tokens.get("id_token") or "").strip()
            if not id_token:
                raise AuthenticationFailure("Missing id_token in token response")
            claims = oidc.validate_id_token(self.cfg, id_token=id_token, expected_nonce=nonce)
        except AuthenticationFailure:
            raise
        except PROVIDER_UNREACHABLE:
            # Mapped to 502 by the callback route.
            raise
        except (ValueError, jwt.PyJWTError) as e:
            raise AuthenticationFailure(str(e)) from e

        user = user_from_claims(claims)
        logger.info("Signed in %s via %s", user.subject or "unknown subject", self.scheme)

        target = resolve_app_relative(properties.redirect_uri or "/")
        resp = _no_store(RedirectResponse(url=target, status_code=302))
        self.cookies.sign_in(request, resp, user)
        self.expire_correlation(request, resp, state)
        return resp

    def handle_signout_callback(self, request: Request, *, state: Optional[str]) -> Response:
        data = unprotect(self.cfg, SIGNOUT_STATE_SALT, state, CORRELATION_TTL_SECONDS) or {}
        target = str(data.get("redirect_uri") or "/")
        if not is_local_url(target) and not target.startswith(_base_url(self.cfg, request) + "/"):
            target = "/"
        return _no_store(RedirectResponse(url=resolve_app_relative(target), status_code=302))


def user_from_claims(claims: Dict[str, Any]) -> AuthUser:
    def _claim(name: str) -> Optional[str]:
        v = str(claims.get(name) or "").strip()
        return v or None

    username = _claim("preferred_username")
    email = _claim("email")
    if not email and username and "@" in username:
        email = username
    return AuthUser(
        provider=OPENID_CONNECT_SCHEME,
        subject=_claim("oid") or _claim("sub"),
        email=email.lower() if email else None,
        name=_claim("name"),
        username=username,
    )


class AuthenticationService:
    """Dispatches challenge/sign-out to registered schemes by name."""

    def __init__(self, handlers: Iterable[AuthenticationHandler], *, default_scheme: str = COOKIE_SCHEME) -> None:
        self._handlers: Dict[str, AuthenticationHandler] = {h.scheme: h for h in handlers}
        self.default_scheme = default_scheme
        self.handler(default_scheme)

    def handler(self, scheme: str) -> AuthenticationHandler:
        try:
            return self._handlers[scheme]
        except KeyError:
            raise UnknownSchemeError(scheme) from None

    def authenticate(self, request: Request) -> Optional[AuthUser]:
        handler = self.handler(self.default_scheme)
        authenticate = getattr(handler, "authenticate", None)
        if authenticate is None:
            return None
        return authenticate(request)

    def challenge(
        self,
        request: Request,
        scheme: Optional[str] = None,
        properties: Optional[AuthenticationProperties] = None,
    ) -> Response:
        return self.handler(scheme or self.default_scheme).challenge(request, properties or AuthenticationProperties())

    def sign_out(
        self,
        request: Request,
        *schemes: str,
        properties: Optional[AuthenticationProperties] = None,
    ) -> Response:
        """
        Sign out of every named scheme in one response.

        The response starts as a redirect to the post sign-out target; remote
        schemes may replace the location, local schemes expire their cookies.
        """
        props = properties or AuthenticationProperties()
        handlers = [self.handler(s) for s in (schemes or (self.default_scheme,))]
        resp = _no_store(RedirectResponse(url=resolve_app_relative(props.redirect_uri or "/"), status_code=302))
        for h in handlers:
            h.sign_out(request, resp, props)
        logger.info("Signed out of %s", ", ".join(h.scheme for h in handlers))
        return resp
