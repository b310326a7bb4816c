from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from weblogin.auth.config import AuthConfig, CookieOptions
from weblogin.auth.models import AuthUser
from weblogin.auth.schemes import AuthenticationService


class AuthenticationRequired(Exception):
    """Raised by `require_user`; the app answers with the default scheme's challenge."""


def get_auth_service(request: Request) -> AuthenticationService:
    return request.app.state.auth


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_cookie_options(request: Request) -> CookieOptions:
    return request.app.state.cookie_options


def authenticate_request(request: Request) -> Optional[AuthUser]:
    """
    Authenticate a request and return an AuthUser if present/valid.

    Only the session cookie is consulted; the identity provider is never
    contacted per request.
    """
    service = getattr(request.app.state, "auth", None)
    if service is None:
        return None
    return service.authenticate(request)


def current_user(request: Request) -> Optional[AuthUser]:
    return getattr(request.state, "user", None)


def require_user(user: Optional[AuthUser] = Depends(current_user)) -> AuthUser:
    if user is None:
        raise AuthenticationRequired()
    return user
