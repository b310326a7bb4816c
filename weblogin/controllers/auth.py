from __future__ import annotations

import logging

from fastapi import Depends, Request, Response

from weblogin.auth.config import COOKIE_SCHEME, OPENID_CONNECT_SCHEME, CookieOptions
from weblogin.auth.deps import get_auth_service, get_cookie_options, require_user
from weblogin.auth.models import AuthenticationProperties, AuthUser
from weblogin.auth.schemes import AuthenticationService
from weblogin.auth.util import is_local_url
from weblogin.routing import Controller

logger = logging.getLogger(__name__)

controller = Controller("Auth")


@controller.action("Login")
def login(
    request: Request,
    auth: AuthenticationService = Depends(get_auth_service),
    options: CookieOptions = Depends(get_cookie_options),
) -> Response:
    """Challenge the identity provider, returning to a local URL afterwards."""
    redirect_url = request.query_params.get(options.return_url_parameter) or "/"
    if not is_local_url(redirect_url):
        logger.info("Rejected non-local redirect target; using home page")
        redirect_url = str(request.url_for("Home.Index"))
    return auth.challenge(request, OPENID_CONNECT_SCHEME, AuthenticationProperties(redirect_uri=redirect_url))


@controller.action("Logout")
def logout(
    request: Request,
    user: AuthUser = Depends(require_user),
    auth: AuthenticationService = Depends(get_auth_service),
) -> Response:
    logger.info("Signing out %s", user.subject or user.display_name)
    return auth.sign_out(request, OPENID_CONNECT_SCHEME, COOKIE_SCHEME)
