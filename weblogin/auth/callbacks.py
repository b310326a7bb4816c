"""Protocol endpoints owned by the OpenID Connect scheme."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from weblogin.auth.config import OPENID_CONNECT_SCHEME, AuthConfig
from weblogin.auth.deps import get_auth_service
from weblogin.auth.schemes import PROVIDER_UNREACHABLE, AuthenticationFailure, AuthenticationService

logger = logging.getLogger(__name__)


def build_callback_router(cfg: AuthConfig) -> APIRouter:
    router = APIRouter(tags=["authentication"])

    @router.get(cfg.callback_path, name="oidc.signin_callback")
    def signin_callback(
        request: Request,
        code: Optional[str] = Query(None),
        state: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
        error_description: Optional[str] = Query(None),
        auth: AuthenticationService = Depends(get_auth_service),
    ) -> Response:
        handler = auth.handler(OPENID_CONNECT_SCHEME)
        try:
            return handler.handle_signin_callback(
                request, code=code, state=state, error=error, error_description=error_description
            )
        except AuthenticationFailure as e:
            logger.warning("OIDC sign-in failed: %s", str(e))
            resp = JSONResponse(status_code=400, content={"detail": str(e)})
        except PROVIDER_UNREACHABLE as e:
            logger.warning("OIDC sign-in failed talking to the provider: %s", str(e))
            resp = JSONResponse(status_code=502, content={"detail": "Identity provider unavailable"})
        # A failed round trip cannot be retried with the same state.
        handler.expire_correlation(request, resp, (state or "").strip())
        return resp

    @router.get(cfg.signed_out_callback_path, name="oidc.signout_callback")
    def signout_callback(
        request: Request,
        state: Optional[str] = Query(None),
        auth: AuthenticationService = Depends(get_auth_service),
    ) -> Response:
        return auth.handler(OPENID_CONNECT_SCHEME).handle_signout_callback(request, state=state)

    return router
