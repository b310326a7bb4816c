"""
Web application bootstrap.

Builds the FastAPI app once per process: authentication schemes, cookie
options, conventional controller routes and the request pipeline.

Pipeline, outermost first:
    error page + HSTS (outside Development) -> HTTPS redirection ->
    authentication -> routing (static files match after controller routes) ->
    authorization (per-endpoint `require_user` dependency) -> action
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.httpsredirect import HTTPSRedirectMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from weblogin.auth.callbacks import build_callback_router
from weblogin.auth.config import COOKIE_SCHEME, DEFAULT_SECTION, AuthConfig, CookieOptions, load_auth_config
from weblogin.auth.deps import AuthenticationRequired, authenticate_request
from weblogin.auth.schemes import AuthenticationService, CookieAuthenticationHandler, OpenIdConnectHandler
from weblogin.config import AppSettings, load_app_settings
from weblogin.controllers import CONTROLLERS
from weblogin.controllers.home import render_error
from weblogin.routing import map_controller_route

logger = logging.getLogger(__name__)

DEFAULT_ROUTE_PATTERN = "{controller=Home}/{action=Index}/{id?}"

_HSTS_MAX_AGE_SECONDS = 30 * 24 * 3600
_HSTS_EXCLUDED_HOSTS = ("localhost", "127.0.0.1", "::1")


def _add_authentication(app: FastAPI) -> None:
    @app.middleware("http")
    async def authenticate(request: Request, call_next):
        """Attach the session user (if any) and log the request."""
        start_time = time.time()
        try:
            request.state.user = authenticate_request(request)
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise


def _add_hsts(app: FastAPI) -> None:
    @app.middleware("http")
    async def strict_transport_security(request: Request, call_next):
        response = await call_next(request)
        host = (request.url.hostname or "").lower()
        if request.url.scheme == "https" and host not in _HSTS_EXCLUDED_HOSTS:
            response.headers["Strict-Transport-Security"] = f"max-age={_HSTS_MAX_AGE_SECONDS}"
        return response


async def _challenge_default_scheme(request: Request, exc: AuthenticationRequired) -> Response:
    return request.app.state.auth.challenge(request)


async def _handle_unexpected_error(request: Request, exc: Exception) -> Response:
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return render_error(request, status_code=500)


def _mount_static(app: FastAPI, directory: str) -> None:
    if not os.path.isdir(directory):
        logger.warning("Static files directory not found, skipping: %s", directory)
        return
    # Mounted last so controller routes win; unknown paths fall through to files.
    app.mount("/", StaticFiles(directory=directory), name="static")


def create_app(
    settings: Optional[AppSettings] = None,
    auth_config: Optional[AuthConfig] = None,
    *,
    cookie_options: Optional[CookieOptions] = None,
    route_pattern: str = DEFAULT_ROUTE_PATTERN,
) -> FastAPI:
    """
    Application factory.

    Raises ConfigurationError when the identity provider section is incomplete,
    which is fatal for the process.
    """
    settings = settings or load_app_settings()
    cfg = auth_config or load_auth_config()
    cfg.validate()

    options = cookie_options or CookieOptions(
        login_path="/Auth/Login",
        logout_path="/Auth/Logout",
        return_url_parameter="redirectUrl",
    )
    cookies = CookieAuthenticationHandler(cfg, options)
    auth = AuthenticationService([OpenIdConnectHandler(cfg, cookies), cookies], default_scheme=COOKIE_SCHEME)

    app = FastAPI(
        title="weblogin",
        debug=settings.is_development,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.auth_config = cfg
    app.state.cookie_options = options
    app.state.auth = auth
    app.state.templates = Jinja2Templates(directory=settings.templates_dir)

    if not settings.is_development:
        app.add_exception_handler(Exception, _handle_unexpected_error)
    app.add_exception_handler(AuthenticationRequired, _challenge_default_scheme)

    # Middleware added last runs first.
    _add_authentication(app)
    if settings.https_redirection:
        app.add_middleware(HTTPSRedirectMiddleware)
    if not settings.is_development:
        _add_hsts(app)

    @app.get("/healthz", tags=["system"])
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    app.include_router(build_callback_router(cfg))
    mapped = map_controller_route(app, CONTROLLERS, pattern=route_pattern)
    _mount_static(app, settings.static_dir)

    logger.info(
        "Application configured: environment=%s scheme_section=%s authority=%s routes=%d",
        settings.environment,
        cfg.section,
        cfg.authority or cfg.discovery_url,
        len(mapped),
    )
    return app


def run(host: str = "0.0.0.0", port: int = 8080, section: str = DEFAULT_SECTION) -> None:
    import uvicorn

    settings = load_app_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        settings.log_level.lower()
        if settings.log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"]
        else "info"
    )

    app = create_app(settings, load_auth_config(section))
    logger.info("Starting web server on %s:%d (log_level=%s)", host, port, settings.log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
