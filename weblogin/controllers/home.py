from __future__ import annotations

from typing import Optional

from authlib.common.security import generate_token
from fastapi import Depends, Request, Response

from weblogin.auth.deps import current_user
from weblogin.auth.models import AuthUser
from weblogin.routing import Controller

controller = Controller("Home")


def _render(request: Request, template: str, context: Optional[dict] = None, status_code: int = 200) -> Response:
    templates = request.app.state.templates
    ctx = {"user": getattr(request.state, "user", None), "options": request.app.state.cookie_options}
    ctx.update(context or {})
    return templates.TemplateResponse(request, template, ctx, status_code=status_code)


@controller.action("Index")
def index(request: Request, user: Optional[AuthUser] = Depends(current_user)) -> Response:
    return _render(request, "home/index.html", {"title": "Home", "user": user})


@controller.action("Privacy")
def privacy(request: Request) -> Response:
    return _render(request, "home/privacy.html", {"title": "Privacy Policy"})


@controller.action("Error")
def error(request: Request) -> Response:
    return render_error(request, status_code=200)


def render_error(request: Request, status_code: int = 500) -> Response:
    request_id = request.headers.get("x-request-id") or generate_token(12)
    return _render(request, "home/error.html", {"title": "Error", "request_id": request_id}, status_code=status_code)
