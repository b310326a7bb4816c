"""
Conventional controller routing.

Controllers group actions by name; `map_controller_route` expands a pattern
like `{controller=Home}/{action=Index}/{id?}` into concrete FastAPI routes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from fastapi import FastAPI
from fastapi.routing import APIRoute

_SEGMENT_RE = re.compile(r"^\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:=(?P<default>[A-Za-z0-9_]+))?(?P<optional>\?)?\}$")


@dataclass(frozen=True)
class RoutePattern:
    default_controller: Optional[str]
    default_action: Optional[str]
    param: Optional[str] = None
    param_optional: bool = True


@dataclass
class Action:
    name: str
    endpoint: Callable[..., Any]
    methods: Sequence[str] = ("GET",)
    route_kwargs: Dict[str, Any] = field(default_factory=dict)


class Controller:
    def __init__(self, name: str) -> None:
        self.name = name
        self.actions: Dict[str, Action] = {}

    def action(self, name: Optional[str] = None, *, methods: Sequence[str] = ("GET",), **route_kwargs: Any):
        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            action_name = name or fn.__name__
            self.actions[action_name] = Action(
                name=action_name, endpoint=fn, methods=tuple(methods), route_kwargs=route_kwargs
            )
            return fn

        return decorator


def parse_route_pattern(pattern: str) -> RoutePattern:
    """Parse `{controller=X}/{action=Y}` with an optional trailing `{param}` or `{param?}`."""
    segments = [s for s in pattern.strip("/").split("/") if s]
    if len(segments) not in (2, 3):
        raise ValueError(f"Unsupported route pattern: {pattern!r}")

    parsed = []
    for seg in segments:
        m = _SEGMENT_RE.match(seg)
        if not m:
            raise ValueError(f"Unsupported route segment {seg!r} in {pattern!r}")
        parsed.append(m)

    if parsed[0].group("name") != "controller" or parsed[1].group("name") != "action":
        raise ValueError(f"Route pattern must start with {{controller}}/{{action}}: {pattern!r}")

    param = None
    param_optional = True
    if len(parsed) == 3:
        param = parsed[2].group("name")
        param_optional = bool(parsed[2].group("optional"))

    return RoutePattern(
        default_controller=parsed[0].group("default"),
        default_action=parsed[1].group("default"),
        param=param,
        param_optional=param_optional,
    )


def _paths_for(rp: RoutePattern, controller: Controller, action: Action) -> List[str]:
    base = f"/{controller.name}/{action.name}"
    with_param = f"{base}/{{{rp.param}}}" if rp.param else None
    if with_param and not rp.param_optional:
        return [with_param]

    paths = []
    if action.name == rp.default_action:
        if controller.name == rp.default_controller:
            paths.append("/")
        paths.append(f"/{controller.name}")
    paths.append(base)
    # Every action takes the segment; endpoints that do not declare it ignore it.
    if with_param:
        paths.append(with_param)
    return paths


def _ignore_case(route: APIRoute) -> None:
    # Matching only; `path_format` keeps the canonical casing for url_for.
    route.path_regex = re.compile(route.path_regex.pattern, re.IGNORECASE)


def map_controller_route(
    app: FastAPI,
    controllers: Iterable[Controller],
    *,
    pattern: str = "{controller=Home}/{action=Index}/{id?}",
) -> List[str]:
    """
    Register every controller action under the paths the pattern allows.

    The shortest path of each action is named `"<Controller>.<Action>"` so that
    `request.url_for("Home.Index")` resolves to `/`. Paths match case-insensitively,
    so `/auth/login` reaches `Auth.Login`.
    """
    rp = parse_route_pattern(pattern)
    mapped: List[str] = []
    for controller in controllers:
        for action in controller.actions.values():
            for i, path in enumerate(_paths_for(rp, controller, action)):
                app.add_api_route(
                    path,
                    action.endpoint,
                    methods=list(action.methods),
                    name=f"{controller.name}.{action.name}" if i == 0 else None,
                    include_in_schema=i == 0,
                    **action.route_kwargs,
                )
                _ignore_case(app.router.routes[-1])
                mapped.append(path)
    return mapped
