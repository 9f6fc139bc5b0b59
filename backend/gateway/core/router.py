"""Router — maps method + path under the versioned prefix to an opaque handler.

Invariants:
    - Every registered pattern lives under API_PREFIX ("/api/v1")
    - Static routes win over parametrised routes; among parametrised routes the
      first registered match wins
    - Trailing slashes are insignificant ("/api/v1/home/" == "/api/v1/home")
    - dispatch() never raises for unknown routes: it returns RouteMissing
    - HEAD falls back to the GET route for the same path unless HEAD is registered

Design Decisions:
    - RouteFound | RouteMissing tagged results (ADR: no exceptions for expected misses)
    - "{name}" segments only; no regex matching
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from gateway.core.context import RequestContext

API_PREFIX = "/api/v1"

Handler = Callable[[RequestContext], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class Route:
    method: str
    pattern: str
    handler: Handler
    segments: tuple[str, ...] = field(compare=False, default=())

    @property
    def is_static(self) -> bool:
        return not any(_is_param(s) for s in self.segments)

    def match(self, segments: list[str]) -> dict[str, str] | None:
        if len(segments) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for expected, actual in zip(self.segments, segments):
            if _is_param(expected):
                if not actual:
                    return None
                params[expected[1:-1]] = actual
            elif expected != actual:
                return None
        return params


@dataclass(frozen=True)
class RouteFound:
    route: Route
    params: dict[str, str]

    @property
    def handler(self) -> Handler:
        return self.route.handler


@dataclass(frozen=True)
class RouteMissing:
    method: str
    path: str


class Router:
    """Registry of versioned API routes."""

    def __init__(self, prefix: str = API_PREFIX):
        self.prefix = normalize_path(prefix)
        self._static: dict[tuple[str, str], Route] = {}
        self._dynamic: list[Route] = []

    def register(self, method: str, path_pattern: str, handler: Handler) -> Route:
        """Register handler for method + pattern (pattern relative to the prefix)."""
        full = normalize_path(self.prefix + "/" + path_pattern.lstrip("/"))
        route = Route(
            method=method.upper(), pattern=full, handler=handler,
            segments=tuple(_split(full)),
        )
        key = (route.method, full)
        if route.is_static:
            if key in self._static:
                raise ValueError(f"Route already registered: {route.method} {full}")
            self._static[key] = route
        else:
            if any((r.method, r.pattern) == key for r in self._dynamic):
                raise ValueError(f"Route already registered: {route.method} {full}")
            self._dynamic.append(route)
        return route

    def get(self, path_pattern: str) -> Callable[[Handler], Handler]:
        """Decorator form of register() for GET routes."""
        def decorator(handler: Handler) -> Handler:
            self.register("GET", path_pattern, handler)
            return handler
        return decorator

    def owns(self, path: str) -> bool:
        path = normalize_path(path)
        return path == self.prefix or path.startswith(self.prefix + "/")

    def dispatch(self, method: str, path: str) -> RouteFound | RouteMissing:
        method = method.upper()
        path = normalize_path(path)
        if not self.owns(path):
            return RouteMissing(method, path)

        found = self._lookup(method, path)
        if found is None and method == "HEAD":
            found = self._lookup("GET", path)
        return found or RouteMissing(method, path)

    def _lookup(self, method: str, path: str) -> RouteFound | None:
        route = self._static.get((method, path))
        if route is not None:
            return RouteFound(route, {})

        segments = _split(path)
        for route in self._dynamic:
            if route.method != method:
                continue
            params = route.match(segments)
            if params is not None:
                return RouteFound(route, params)
        return None

    def routes(self) -> list[Route]:
        return [*self._static.values(), *self._dynamic]


def normalize_path(path: str) -> str:
    path = "/" + path.strip("/")
    while "//" in path:
        path = path.replace("//", "/")
    return path


def _split(path: str) -> list[str]:
    return path.strip("/").split("/") if path != "/" else []


def _is_param(segment: str) -> bool:
    return len(segment) > 2 and segment.startswith("{") and segment.endswith("}")
