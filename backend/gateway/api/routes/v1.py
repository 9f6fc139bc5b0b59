"""Versioned API Routes — the /api/v1 index and the hook for route collaborators.

Invariants:
    - Handlers registered here run inside the pipeline's dispatch stage, not FastAPI routing
    - GET /api/v1 lists every registered route and where the documentation lives

Design Decisions:
    - Collaborators plug in through a RouteRegistrar callable receiving the Router
      (anime-data retrieval lives outside this package)
"""

from typing import Callable

from gateway.core.context import RequestContext
from gateway.core.router import Router

RouteRegistrar = Callable[[Router], None]


def register_index(router: Router) -> None:

    @router.get("/")
    async def api_index(ctx: RequestContext) -> dict:
        return {
            "name": "anime API",
            "version": "v1",
            "documentation": {"openapi": "/doc", "ui": "/ui"},
            "routes": [
                {"method": route.method, "path": route.pattern}
                for route in router.routes()
            ],
        }


def register_v1_routes(router: Router, *registrars: RouteRegistrar) -> Router:
    register_index(router)
    for registrar in registrars:
        registrar(router)
    return router
