"""Error Handlers — framework exceptions routed through the gateway normalizer.

Invariants:
    - GatewayError raised inside FastAPI routes → its own envelope and status
    - Starlette HTTPException (unknown path, method not allowed) → failure envelope, same status
    - RequestValidationError → 400 Validation envelope with field-level details
    - Unclassified exceptions are NOT handled here: they propagate to PipelineMiddleware,
      which normalizes them outside the routing layer

Design Decisions:
    - One normalizer instance (app.state.pipeline.normalizer) shared with the pipeline
      so framework failures and handler failures render identically
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from gateway.api.middleware import build_context, to_starlette
from gateway.core.errors import GatewayError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_gateway_error_handler(app)
    _register_http_exception_handler(app)
    _register_validation_error_handler(app)


def _normalized(
    request: Request, error: GatewayError, headers: dict[str, str] | None = None,
) -> Response:
    normalizer = request.app.state.pipeline.normalizer
    ctx = build_context(request.scope)
    response = to_starlette(normalizer.normalize(error, ctx))
    for name, value in (headers or {}).items():
        response.headers.setdefault(name, value)
    return response


def _register_gateway_error_handler(app: FastAPI) -> None:

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return _normalized(request, exc)


def _register_http_exception_handler(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Unknown paths and method mismatches still answer with the envelope."""
        error = GatewayError.from_status(exc.status_code, str(exc.detail))
        return _normalized(request, error, exc.headers)


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _normalized(request, GatewayError.validation(
            "Invalid request data", details=_validation_details(exc),
        ))


def _validation_details(exc: RequestValidationError) -> list[dict]:
    return [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
