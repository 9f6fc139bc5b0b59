"""Pipeline Middleware — hosts the gateway pipeline as the outermost ASGI layer.

Invariants:
    - Every HTTP request passes through the pipeline before reaching FastAPI routing
    - Staged headers (CORS, RateLimit-*) are merged into pass-through responses without
      overriding headers the route set itself
    - Anything escaping the inner app before the response starts is normalized to the
      failure envelope; after the response has started it is re-raised
    - The request body is read only for paths the versioned router owns, and replayed
      if the request is passed through
    - At most max_body_bytes are buffered; a larger body is flagged on the context and
      answered by the dispatch stage with a 413 envelope
    - HEAD responses built by the pipeline keep their headers but carry no body

Design Decisions:
    - Pure ASGI middleware (not BaseHTTPMiddleware): no response buffering, exceptions
      from the inner app surface directly to the try/except here
"""

import logging

from starlette.datastructures import Headers, MutableHeaders, QueryParams
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.core.context import DEFAULT_MAX_BODY_BYTES, GatewayResponse, RequestContext
from gateway.core.pipeline import Pipeline
from gateway.core.router import Router

logger = logging.getLogger(__name__)


class PipelineMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        pipeline: Pipeline,
        router: Router,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ):
        self.app = app
        self.pipeline = pipeline
        self.router = router
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        body, too_large = b"", False
        if self.router.owns(scope["path"]):
            body, too_large = await _read_body(receive, scope, self.max_body_bytes)
            receive = _replay(body, receive)

        ctx = build_context(scope, body, too_large)
        outcome = await self.pipeline.run(ctx)
        if outcome.handled:
            response = to_starlette(outcome.response)
            if scope["method"] == "HEAD":
                response.body = b""
            await response(scope, receive, send)
            return

        ctx = outcome.context
        staged = ctx.response.headers
        response_started = False

        async def send_with_headers(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
                headers = MutableHeaders(scope=message)
                for name, value in staged.items():
                    if name.lower() == "vary":
                        headers.add_vary_header(value)
                    else:
                        headers.setdefault(name, value)
            await send(message)

        try:
            await self.app(scope, receive, send_with_headers)
        except Exception as exc:
            if response_started:
                logger.error(
                    "Exception after response started",
                    exc_info=True,
                    extra={"method": ctx.method, "path": ctx.path},
                )
                raise
            response = self.pipeline.fail(ctx, exc)
            await to_starlette(response)(scope, receive, send)


def build_context(
    scope: Scope, body: bytes = b"", body_too_large: bool = False,
) -> RequestContext:
    """Immutable request view from an ASGI scope."""
    client = scope.get("client")
    return RequestContext.create(
        method=scope["method"],
        path=scope["path"],
        headers=dict(Headers(scope=scope).items()),
        query=dict(QueryParams(scope.get("query_string", b""))),
        body=body,
        client_address=client[0] if client else None,
        body_too_large=body_too_large,
    )


def to_starlette(response: GatewayResponse) -> Response:
    return Response(
        content=response.body,
        status_code=response.status_code,
        headers=response.headers,
        media_type=response.media_type,
    )


async def _read_body(receive: Receive, scope: Scope, limit: int) -> tuple[bytes, bool]:
    """Buffer the body up to limit bytes. Returns (body, exceeded)."""
    declared = Headers(scope=scope).get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return b"", True

    chunks: list[bytes] = []
    size = 0
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunk = message.get("body", b"")
        size += len(chunk)
        if size > limit:
            return b"", True
        chunks.append(chunk)
        if not message.get("more_body", False):
            break
    return b"".join(chunks), False


def _replay(body: bytes, downstream: Receive) -> Receive:
    """Serve the already-read body once, then defer to the original channel."""
    sent = False

    async def receive() -> Message:
        nonlocal sent
        if sent:
            return await downstream()
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return receive
