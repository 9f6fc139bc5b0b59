"""Pipeline — explicit ordered stages (CORS → rate limit → dispatch) plus error normalization.

Invariants:
    - Stages run in list order; each returns a StageResult tagged CONTINUE, RESPOND or REJECT
    - RESPOND/REJECT short-circuit: later stages and the route handler never run
    - Headers staged on ctx.response (CORS, RateLimit-*) are applied to every response,
      including rejections and normalized errors
    - The normalizer runs at most once per request; unclassified exceptions become the
      fixed safe 500 envelope and are logged with traceback, never echoed
    - Paths outside the router prefix CONTINUE past dispatch and are served by the host app
    - Handler results always leave through ok(); a raw GatewayResponse from a handler is
      an Internal error, never sent as-is
    - Only the dispatch deadline maps to Timeout; a TimeoutError raised by the handler is
      an unclassified failure

Design Decisions:
    - Stage objects with a uniform process() contract instead of implicit middleware order
      (ADR: composition visible in one list)
    - Expected failures (rate limit, unknown route) travel as REJECT results; raising is
      reserved for handler failures
    - Logging level picked from the error kind table, not from exception types
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from gateway.core.context import GatewayResponse, RequestContext
from gateway.core.cors import CorsPolicy
from gateway.core.envelope import ok
from gateway.core.errors import ErrorKind, GatewayError
from gateway.core.rate_limiter import FixedWindowRateLimiter, KeyGenerator, constant_key
from gateway.core.router import Handler, RouteMissing, Router

logger = logging.getLogger(__name__)


class StageOutcome(str, Enum):
    CONTINUE = "continue"
    RESPOND = "respond"
    REJECT = "reject"


@dataclass(frozen=True)
class StageResult:
    outcome: StageOutcome
    context: RequestContext
    response: GatewayResponse | None = None
    error: GatewayError | None = None

    @classmethod
    def proceed(cls, ctx: RequestContext) -> "StageResult":
        return cls(StageOutcome.CONTINUE, ctx)

    @classmethod
    def respond(cls, ctx: RequestContext, response: GatewayResponse) -> "StageResult":
        return cls(StageOutcome.RESPOND, ctx, response=response)

    @classmethod
    def reject(cls, ctx: RequestContext, error: GatewayError) -> "StageResult":
        return cls(StageOutcome.REJECT, ctx, error=error)


class Stage(Protocol):
    name: str

    async def process(self, ctx: RequestContext) -> StageResult: ...


@dataclass(frozen=True)
class PipelineOutcome:
    """Final context plus the terminal response; response None means pass-through."""
    context: RequestContext
    response: GatewayResponse | None

    @property
    def handled(self) -> bool:
        return self.response is not None


# ─── Error Normalizer ───────────────────────────────────────────

_LOG_LEVEL_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: logging.INFO,
    ErrorKind.NOT_FOUND: logging.INFO,
    ErrorKind.RATE_LIMITED: logging.WARNING,
    ErrorKind.UPSTREAM: logging.ERROR,
    ErrorKind.INTERNAL: logging.ERROR,
    ErrorKind.TIMEOUT: logging.ERROR,
}


class ErrorNormalizer:
    """Maps anything raised or rejected into a failure-envelope response."""

    def normalize(
        self, thrown: BaseException, ctx: RequestContext | None = None,
    ) -> GatewayResponse:
        extra = _log_extra(ctx)
        if isinstance(thrown, GatewayError):
            error = thrown
            logger.log(
                _LOG_LEVEL_BY_KIND[error.kind],
                f"{error.kind.value} error: {error.message}",
                extra={**extra, "error_kind": error.kind.value, "status_code": error.status_code},
            )
        else:
            logger.error(
                f"Unhandled exception: {thrown!r}",
                exc_info=(type(thrown), thrown, thrown.__traceback__),
                extra={**extra, "error_kind": ErrorKind.INTERNAL.value, "status_code": 500},
            )
            error = GatewayError.internal()
        try:
            return GatewayResponse.json(error.status_code, jsonable_encoder(error.to_response()))
        except (TypeError, ValueError):
            logger.error(
                f"Unserializable details on {error!r}",
                exc_info=True,
                extra={**extra, "error_kind": ErrorKind.INTERNAL.value, "status_code": 500},
            )
            safe = GatewayError.internal()
            return GatewayResponse.json(safe.status_code, safe.to_response())


def _log_extra(ctx: RequestContext | None) -> dict:
    if ctx is None:
        return {}
    return {"method": ctx.method, "path": ctx.path, "client_key": ctx.client_key}


# ─── Stages ─────────────────────────────────────────────────────

class CorsStage:
    """Stages CORS headers; answers OPTIONS preflight directly with 204."""
    name = "cors"

    def __init__(self, policy: CorsPolicy):
        self.policy = policy

    async def process(self, ctx: RequestContext) -> StageResult:
        decision = self.policy.evaluate(ctx.header("origin"))
        if ctx.method == "OPTIONS":
            return StageResult.respond(ctx, GatewayResponse.empty(
                204, decision.preflight_headers(ctx.header("access-control-request-headers")),
            ))
        ctx.response.set_headers(decision.response_headers())
        return StageResult.proceed(ctx)


class RateLimitStage:
    """Derives the client key, counts the request and rejects over-quota callers."""
    name = "rate_limit"

    def __init__(
        self, limiter: FixedWindowRateLimiter, key_generator: KeyGenerator = constant_key,
    ):
        self.limiter = limiter
        self.key_generator = key_generator

    async def process(self, ctx: RequestContext) -> StageResult:
        ctx = ctx.with_client_key(self.key_generator(ctx))
        decision = self.limiter.check(ctx.client_key)
        ctx.response.set_headers(decision.to_headers())
        if decision.allowed:
            return StageResult.proceed(ctx)
        return StageResult.reject(ctx, GatewayError.rate_limited(
            details={"retryAfter": decision.retry_after_seconds},
        ))


class DispatchStage:
    """Runs the matching route handler and wraps its payload in a success envelope."""
    name = "dispatch"

    def __init__(self, router: Router, timeout_ms: int | None = None):
        self.router = router
        self.timeout_ms = timeout_ms

    async def process(self, ctx: RequestContext) -> StageResult:
        if not self.router.owns(ctx.path):
            return StageResult.proceed(ctx)

        found = self.router.dispatch(ctx.method, ctx.path)
        if isinstance(found, RouteMissing):
            return StageResult.reject(ctx, GatewayError.not_found(
                f"Route {found.method} {found.path} not found",
            ))

        if ctx.body_too_large:
            return StageResult.reject(ctx, GatewayError.payload_too_large())

        ctx = ctx.with_params(found.params)
        payload = await self._run_handler(found.handler, ctx)
        if isinstance(payload, GatewayResponse):
            raise TypeError(
                f"Handler for {ctx.method} {ctx.path} returned a raw response; "
                "return the payload or raise GatewayError",
            )
        return StageResult.respond(ctx, GatewayResponse.json(200, ok(jsonable_encoder(payload))))

    async def _run_handler(self, handler: Handler, ctx: RequestContext):
        if self.timeout_ms is None:
            return await _invoke(handler, ctx)
        # A TimeoutError raised by the handler itself is not a gateway timeout.
        task = asyncio.ensure_future(_invoke(handler, ctx))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise GatewayError.timeout(details={"timeoutMs": self.timeout_ms})


async def _invoke(handler: Handler, ctx: RequestContext):
    if inspect.iscoroutinefunction(handler):
        return await handler(ctx)
    result = await run_in_threadpool(handler, ctx)
    if inspect.isawaitable(result):
        result = await result
    return result


# ─── Pipeline ───────────────────────────────────────────────────

class Pipeline:
    """Composition root for one request/response cycle."""

    def __init__(self, stages: list[Stage], normalizer: ErrorNormalizer | None = None):
        self.stages = list(stages)
        self.normalizer = normalizer or ErrorNormalizer()

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def run(self, ctx: RequestContext) -> PipelineOutcome:
        try:
            for stage in self.stages:
                result = await stage.process(ctx)
                ctx = result.context
                if result.outcome is StageOutcome.RESPOND:
                    return PipelineOutcome(ctx, self.finalize(ctx, result.response))
                if result.outcome is StageOutcome.REJECT:
                    return PipelineOutcome(ctx, self.fail(ctx, result.error))
        except Exception as exc:
            return PipelineOutcome(ctx, self.fail(ctx, exc))
        return PipelineOutcome(ctx, None)

    def fail(self, ctx: RequestContext, thrown: BaseException) -> GatewayResponse:
        return self.finalize(ctx, self.normalizer.normalize(thrown, ctx))

    def finalize(self, ctx: RequestContext, response: GatewayResponse) -> GatewayResponse:
        """Apply staged headers; headers set by the response itself take precedence."""
        response.headers = {**ctx.response.headers, **response.headers}
        return response
