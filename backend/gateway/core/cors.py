"""CORS Policy — origin evaluation and preflight headers. Pure, no IO.

Invariants:
    - Wildcard configuration allows every origin and echoes "*"
    - An explicit allow-list matches by exact string membership only
    - Disallowed origins get no Access-Control-* headers; the request itself still proceeds
    - Allowed methods are fixed to GET, POST, PUT, DELETE, OPTIONS; headers are wildcard

Design Decisions:
    - evaluate() returns a CorsDecision value; the pipeline stage turns it into headers
      (ADR: policy separated from transport)
"""

from dataclasses import dataclass
from typing import Iterable

WILDCARD = "*"
ALLOWED_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "OPTIONS")

ConfiguredOrigins = str | frozenset[str]


def parse_origins(raw: str | None) -> ConfiguredOrigins:
    """Comma-separated allow-list → frozenset; absent or empty → wildcard."""
    if raw is None:
        return WILDCARD
    origins = frozenset(o.strip() for o in raw.split(",") if o.strip())
    if not origins or WILDCARD in origins:
        return WILDCARD
    return origins


@dataclass(frozen=True)
class CorsDecision:
    allowed: bool
    allow_origin: str | None
    allow_methods: tuple[str, ...] = ALLOWED_METHODS
    allow_headers: str = WILDCARD
    vary_origin: bool = False

    def response_headers(self) -> dict[str, str]:
        """Headers for an actual (non-preflight) response."""
        headers: dict[str, str] = {}
        if self.allowed and self.allow_origin:
            headers["Access-Control-Allow-Origin"] = self.allow_origin
        if self.vary_origin:
            headers["Vary"] = "Origin"
        return headers

    def preflight_headers(self, requested_headers: str | None = None) -> dict[str, str]:
        """Headers for a preflight answer; requested headers echoed under the wildcard."""
        headers = self.response_headers()
        if not self.allowed:
            return headers
        headers["Access-Control-Allow-Methods"] = ",".join(self.allow_methods)
        if self.allow_headers == WILDCARD and requested_headers:
            headers["Access-Control-Allow-Headers"] = requested_headers
            headers["Vary"] = _merge_vary(headers.get("Vary"), "Access-Control-Request-Headers")
        else:
            headers["Access-Control-Allow-Headers"] = self.allow_headers
        return headers


def evaluate(
    request_origin: str | None, configured_origins: ConfiguredOrigins,
) -> CorsDecision:
    """Decide whether request_origin may read the response."""
    if configured_origins == WILDCARD:
        return CorsDecision(allowed=True, allow_origin=WILDCARD)
    if request_origin is not None and request_origin in configured_origins:
        return CorsDecision(allowed=True, allow_origin=request_origin, vary_origin=True)
    return CorsDecision(allowed=False, allow_origin=None, vary_origin=True)


class CorsPolicy:
    """Configured origin set bound to evaluate()."""

    def __init__(self, origins: ConfiguredOrigins | Iterable[str] = WILDCARD):
        if isinstance(origins, str):
            origins = parse_origins(origins)
        elif not isinstance(origins, frozenset):
            origins = frozenset(origins)
        self.origins: ConfiguredOrigins = origins

    @property
    def is_wildcard(self) -> bool:
        return self.origins == WILDCARD

    def evaluate(self, request_origin: str | None) -> CorsDecision:
        return evaluate(request_origin, self.origins)


def _merge_vary(existing: str | None, value: str) -> str:
    return f"{existing}, {value}" if existing else value
