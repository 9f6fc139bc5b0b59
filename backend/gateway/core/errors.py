"""Error Taxonomy — the closed set of failure kinds every gateway failure maps to.

Invariants:
    - ErrorKind is closed: Validation, NotFound, RateLimited, Upstream, Internal, Timeout
    - GatewayError.status_code is always within [400, 599]
    - to_response() produces the failure half of the response envelope
    - Internal errors built from unclassified exceptions never carry the original message

Design Decisions:
    - Single GatewayError class tagged by ErrorKind: handlers branch on .kind,
      not on subclass identity (ADR: tagged variant over exception hierarchy)
    - Per-kind constructors keep default status codes in one table
"""

from enum import Enum
from typing import Any

from gateway.core.envelope import SAFE_INTERNAL_MESSAGE, fail


class ErrorKind(str, Enum):
    """Classified failure kinds."""
    VALIDATION = "Validation"
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    UPSTREAM = "Upstream"
    INTERNAL = "Internal"
    TIMEOUT = "Timeout"


DEFAULT_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.INTERNAL: 500,
    ErrorKind.TIMEOUT: 504,
}


class GatewayError(Exception):
    """Structured failure raised by route handlers or built by the pipeline."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ):
        kind = ErrorKind(kind)
        status_code = DEFAULT_STATUS[kind] if status_code is None else status_code
        if not 400 <= status_code <= 599:
            raise ValueError(
                f"status_code must be within [400, 599], got {status_code}",
            )
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.details = details

    def __repr__(self) -> str:
        return (
            f"GatewayError(kind={self.kind.value!r}, "
            f"status_code={self.status_code}, message={self.message!r})"
        )

    def to_response(self) -> dict:
        """Failure envelope body for this error."""
        return fail(self.message, self.status_code, self.details)

    # ─── Constructors ───────────────────────────────────────────

    @classmethod
    def validation(cls, message: str, details: Any = None) -> "GatewayError":
        return cls(ErrorKind.VALIDATION, message, details=details)

    @classmethod
    def not_found(
        cls, message: str = "Route not found", details: Any = None,
    ) -> "GatewayError":
        return cls(ErrorKind.NOT_FOUND, message, details=details)

    @classmethod
    def payload_too_large(
        cls, message: str = "Request body too large", details: Any = None,
    ) -> "GatewayError":
        return cls(ErrorKind.VALIDATION, message, 413, details)

    @classmethod
    def rate_limited(
        cls,
        message: str = "Too many requests, please try again later.",
        details: Any = None,
    ) -> "GatewayError":
        return cls(ErrorKind.RATE_LIMITED, message, details=details)

    @classmethod
    def upstream(
        cls, message: str, status_code: int = 502, details: Any = None,
    ) -> "GatewayError":
        """Upstream data source failure: 502 (bad gateway) or 503 (unavailable)."""
        if status_code not in (502, 503):
            raise ValueError("upstream errors use status 502 or 503")
        return cls(ErrorKind.UPSTREAM, message, status_code, details)

    @classmethod
    def internal(cls) -> "GatewayError":
        return cls(ErrorKind.INTERNAL, SAFE_INTERNAL_MESSAGE)

    @classmethod
    def timeout(
        cls, message: str = "Upstream request timed out", details: Any = None,
    ) -> "GatewayError":
        return cls(ErrorKind.TIMEOUT, message, details=details)

    @classmethod
    def from_status(
        cls, status_code: int, message: str, details: Any = None,
    ) -> "GatewayError":
        """Classify a bare HTTP status raised by the framework (404, 405, 422...)."""
        kind = _KIND_BY_STATUS.get(status_code)
        if kind is None:
            kind = ErrorKind.INTERNAL if status_code >= 500 else ErrorKind.VALIDATION
        return cls(kind, message, status_code, details)


_KIND_BY_STATUS: dict[int, ErrorKind] = {
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.NOT_FOUND,
    429: ErrorKind.RATE_LIMITED,
    502: ErrorKind.UPSTREAM,
    503: ErrorKind.UPSTREAM,
    504: ErrorKind.TIMEOUT,
}
