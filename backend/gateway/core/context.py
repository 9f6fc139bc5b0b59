"""Request Context — per-request immutable view plus the mutable response builder.

Invariants:
    - RequestContext is frozen; derived values (client key, route params) produce a copy
    - Header names are lower-cased
    - ResponseBuilder only accumulates headers; stages never write bodies into it
    - GatewayResponse.headers never contains content-length (the host computes it)
    - body_too_large marks a request whose body exceeded the read limit; body is then empty
"""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

DEFAULT_MAX_BODY_BYTES = 1024 * 1024


@dataclass
class ResponseBuilder:
    """Headers collected by pipeline stages, applied to whatever response is sent."""
    headers: dict[str, str] = field(default_factory=dict)

    def set_headers(self, headers: Mapping[str, str]) -> None:
        self.headers.update(headers)


@dataclass(frozen=True)
class RequestContext:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: str | None = None
    body_too_large: bool = False
    client_key: str | None = None
    params: Mapping[str, str] = field(default_factory=dict)
    response: ResponseBuilder = field(default_factory=ResponseBuilder, compare=False)

    @classmethod
    def create(
        cls,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> "RequestContext":
        """Build a context, normalizing method case and header names."""
        return cls(
            method=method.upper(),
            path=path,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            **kwargs,
        )

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def with_client_key(self, client_key: str) -> "RequestContext":
        return replace(self, client_key=client_key)

    def with_params(self, params: Mapping[str, str]) -> "RequestContext":
        return replace(self, params=dict(params))

    def json(self) -> Any:
        """Decode the request body as JSON. Empty body decodes to None."""
        if not self.body:
            return None
        return json.loads(self.body)


@dataclass
class GatewayResponse:
    """A fully-formed response produced by the pipeline."""
    status_code: int
    body: bytes = b""
    media_type: str | None = "application/json"
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def json(
        cls, status_code: int, content: Any, headers: Mapping[str, str] | None = None,
    ) -> "GatewayResponse":
        return cls(
            status_code=status_code,
            body=json.dumps(content, ensure_ascii=False, separators=(",", ":")).encode("utf-8"),
            media_type="application/json",
            headers=dict(headers or {}),
        )

    @classmethod
    def empty(
        cls, status_code: int = 204, headers: Mapping[str, str] | None = None,
    ) -> "GatewayResponse":
        return cls(status_code=status_code, media_type=None, headers=dict(headers or {}))

    def body_json(self) -> Any:
        return json.loads(self.body) if self.body else None
