"""Rate Limiter — fixed-window request accounting per client key.

Invariants:
    - A window starts at the first request from a key and expires when
      now - window_start >= window_ms; the next request opens a fresh window with count=1
    - Within a window the request that brings count to exactly `limit` is allowed,
      every later one is rejected
    - check() is atomic per key: read, increment and decide happen under one lock
    - The window map never holds more than max_keys entries (least recently used evicted)

Design Decisions:
    - Rejection is a returned RateLimitDecision, not an exception: the pipeline turns
      it into a RateLimited envelope (ADR: tagged results for expected outcomes)
    - Key derivation is a pluggable strategy; the default collapses every caller onto
      one constant key, so the service is throttled globally unless reconfigured
    - Clock injectable (milliseconds) so window arithmetic is testable without sleeping
"""

import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from gateway.core.context import RequestContext

DEFAULT_WINDOW_MS = 60_000
DEFAULT_LIMIT = 100
DEFAULT_MAX_KEYS = 10_000
CONSTANT_CLIENT_KEY = "<unique_key>"

Clock = Callable[[], float]
KeyGenerator = Callable[[RequestContext], str]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int = DEFAULT_WINDOW_MS
    limit: int = DEFAULT_LIMIT
    max_keys: int = DEFAULT_MAX_KEYS

    def __post_init__(self):
        for name in ("window_ms", "limit", "max_keys"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class WindowEntry:
    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one check: allowed or rejected, plus quota figures for headers."""
    allowed: bool
    limit: int
    remaining: int
    reset_after_ms: float
    window_ms: int

    @property
    def retry_after_seconds(self) -> int:
        return max(0, math.ceil(self.reset_after_ms / 1000))

    def to_headers(self) -> dict[str, str]:
        """IETF draft-6 RateLimit-* headers; Retry-After added on rejection."""
        headers = {
            "RateLimit-Policy": f"{self.limit};w={math.ceil(self.window_ms / 1000)}",
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.retry_after_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class FixedWindowRateLimiter:
    """In-memory fixed-window counter keyed by client key."""

    def __init__(self, config: RateLimitConfig | None = None, clock: Clock = monotonic_ms):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._windows: OrderedDict[str, WindowEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, client_key: str) -> RateLimitDecision:
        """Count one request for client_key and decide whether it may proceed."""
        window_ms = self.config.window_ms
        limit = self.config.limit
        with self._lock:
            now = self._clock()
            entry = self._windows.get(client_key)
            if entry is None or now - entry.window_start >= window_ms:
                entry = WindowEntry(count=1, window_start=now)
                self._windows[client_key] = entry
            else:
                entry.count += 1
            self._windows.move_to_end(client_key)
            self._evict_overflow()

            allowed = entry.count <= limit
            return RateLimitDecision(
                allowed=allowed,
                limit=limit,
                remaining=max(0, limit - entry.count),
                reset_after_ms=entry.window_start + window_ms - now,
                window_ms=window_ms,
            )

    def peek(self, client_key: str) -> WindowEntry | None:
        """Current window for client_key without counting a request."""
        with self._lock:
            entry = self._windows.get(client_key)
            if entry is None:
                return None
            return WindowEntry(entry.count, entry.window_start)

    def reset(self, client_key: str | None = None) -> None:
        """Forget one key's window, or every window when client_key is None."""
        with self._lock:
            if client_key is None:
                self._windows.clear()
            else:
                self._windows.pop(client_key, None)

    def sweep_expired(self) -> int:
        """Drop windows whose period has elapsed. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._windows.items()
                if now - entry.window_start >= self.config.window_ms
            ]
            for key in expired:
                del self._windows[key]
            return len(expired)

    def _evict_overflow(self) -> None:
        while len(self._windows) > self.config.max_keys:
            self._windows.popitem(last=False)


# ─── Key Generators ─────────────────────────────────────────────

def constant_key(ctx: RequestContext) -> str:
    """Every caller shares one bucket."""
    return CONSTANT_CLIENT_KEY


def client_address_key(ctx: RequestContext) -> str:
    """Bucket per socket peer address."""
    return ctx.client_address or CONSTANT_CLIENT_KEY


def forwarded_for_key(ctx: RequestContext) -> str:
    """Bucket per first X-Forwarded-For hop, falling back to the peer address."""
    forwarded = ctx.header("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return client_address_key(ctx)


KEY_GENERATORS: dict[str, KeyGenerator] = {
    "constant": constant_key,
    "client_address": client_address_key,
    "forwarded_for": forwarded_for_key,
}


def get_key_generator(strategy: str) -> KeyGenerator:
    try:
        return KEY_GENERATORS[strategy]
    except KeyError:
        raise ValueError(
            f"Unknown rate limit key strategy '{strategy}'. "
            f"Expected one of: {', '.join(sorted(KEY_GENERATORS))}",
        ) from None
