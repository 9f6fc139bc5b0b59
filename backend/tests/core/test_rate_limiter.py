"""Rate Limiter tests — fixed-window accounting with an injected clock.

Tests cover:
    - requests 1..limit allowed, limit+1 rejected
    - window resets exactly when now - window_start >= window_ms
    - keys are accounted independently
    - RateLimit-* headers and Retry-After
    - LRU bound and sweep of expired windows
    - key generators (constant, client_address, forwarded_for)
    - concurrent checks never admit more than limit
"""

import threading

import pytest

from gateway.core.context import RequestContext
from gateway.core.rate_limiter import (
    CONSTANT_CLIENT_KEY,
    FixedWindowRateLimiter,
    RateLimitConfig,
    client_address_key,
    constant_key,
    forwarded_for_key,
    get_key_generator,
)


def _limiter(clock, window_ms=60_000, limit=100, max_keys=10_000):
    return FixedWindowRateLimiter(
        RateLimitConfig(window_ms=window_ms, limit=limit, max_keys=max_keys), clock=clock,
    )


# ─── Configuration ──────────────────────────────────────────────

def test_config_defaults():
    config = RateLimitConfig()
    assert config.window_ms == 60_000
    assert config.limit == 100


@pytest.mark.parametrize("field", ["window_ms", "limit", "max_keys"])
def test_config_rejects_non_positive_values(field):
    with pytest.raises(ValueError):
        RateLimitConfig(**{field: 0})


# ─── Window accounting ──────────────────────────────────────────

def test_requests_up_to_limit_are_allowed(clock):
    limiter = _limiter(clock, limit=100)
    decisions = [limiter.check("k") for _ in range(100)]
    assert all(d.allowed for d in decisions)
    assert decisions[-1].remaining == 0


def test_request_after_limit_is_rejected(clock):
    limiter = _limiter(clock, limit=100)
    for _ in range(100):
        limiter.check("k")
    decision = limiter.check("k")
    assert not decision.allowed
    assert decision.remaining == 0


def test_limit_boundary_is_inclusive(clock):
    limiter = _limiter(clock, limit=3)
    assert [limiter.check("k").allowed for _ in range(4)] == [True, True, True, False]


def test_window_still_open_just_before_expiry(clock):
    limiter = _limiter(clock, window_ms=1000, limit=1)
    limiter.check("k")
    clock.advance(999)
    assert not limiter.check("k").allowed


def test_window_resets_exactly_at_expiry(clock):
    limiter = _limiter(clock, window_ms=1000, limit=1)
    limiter.check("k")
    limiter.check("k")
    clock.advance(1000)
    decision = limiter.check("k")
    assert decision.allowed
    assert limiter.peek("k").count == 1
    assert limiter.peek("k").window_start == clock.now


def test_keys_are_independent(clock):
    limiter = _limiter(clock, limit=1)
    assert limiter.check("a").allowed
    assert not limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_reset_after_counts_down_within_window(clock):
    limiter = _limiter(clock, window_ms=60_000, limit=5)
    limiter.check("k")
    clock.advance(20_000)
    decision = limiter.check("k")
    assert decision.reset_after_ms == 40_000
    assert decision.retry_after_seconds == 40


def test_reset_clears_one_key_or_all(clock):
    limiter = _limiter(clock)
    limiter.check("a")
    limiter.check("b")
    limiter.reset("a")
    assert limiter.peek("a") is None
    assert limiter.peek("b") is not None
    limiter.reset()
    assert len(limiter) == 0


# ─── Headers ────────────────────────────────────────────────────

def test_headers_on_allowed_request(clock):
    limiter = _limiter(clock, window_ms=60_000, limit=100)
    headers = limiter.check("k").to_headers()
    assert headers == {
        "RateLimit-Policy": "100;w=60",
        "RateLimit-Limit": "100",
        "RateLimit-Remaining": "99",
        "RateLimit-Reset": "60",
    }


def test_headers_on_rejected_request_include_retry_after(clock):
    limiter = _limiter(clock, limit=1)
    limiter.check("k")
    headers = limiter.check("k").to_headers()
    assert headers["RateLimit-Remaining"] == "0"
    assert headers["Retry-After"] == "60"


# ─── Bounded state ──────────────────────────────────────────────

def test_least_recently_used_key_is_evicted(clock):
    limiter = _limiter(clock, max_keys=2)
    limiter.check("a")
    limiter.check("b")
    limiter.check("a")
    limiter.check("c")
    assert len(limiter) == 2
    assert limiter.peek("b") is None
    assert limiter.peek("a") is not None


def test_sweep_removes_only_expired_windows(clock):
    limiter = _limiter(clock, window_ms=1000)
    limiter.check("old")
    clock.advance(600)
    limiter.check("new")
    clock.advance(400)
    assert limiter.sweep_expired() == 1
    assert limiter.peek("old") is None
    assert limiter.peek("new") is not None


# ─── Concurrency ────────────────────────────────────────────────

def test_concurrent_checks_never_exceed_limit():
    limiter = FixedWindowRateLimiter(RateLimitConfig(window_ms=60_000, limit=50))
    allowed = []
    lock = threading.Lock()

    def worker():
        for _ in range(20):
            decision = limiter.check("shared")
            with lock:
                allowed.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert allowed.count(True) == 50
    assert limiter.peek("shared").count == 160


# ─── Key generators ─────────────────────────────────────────────

def test_constant_key_collapses_all_clients():
    a = RequestContext.create("GET", "/", client_address="10.0.0.1")
    b = RequestContext.create("GET", "/", client_address="10.0.0.2")
    assert constant_key(a) == constant_key(b) == CONSTANT_CLIENT_KEY


def test_client_address_key_uses_peer_address():
    ctx = RequestContext.create("GET", "/", client_address="10.0.0.1")
    assert client_address_key(ctx) == "10.0.0.1"


def test_forwarded_for_key_prefers_first_hop():
    ctx = RequestContext.create(
        "GET", "/", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        client_address="10.0.0.1",
    )
    assert forwarded_for_key(ctx) == "203.0.113.7"


def test_forwarded_for_key_falls_back_to_peer():
    ctx = RequestContext.create("GET", "/", client_address="10.0.0.9")
    assert forwarded_for_key(ctx) == "10.0.0.9"


def test_unknown_key_strategy_is_rejected():
    with pytest.raises(ValueError, match="Unknown rate limit key strategy"):
        get_key_generator("per_user")
