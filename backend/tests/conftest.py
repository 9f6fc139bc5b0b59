"""Root conftest — shared test configuration and app fixtures.

Invariants:
    - Deployment configuration from the environment never leaks into tests
    - Every test app is built by create_app() with explicit Settings (fresh limiter per test)
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

for _name in (
    "ORIGIN", "RATE_LIMIT_WINDOW_MS", "RATE_LIMIT_LIMIT", "RATE_LIMIT_MAX_KEYS",
    "RATE_LIMIT_KEY_STRATEGY", "HANDLER_TIMEOUT_MS", "MAX_BODY_BYTES", "OPENAPI_DOC_PATH", "PORT",
):
    os.environ.pop(_name, None)

from gateway.config import Settings  # noqa: E402
from gateway.main import create_app  # noqa: E402


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def make_client():
    """Factory: build an app from Settings overrides (+ route registrars) and open a client."""
    clients: list[AsyncClient] = []

    async def _make(*registrars, **overrides) -> AsyncClient:
        app = create_app(Settings(**overrides), *registrars)
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture
async def client(make_client):
    """Client for an app with default settings."""
    return await make_client()
