"""Liveness & Diagnostics — plain-text probes and an environment echo.

Invariants:
    - GET / and GET /ping always return 200 text/plain while the process is up
    - / and /ping also answer HEAD
    - GET /test echoes non-secret configuration only (environment, port, origin)
    - These routes are outside /api/v1: plain bodies, no response envelope
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

WELCOME_TEXT = "welcome to anime API 🎉 start by hitting /api/v1 for documentation"


@router.api_route("/", methods=["GET", "HEAD"], response_class=PlainTextResponse)
async def root():
    logger.debug("Root endpoint accessed")
    return WELCOME_TEXT


@router.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
async def ping():
    """Health check."""
    return "pong"


@router.get("/test")
async def diagnostics(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "message": "Backend is working correctly",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "env": {
            "environment": settings.environment,
            "port": settings.port,
            "origin": settings.origin,
        },
    }
