"""API Documentation — serves the static OpenAPI artifact and a Swagger UI over it.

Invariants:
    - GET /doc returns the OpenAPI document verbatim (bundled file unless OPENAPI_DOC_PATH is set)
    - GET /ui renders Swagger UI pointed at /doc
    - The document is read from disk once per path and cached
"""

import json
from functools import lru_cache
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse

router = APIRouter(tags=["docs"])

BUNDLED_DOC_PATH = Path(__file__).resolve().parents[2] / "static" / "openapi.json"
DOC_URL = "/doc"


@lru_cache
def load_openapi_document(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def doc_path(request: Request) -> str:
    configured = request.app.state.settings.openapi_doc_path
    return configured or str(BUNDLED_DOC_PATH)


@router.get(DOC_URL)
async def openapi_document(request: Request) -> JSONResponse:
    return JSONResponse(load_openapi_document(doc_path(request)))


@router.get("/ui", response_class=HTMLResponse)
async def swagger_ui(request: Request) -> HTMLResponse:
    return get_swagger_ui_html(openapi_url=DOC_URL, title=f"{request.app.title} - Swagger UI")
