"""Response Envelope — the canonical success/failure wire shape.

Invariants:
    - success=True  → data present, error absent
    - success=False → error present, data absent
    - error.statusCode mirrors the HTTP status of the response

Design Decisions:
    - Pydantic models document and validate the shape; ok()/fail() build the
      plain dicts the pipeline serializes (ADR: no model round-trip per request)
    - error.details omitted when there are none
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


SAFE_INTERNAL_MESSAGE = "Internal server error"


class ErrorBody(BaseModel):
    """Failure payload — message, HTTP status and optional structured details."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    status_code: int = Field(alias="statusCode", ge=400, le=599)
    details: Any = None


class Envelope(BaseModel):
    """Either {success: true, data} or {success: false, error}."""
    success: bool
    data: Any = None
    error: ErrorBody | None = None

    @model_validator(mode="before")
    @classmethod
    def check_exclusive(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        has_data = "data" in values
        has_error = values.get("error") is not None
        if values.get("success") is True and (has_error or not has_data):
            raise ValueError("success envelope requires data and no error")
        if values.get("success") is False and (has_data or not has_error):
            raise ValueError("failure envelope requires error and no data")
        return values


def ok(data: Any) -> dict:
    """Success envelope."""
    return {"success": True, "data": data}


def fail(
    message: str = SAFE_INTERNAL_MESSAGE,
    status_code: int = 500,
    details: Any = None,
) -> dict:
    """Failure envelope. Defaults describe an unclassified internal error."""
    error: dict[str, Any] = {"message": message, "statusCode": status_code}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


def is_valid_envelope(body: Any) -> bool:
    """True when body satisfies exactly one of the two envelope shapes."""
    try:
        Envelope.model_validate(body)
    except ValueError:
        return False
    return True
