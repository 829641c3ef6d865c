"""
HTTP error taxonomy shared by the route handlers.
"""
from typing import Iterable

from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError


class ValidationError(HTTPException):
    """Invalid or missing input (400)."""

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=400, detail=detail)


class ConflictError(HTTPException):
    """Duplicate resource; reported as 400 like every other input problem."""

    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=400, detail=detail)


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(
            status_code=401,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


def format_validation_errors(errors: Iterable[dict]) -> str:
    """Join pydantic error entries into a single human-readable message."""
    messages = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        msg = err.get("msg", "Invalid value")
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "Validation Error: " + ", ".join(messages)


def validation_error_from(exc: PydanticValidationError) -> ValidationError:
    return ValidationError(format_validation_errors(exc.errors()))
