"""
Engine error taxonomy.

Errors subclass FastAPI's HTTPException so service code can raise them
directly and routers pass them through unchanged.
"""

from typing import Any, Optional

from fastapi import HTTPException


class BookingEngineError(HTTPException):
    """Base class for typed engine errors"""

    status_code = 500
    default_code = "engine_error"

    def __init__(self, detail: str, code: Optional[str] = None, context: Optional[dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.code = code or self.default_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code, **({"context": self.context} if self.context else {})}


class NotFoundError(BookingEngineError):
    status_code = 404
    default_code = "not_found"


class BadRequestError(BookingEngineError):
    status_code = 400
    default_code = "bad_request"


class ConflictError(BookingEngineError):
    status_code = 409
    default_code = "conflict"


class ForbiddenError(BookingEngineError):
    status_code = 403
    default_code = "forbidden"


class InvalidTransitionError(BadRequestError):
    default_code = "invalid_transition"


# Shared by the availability pre-check and the commit-time re-check
SLOT_UNAVAILABLE = "slot_unavailable"
