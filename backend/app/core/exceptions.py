"""
Domain errors raised by the services.

Each error carries a machine-readable `kind` alongside the HTTP status so
clients can tell a full room from an occupied bed without parsing messages.
They subclass HTTPException, so a service can raise them directly and the
route layer needs no translation.
"""

from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class AppError(HTTPException):
    kind = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


class NotFoundError(AppError):
    """Room, bed, student, allocation or maintenance request is absent."""

    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(AppError):
    """Missing or out-of-range input the schema layer could not catch."""

    kind = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class CapacityConflictError(AppError):
    """Mutation would strand occupied beds or exceed a room's capacity."""

    kind = "capacity_conflict"
    status_code = status.HTTP_409_CONFLICT


class ConflictError(AppError):
    """Bed unavailable, bed/room mismatch, duplicate or concurrent write."""

    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class UnauthorizedError(AppError):
    kind = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers,
    )
