"""Translation of engine error codes to HTTP responses."""

from fastapi import status
from fastapi.responses import JSONResponse

STATUS_BY_CODE = {
    "invalid-argument": status.HTTP_400_BAD_REQUEST,
    "permission-denied": status.HTTP_403_FORBIDDEN,
    "not-found": status.HTTP_404_NOT_FOUND,
    "already-running": status.HTTP_409_CONFLICT,
    "failed-precondition": status.HTTP_412_PRECONDITION_FAILED,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(code: str | None, detail: str | None) -> JSONResponse:
    """Build the ``{"detail", "code"}`` body for an engine error code."""
    code = code or "internal"
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"detail": detail or "An unexpected error occurred", "code": code},
    )
