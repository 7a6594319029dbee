"""API error envelope helpers."""

from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from .repositories import ConflictError, NotFoundError


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """Build standard `{"error": {"code", "message"}}` envelope."""

    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})


def bad_request(message: str) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", message)


def invalid_weights(total: float, tolerance: float) -> JSONResponse:
    return error_response(
        422,
        "INVALID_WEIGHTS",
        f"Weights must sum to 1.0 (+/- {tolerance}); got {total:.4f}",
    )


def domain_error(exc: NotFoundError | ConflictError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        return error_response(status.HTTP_404_NOT_FOUND, "NOT_FOUND", str(exc))
    return error_response(status.HTTP_409_CONFLICT, "CONFLICT", str(exc))


def persistence_error(message: str) -> JSONResponse:
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "PERSISTENCE_ERROR", message)
