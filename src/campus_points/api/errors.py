"""Translate ledger engine rejections into HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from campus_points.services.ledger.errors import (
    ConflictError,
    LedgerError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    ValidationError,
)


_STATUS_BY_CODE: dict[str, int] = {
    ValidationError.code: status.HTTP_400_BAD_REQUEST,
    NotFoundError.code: status.HTTP_404_NOT_FOUND,
    PreconditionFailedError.code: status.HTTP_400_BAD_REQUEST,
    ConflictError.code: status.HTTP_409_CONFLICT,
    PermissionDeniedError.code: status.HTTP_403_FORBIDDEN,
}


def status_for(error: LedgerError) -> int:
    return _STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.message, "code": exc.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)


__all__ = ["ledger_error_handler", "register_error_handlers", "status_for"]
