"""Traduction erreurs OMS -> réponses HTTP (le coeur ne connaît pas HTTP)."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.exceptions import (
    ExpiredOrder,
    InsufficientInventory,
    InvalidStateTransition,
    LedgerConsistencyError,
    NotFoundError,
    OMSError,
    PersistenceError,
    UnauthorizedActor,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[OMSError], int] = {
    ValidationError: 400,
    UnauthorizedActor: 403,
    NotFoundError: 404,
    InvalidStateTransition: 409,
    InsufficientInventory: 409,
    ExpiredOrder: 410,
    LedgerConsistencyError: 500,
    PersistenceError: 503,
}


def status_for(exc: OMSError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


async def oms_error_handler(request: Request, exc: OMSError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        # détails internes : logs uniquement
        logger.error("OMS failure on %s %s: %s", request.method, request.url.path, exc.to_dict())
        return JSONResponse(status_code=status_code, content={"code": exc.code, "message": "Internal error"})

    logger.info("OMS %s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OMSError, oms_error_handler)
