from __future__ import annotations

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ..services.log_reader import LogKind, LogReadError, log_path, read_log_file

router = APIRouter(prefix="/api/metrics", tags=["metrics"])
logger = logging.getLogger(__name__)


async def _serve(kind: LogKind) -> JSONResponse:
    try:
        entries = await read_log_file(log_path(kind))
    except LogReadError as exc:
        logger.warning("Log file %s unreadable: %s", kind.value, exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": exc.message},
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content=entries)


@router.get("")
async def get_metrics() -> JSONResponse:
    return await _serve(LogKind.metrics)


@router.get("/errors")
async def get_errors() -> JSONResponse:
    return await _serve(LogKind.errors)


@router.get("/warnings")
async def get_warnings() -> JSONResponse:
    return await _serve(LogKind.warnings)


@router.get("/dead-letters")
async def get_dead_letters() -> JSONResponse:
    return await _serve(LogKind.dead_letters)
