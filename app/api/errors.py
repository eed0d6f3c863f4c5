"""Translate engine errors into JSON responses.

Each EngineError subclass carries its own status code; the body is
``{"error": message, "code": code, ...context}``.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import EngineError, UnauthorizedError


async def engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)  # type: ignore[arg-type]
