"""Uniform JSON error bodies and the exception handlers that produce them."""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core.errors import SupportBotError
from ..utils.datetime import utc_iso

logger = logging.getLogger("supportbot.api.errors")


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {"code": code, "message": message, "details": details or {}},
        "timestamp": utc_iso(),
    }


def error_response(status_code: int, code: str, message: str,
                   details: Optional[Dict[str, Any]] = None,
                   headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message, details), headers=headers)


async def _handle_supportbot_error(request: Request, exc: SupportBotError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    details = {"errors": [err.get("msg") for err in errors]}
    # Malformed bodies on the turn endpoint are reported like an invalid message
    if any(err.get("loc", ("",))[0] == "body" for err in errors):
        return error_response(
            400, "INVALID_MESSAGE", "Request body must be a JSON object with a non-empty 'message' string", details,
        )
    return error_response(400, "INVALID_REQUEST", "Invalid request parameters", details)


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SupportBotError, _handle_supportbot_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(Exception, _handle_unexpected)
