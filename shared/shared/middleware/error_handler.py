import logging
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

# Statuses a client may retry unchanged (write conflict, store unavailable).
_RETRYABLE_STATUSES = frozenset({status.HTTP_409_CONFLICT, status.HTTP_503_SERVICE_UNAVAILABLE})


def _envelope(
    request: Request,
    status_code: int,
    code: str,
    message: object,
    details: object = None,
) -> JSONResponse:
    error: dict = {
        "code": code,
        "message": message,
        "retryable": status_code in _RETRYABLE_STATUSES,
    }
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render an HTTPException as the error envelope.

    A dict ``detail`` may carry ``code``, ``message`` and ``details``;
    a string detail is used as both code and message.
    """
    detail = exc.detail
    if isinstance(detail, dict):
        return _envelope(
            request,
            exc.status_code,
            str(detail.get("code", "http_error")),
            detail.get("message", ""),
            detail.get("details"),
        )
    if isinstance(detail, str):
        return _envelope(request, exc.status_code, detail, detail)
    return _envelope(request, exc.status_code, "http_error", str(detail))


async def error_envelope_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    try:
        return await call_next(request)
    except StarletteHTTPException as exc:
        return await http_exception_handler(request, exc)
    except Exception:
        logger.exception("Unhandled exception")
        return _envelope(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "An unexpected error occurred",
        )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.middleware("http")(error_envelope_middleware)
