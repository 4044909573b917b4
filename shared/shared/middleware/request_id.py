import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

_MAX_REQUEST_ID_LEN = 64


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Propagate (or mint) an X-Request-ID and log request timing against it."""
    incoming = (request.headers.get("X-Request-ID") or "").strip()
    request_id = incoming[:_MAX_REQUEST_ID_LEN] or str(uuid.uuid4())
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    response.headers["X-Request-ID"] = request_id
    logger.debug(
        "%s %s -> %s in %.1fms [%s]",
        request.method, request.url.path, response.status_code, elapsed_ms, request_id,
    )
    return response
