"""Per-request log context: correlation id and slow request warnings."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with its id and times the request.

    The id comes from the ``X-Request-ID`` header when the client sends one,
    otherwise an 8-character UUID prefix is generated. It is echoed back in
    the response headers.

    Attributes:
        slow_request_threshold: Seconds after which a request is logged as slow.
    """

    def __init__(self, app, slow_request_threshold: float = 1.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        with logger.contextualize(request_id=request_id):
            started = time.perf_counter()
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            # Measured until headers are ready, so open event streams do not count
            if elapsed > self.slow_request_threshold:
                logger.warning(
                    f"Slow request: {request.method} {request.url.path} took {elapsed:.2f}s"
                )
            response.headers["X-Request-ID"] = request_id
            return response
