import logging
import os
import sys
import time
import uuid
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Polled by uptime checks; logged at DEBUG to keep INFO readable
QUIET_PATHS = frozenset({"/health", "/health/store"})

# Noisy third-party loggers kept at WARNING unless LOG_LEVEL=DEBUG
_CHATTY_LIBRARIES = ("google.auth", "urllib3", "sqlalchemy.engine", "multipart")


def setup_logging(level_name: str = None, fmt: str = None) -> None:
    """Configure the root logger once and align uvicorn's loggers with it.

    LOG_LEVEL (default INFO) and LOG_FORMAT are read from the environment
    unless passed explicitly. Existing handlers (uvicorn's) are reused.
    """
    level_name = (level_name or os.getenv("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt or os.getenv("LOG_FORMAT") or DEFAULT_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    if level > logging.DEBUG:
        for name in _CHATTY_LIBRARIES:
            logging.getLogger(name).setLevel(logging.WARNING)


def _client_ip(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else ""


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """One start line and one end line per request, tied by a request id.

    An incoming X-Request-ID is reused; the id is echoed on the response.
    """

    def __init__(self, app):
        super().__init__(app)
        self.logger = logging.getLogger("backend.http")

    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        started = time.perf_counter()

        self.logger.log(level, "-> %s %s client=%s rid=%s", request.method, path, _client_ip(request), rid)
        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                "!! %s %s failed after %dms rid=%s",
                request.method, path, (time.perf_counter() - started) * 1000, rid,
            )
            raise

        response.headers["x-request-id"] = rid
        self.logger.log(
            level,
            "<- %s %s %s %dms rid=%s",
            request.method, path, response.status_code, (time.perf_counter() - started) * 1000, rid,
        )
        return response
