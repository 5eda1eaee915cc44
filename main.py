import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from routers.core import router as core_router
from routers.forms import router as forms_router
from routers.health import router as health_router
from routers.ingest import build_router as build_ingest_router
from services.ingestion import IngestionService
from services.notifications import NotificationDispatcher
from services.providers import LazyStore, build_store
from services.store import StoreUnavailable, SubmissionStore
from utils.config import Settings, get_settings
from utils.limiter import create_limiter
from utils.logger import RequestContextLogMiddleware, setup_logging

# Path used by the original Express server; kept so old embeds keep posting
LEGACY_INGEST_PREFIX = "/forms"

logger = logging.getLogger("backend")


def _safe_message(status_code: int) -> str:
    mapping = {
        400: "Invalid request.",
        401: "Unauthorized.",
        403: "Action not allowed.",
        404: "Not found.",
        405: "Method not allowed.",
        409: "Conflict.",
        413: "Request too large.",
        415: "Unsupported request.",
        422: "Invalid request.",
        429: "Too many requests.",
        500: "Something went wrong. Please try again.",
        503: "Service unavailable. Please try again.",
    }
    return mapping.get(int(status_code or 500), "Something went wrong. Please try again.")


def _install_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_sanitizer(request: Request, exc: HTTPException):
        if settings.is_production:
            # Preserve status code; sanitize message
            return JSONResponse(status_code=exc.status_code, content={"detail": _safe_message(exc.status_code)})
        detail = str(exc.detail) if getattr(exc, "detail", None) else _safe_message(exc.status_code)
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected invalid request %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=422, content={"detail": _safe_message(422)})

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Submission store unavailable"})

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error")
        return JSONResponse(status_code=500, content={"detail": _safe_message(500)})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SubmissionStore] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """Build the API. The store is created lazily on first use unless injected."""
    settings = settings or get_settings()
    lazy_store = LazyStore(lambda: build_store(settings), store)
    if dispatcher is None:
        dispatcher = NotificationDispatcher(mode=settings.notification_mode, timeout=settings.notification_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await dispatcher.drain()
        await lazy_store.close()
        logger.info("Shutdown complete")

    app = FastAPI(title="formdrop API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = lazy_store
    app.state.dispatcher = dispatcher
    app.state.ingestion = IngestionService(lazy_store, dispatcher, settings)

    prefixes = [settings.ingest_prefix]
    if settings.ingest_prefix != LEGACY_INGEST_PREFIX:
        prefixes.append(LEGACY_INGEST_PREFIX)
    app.state.ingest_prefixes = prefixes

    # slowapi middleware and handlers look the limiter up on app.state
    limiter = create_limiter(settings)
    app.state.limiter = limiter

    _install_exception_handlers(app, settings)

    app.add_middleware(SlowAPIMiddleware)
    # Forms are embedded on arbitrary sites
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,  # Must be False when allow_origins=["*"]
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Request/response logging middleware
    app.add_middleware(RequestContextLogMiddleware)

    app.include_router(core_router)
    app.include_router(health_router)
    app.include_router(forms_router)
    ingest_router = build_ingest_router(limiter, settings.rate_limit)
    for prefix in prefixes:
        app.include_router(ingest_router, prefix=prefix)

    logger.info(
        "formdrop API ready store=%s ingest=%s notifications=%s",
        settings.store_backend,
        ",".join(prefixes),
        dispatcher.mode,
    )
    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
