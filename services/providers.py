"""
Process-lifetime handles: the store is built on first use and then reused.
"""
import logging
import threading
from typing import Callable, Optional

from fastapi import HTTPException, Request

from services.store import StoreUnavailable, SubmissionStore
from utils.config import Settings

logger = logging.getLogger("backend.providers")


def build_store(settings: Settings) -> SubmissionStore:
    backend = settings.store_backend
    if backend == "memory":
        from services.memory_store import MemorySubmissionStore
        return MemorySubmissionStore()
    if backend == "sql":
        from services.sql_store import SqlSubmissionStore
        return SqlSubmissionStore(settings.database_url, poll_interval=settings.sql_poll_interval)
    if backend == "firestore":
        from services.firestore_store import FirestoreSubmissionStore
        return FirestoreSubmissionStore(settings)
    raise StoreUnavailable(f"Unknown STORE_BACKEND: {backend!r}")


class LazyStore:
    """Check-then-set holder for the store handle.

    Building a store is idempotent, so the lock only keeps concurrent first
    requests from doing the setup twice.
    """

    def __init__(self, factory: Callable[[], SubmissionStore], store: Optional[SubmissionStore] = None):
        self._factory = factory
        self._store = store
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._store is not None

    def get(self) -> SubmissionStore:
        if self._store is None:
            with self._lock:
                if self._store is None:
                    store = self._factory()
                    logger.info("Store initialized backend=%s", store.name)
                    self._store = store
        return self._store

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()


# FastAPI dependencies; create_app puts the handles on app.state

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lazy_store(request: Request) -> LazyStore:
    return request.app.state.store


def get_store(request: Request) -> SubmissionStore:
    try:
        return request.app.state.store.get()
    except StoreUnavailable as e:
        logger.error("Store unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Submission store unavailable")


def get_ingestion_service(request: Request):
    return request.app.state.ingestion
