from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("backend.health")

router = APIRouter()


@router.get("/health/store")
async def health_store(request: Request):
    """Store reachability probe; builds the store on first call."""
    lazy = request.app.state.store
    try:
        store = lazy.get()
        ok = await store.ping()
    except Exception as e:
        logger.warning("Store health check failed: %s", e)
        # Do not leak internals in production; return a generic failure
        body = {"status": "fail", "store": False}
        if not request.app.state.settings.is_production:
            body["error"] = str(e)
        return JSONResponse(body, status_code=503)
    if not ok:
        return JSONResponse({"status": "fail", "store": False, "backend": store.name}, status_code=503)
    return {"status": "ok", "store": True, "backend": store.name}
