"""
Public ingestion endpoint. Mounted twice by main.py: under INGEST_PREFIX
(default /api/f) and under the legacy /forms prefix.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from slowapi import Limiter
from starlette.datastructures import UploadFile

from services.body_decoder import RawBody, add_field, media_type
from services.ingestion import CORS_HEADERS
from utils.form_ids import get_form_url
from utils.html_snippets import endpoint_info_page

logger = logging.getLogger("backend.ingest")

MULTIPART_CONTENT_TYPE = "multipart/form-data"


def _form_to_mapping(form) -> Dict[str, Any]:
    """Flatten parsed multipart fields; files are recorded by filename."""
    mapping: Dict[str, Any] = {}
    for key, value in form.multi_items():
        if not key:
            continue
        if isinstance(value, UploadFile):
            value = value.filename or ""
        add_field(mapping, key, value)
    return mapping


async def _read_body(request: Request) -> RawBody:
    if media_type(request.headers.get("content-type")) == MULTIPART_CONTENT_TYPE:
        try:
            form = await request.form()
        except Exception as e:
            logger.warning("Could not parse multipart body path=%s: %s", request.url.path, e)
            return RawBody.from_mapping({})
        try:
            return RawBody.from_mapping(_form_to_mapping(form))
        finally:
            await form.close()
    return RawBody.from_bytes(await request.body())


async def _dispatch(request: Request, form_id: str):
    raw_body = RawBody.from_bytes(b"")
    if request.method == "POST":
        raw_body = await _read_body(request)
    service = request.app.state.ingestion
    return await service.handle(request.method, form_id, request.headers, raw_body)


def build_router(limiter: Limiter, rate_limit: str) -> APIRouter:
    """Ingestion routes with POSTs limited by the app's own limiter."""
    router = APIRouter(tags=["ingest"])

    @router.post("", include_in_schema=False)
    @router.post("/")
    @limiter.limit(rate_limit)
    async def submit_without_id(request: Request):
        """POST without a form id always answers 400 Missing formId."""
        return await _dispatch(request, "")

    @router.post("/{form_id}")
    @limiter.limit(rate_limit)
    async def submit_form(request: Request, form_id: str):
        return await _dispatch(request, form_id)

    @router.options("/{form_id}")
    async def submit_preflight(request: Request, form_id: str):
        return await _dispatch(request, form_id)

    @router.get("/{form_id}", response_class=HTMLResponse)
    async def endpoint_info(request: Request, form_id: str):
        settings = request.app.state.settings
        post_url = get_form_url(form_id, settings.public_base_url, settings.ingest_prefix)
        return HTMLResponse(endpoint_info_page(form_id, post_url), headers=CORS_HEADERS)

    @router.api_route("/{form_id}", methods=["PUT", "PATCH", "DELETE"], include_in_schema=False)
    async def unsupported_method(request: Request, form_id: str):
        return await _dispatch(request, form_id)

    return router
