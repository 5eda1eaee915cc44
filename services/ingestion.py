"""
Submission ingestion: method gate, routing check, decode, sanitize, persist,
notify, respond. Stateless across requests; the store and the notification
dispatcher are injected.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi.responses import HTMLResponse, JSONResponse, Response

from models.base import FormModel
from services.body_decoder import RawBody, decode
from services.errors import (
    FormNotFound,
    IngestionError,
    MethodNotAllowed,
    MissingFormId,
    NoFormData,
    NoUsableFormData,
    ServerError,
)
from services.field_sanitizer import sanitize
from services.notifications import NotificationDispatcher
from services.providers import LazyStore
from services.store import StoreUnavailable
from utils.config import Settings
from utils.html_snippets import toast_page

logger = logging.getLogger("backend.ingest")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept",
}
SUCCESS_MESSAGE = "Form submitted successfully"
HTML_SUCCESS_MESSAGE = "Thank you! Your form was submitted successfully."


def header_value(headers: Optional[Mapping[str, str]], name: str) -> str:
    if not headers:
        return ""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        value = next((v for k, v in headers.items() if str(k).lower() == lowered), None)
    return str(value or "")


def prefers_html(headers: Optional[Mapping[str, str]]) -> bool:
    return "text/html" in header_value(headers, "accept").lower()


class IngestionService:
    def __init__(self, store: LazyStore, dispatcher: NotificationDispatcher, settings: Settings):
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings

    async def handle(
        self,
        method: str,
        form_id: Optional[str],
        headers: Optional[Mapping[str, str]],
        raw_body: RawBody,
    ) -> Response:
        method = (method or "").upper()
        if method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        wants_html = prefers_html(headers)
        try:
            if method != "POST":
                raise MethodNotAllowed(f"{method or 'This method'} is not supported; send a POST request")
            clean = await self._ingest((form_id or "").strip(), headers, raw_body)
        except IngestionError as e:
            return self._error_response(e, wants_html)

        if wants_html:
            page = toast_page(HTML_SUCCESS_MESSAGE, True, self._settings.html_return_to_referrer)
            return HTMLResponse(page, status_code=200, headers=CORS_HEADERS)
        return JSONResponse(
            {"success": True, "message": SUCCESS_MESSAGE, "data": clean},
            status_code=200,
            headers=CORS_HEADERS,
        )

    async def _ingest(self, form_id: str, headers: Optional[Mapping[str, str]], raw_body: RawBody) -> Dict[str, Any]:
        if not form_id:
            raise MissingFormId()

        form: Optional[FormModel] = None
        form_checked = False
        if self._settings.require_existing_form:
            form = await self._required_form(form_id)
            form_checked = True

        decoded = decode(raw_body, header_value(headers, "content-type"))
        if not decoded:
            raise NoFormData()

        clean = sanitize(decoded, self._settings.excluded_fields)
        if not clean:
            logger.info("Discarded submission with no usable fields form_id=%s keys=%d", form_id, len(decoded))
            raise NoUsableFormData()

        submission_id, store_name = await self._persist(form_id, clean)
        logger.info("Submission stored form_id=%s id=%s fields=%d store=%s", form_id, submission_id, len(clean), store_name)

        if not form_checked:
            form = await self._optional_form(form_id)
        try:
            await self._dispatcher.notify(form, clean)
        except Exception:
            logger.exception("Notification dispatch failed form_id=%s", form_id)
        return clean

    async def _persist(self, form_id: str, clean: Dict[str, Any]) -> Tuple[str, str]:
        try:
            store = self._store.get()
            return await store.append(form_id, clean), store.name
        except StoreUnavailable as e:
            logger.error("Store unavailable form_id=%s: %s", form_id, e)
            raise ServerError(str(e)) from e
        except Exception as e:
            logger.exception("Failed to store submission form_id=%s", form_id)
            raise ServerError(str(e)) from e

    async def _required_form(self, form_id: str) -> FormModel:
        try:
            form = await self._store.get().get_form(form_id)
        except Exception as e:
            logger.error("Form lookup failed form_id=%s: %s", form_id, e)
            raise ServerError(str(e)) from e
        if form is None:
            raise FormNotFound()
        return form

    async def _optional_form(self, form_id: str) -> Optional[FormModel]:
        try:
            return await self._store.get().get_form(form_id)
        except Exception as e:
            logger.warning("Form lookup for notification failed form_id=%s: %s", form_id, e)
            return None

    def _error_response(self, e: IngestionError, wants_html: bool) -> Response:
        headers = dict(CORS_HEADERS)
        if isinstance(e, MethodNotAllowed):
            headers["Allow"] = "POST, OPTIONS"
        if wants_html:
            page = toast_page(f"Error: {e.error}", False, self._settings.html_return_to_referrer)
            return HTMLResponse(page, status_code=e.status_code, headers=headers)
        return JSONResponse(e.to_payload(), status_code=e.status_code, headers=headers)
