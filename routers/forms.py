"""
Dashboard API: forms, folders and the submissions table of a form.
Every route is scoped to the authenticated caller.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

from models.base import FolderCreate, FolderModel, FormCreate, FormModel, FormUpdate
from services.dashboard import build_table
from services.providers import get_app_settings, get_store
from services.store import SubmissionStore
from utils.auth import get_current_user
from utils.config import Settings
from utils.form_ids import generate_form_id, get_form_url

logger = logging.getLogger("backend.forms")

router = APIRouter(prefix="/api", tags=["forms"])

# Seconds between SSE comments that keep idle proxies from closing the stream
KEEPALIVE_SECONDS = 15.0
MAX_ID_ATTEMPTS = 5


async def _owned_form(store: SubmissionStore, form_id: str, uid: str) -> FormModel:
    form = await store.get_form(form_id)
    if form is None or form.owner_id != uid:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found")
    return form


async def _owned_folder(store: SubmissionStore, folder_id: str, uid: str) -> FolderModel:
    folder = await store.get_folder(folder_id)
    if folder is None or folder.owner_id != uid:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Folder not found")
    return folder


async def _unused_form_id(store: SubmissionStore) -> str:
    for _ in range(MAX_ID_ATTEMPTS):
        candidate = generate_form_id()
        if await store.get_form(candidate) is None:
            return candidate
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not allocate a form id")


def _form_out(form: FormModel, folder_ids=None) -> Dict[str, Any]:
    doc = form.to_document()
    if folder_ids is not None and form.folder_id and form.folder_id not in folder_ids:
        # Folder was deleted; the form shows up as uncategorized
        doc["folderId"] = None
    return jsonable_encoder(doc)


@router.post("/forms", status_code=status.HTTP_201_CREATED)
async def create_form(
    payload: FormCreate,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    if payload.folder_id:
        await _owned_folder(store, payload.folder_id, uid)
    form_id = await _unused_form_id(store)
    form = FormModel(
        form_id=form_id,
        name=payload.name,
        url=get_form_url(form_id, settings.public_base_url, settings.ingest_prefix),
        owner_id=uid,
        notification_email=str(payload.notification_email) if payload.notification_email else None,
        folder_id=payload.folder_id,
    )
    created = await store.create_form(form)
    logger.info("Form created form_id=%s owner=%s", form_id, uid)
    return _form_out(created)


@router.get("/forms")
async def list_forms(
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    """Caller's forms, newest first"""
    forms = await store.list_forms(uid)
    folder_ids = {f.folder_id for f in await store.list_folders(uid)}
    return {"forms": [_form_out(f, folder_ids) for f in forms]}


@router.get("/forms/{form_id}")
async def get_form(
    form_id: str,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    form = await _owned_form(store, form_id, uid)
    folder_ids = {f.folder_id for f in await store.list_folders(uid)}
    return _form_out(form, folder_ids)


@router.patch("/forms/{form_id}")
async def update_form(
    form_id: str,
    payload: FormUpdate,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    """Only notificationEmail can change; null clears it."""
    await _owned_form(store, form_id, uid)
    email = str(payload.notification_email) if payload.notification_email else None
    updated = await store.update_notification_email(form_id, email)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found")
    return _form_out(updated)


@router.delete("/forms/{form_id}")
async def delete_form(
    form_id: str,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    await _owned_form(store, form_id, uid)
    await store.delete_form(form_id)
    logger.info("Form deleted form_id=%s owner=%s", form_id, uid)
    return {"success": True, "formId": form_id}


@router.get("/forms/{form_id}/submissions")
async def get_submissions_table(
    form_id: str,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    await _owned_form(store, form_id, uid)
    submissions = await store.list_submissions(form_id)
    table = build_table(form_id, submissions, settings.excluded_fields)
    return table.model_dump(by_alias=True)


@router.get("/forms/{form_id}/submissions/stream")
async def stream_submissions_table(
    request: Request,
    form_id: str,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Server-Sent Events: the full table again on every change."""
    await _owned_form(store, form_id, uid)

    async def events():
        async with store.stream_by_form(form_id) as stream:
            while not await request.is_disconnected():
                try:
                    snapshot = await asyncio.wait_for(stream.__anext__(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                except StopAsyncIteration:
                    break
                table = build_table(form_id, snapshot, settings.excluded_fields)
                yield f"event: submissions\ndata: {json.dumps(table.model_dump(by_alias=True))}\n\n"
        logger.debug("Submissions stream closed form_id=%s", form_id)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/folders", status_code=status.HTTP_201_CREATED)
async def create_folder(
    payload: FolderCreate,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    folder = FolderModel(folder_id=generate_form_id(12), name=payload.name, owner_id=uid)
    created = await store.create_folder(folder)
    return jsonable_encoder(created.to_document())


@router.get("/folders")
async def list_folders(
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    folders: List[FolderModel] = await store.list_folders(uid)
    return {"folders": [jsonable_encoder(f.to_document()) for f in folders]}


@router.delete("/folders/{folder_id}")
async def delete_folder(
    folder_id: str,
    uid: str = Depends(get_current_user),
    store: SubmissionStore = Depends(get_store),
):
    """Forms inside are left alone and become uncategorized."""
    await _owned_folder(store, folder_id, uid)
    await store.delete_folder(folder_id)
    return {"success": True, "folderId": folder_id}
