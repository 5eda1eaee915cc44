"""
Firestore-backed store using the Firebase Admin SDK.

Layout:
    forms/{formId}                      form documents
    forms/{formId}/submissions/{autoId} {data, submittedAt}
    folders/{folderId}                  folder documents

The Admin SDK client is synchronous, so calls run in a worker thread.
`submittedAt` is always the server timestamp sentinel, never our clock.
"""
import asyncio
import logging

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from firebase_admin import firestore as admin_firestore
from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from models.base import FolderModel, FormModel, SubmissionModel
from services.store import (
    SnapshotCallback,
    StoreUnavailable,
    SubmissionStore,
    Subscription,
    order_newest_first,
)
from utils.config import Settings
from utils.firebase_admin_adapter import FirebaseUnavailable, initialize_firebase_admin

logger = logging.getLogger("backend.store.firestore")

FORMS = "forms"
FOLDERS = "folders"
SUBMISSIONS = "submissions"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_key(model):
    return model.created_at or _EPOCH


def _submission_from_snapshot(doc) -> SubmissionModel:
    payload = doc.to_dict() or {}
    return SubmissionModel(id=doc.id, data=payload.get("data") or {}, submitted_at=payload.get("submittedAt"))


class FirestoreSubmissionStore(SubmissionStore):
    name = "firestore"

    def __init__(self, settings: Settings, client=None):
        self._settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            try:
                app = initialize_firebase_admin(self._settings)
                self._client = admin_firestore.client(app)
            except FirebaseUnavailable as e:
                raise StoreUnavailable(str(e)) from e
            except Exception as e:
                raise StoreUnavailable(f"Firestore client unavailable: {e}") from e
        return self._client

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except StoreUnavailable:
            raise
        except (gexc.GoogleAPICallError, gexc.RetryError) as e:
            raise StoreUnavailable(str(e)) from e

    def _submissions_ref(self, form_id: str):
        return self.client.collection(FORMS).document(form_id).collection(SUBMISSIONS)

    # Submissions
    async def append(self, form_id: str, data: Dict[str, Any]) -> str:
        def _add():
            _, ref = self._submissions_ref(form_id).add({
                "data": data,
                "submittedAt": firestore.SERVER_TIMESTAMP,
            })
            return ref.id

        return await self._run(_add)

    def _ordered_docs(self, form_id: str) -> List[SubmissionModel]:
        coll = self._submissions_ref(form_id)
        try:
            docs = coll.order_by("submittedAt", direction=firestore.Query.DESCENDING).stream()
            return [_submission_from_snapshot(d) for d in docs]
        except gexc.FailedPrecondition as e:
            logger.warning("Ordered submissions query unavailable form_id=%s: %s; using default order", form_id, e)
        return order_newest_first([_submission_from_snapshot(d) for d in coll.stream()])

    async def list_submissions(self, form_id: str) -> List[SubmissionModel]:
        return await self._run(self._ordered_docs, form_id)

    async def watch_submissions(self, form_id: str, callback: SnapshotCallback) -> Subscription:
        def _start():
            coll = self._submissions_ref(form_id)
            ordered = coll.order_by("submittedAt", direction=firestore.Query.DESCENDING)

            def _on_snapshot(docs, changes, read_time):
                try:
                    callback(order_newest_first([_submission_from_snapshot(d) for d in docs]))
                except Exception:
                    logger.exception("Submission listener failed form_id=%s", form_id)
                    callback([])

            # Listener errors surface later on the watch thread, so a missing
            # index is detected with a one-document read before subscribing
            try:
                list(ordered.limit(1).stream())
            except gexc.FailedPrecondition as e:
                logger.warning("Ordered live query unavailable form_id=%s: %s; using default order", form_id, e)
                return coll.on_snapshot(_on_snapshot)
            return ordered.on_snapshot(_on_snapshot)

        watch = await self._run(_start)
        return Subscription(watch.unsubscribe)

    # Forms
    async def create_form(self, form: FormModel) -> FormModel:
        def _create():
            doc = form.to_document()
            doc["createdAt"] = firestore.SERVER_TIMESTAMP
            ref = self.client.collection(FORMS).document(form.form_id)
            ref.create(doc)
            return FormModel.model_validate(ref.get().to_dict())

        return await self._run(_create)

    async def get_form(self, form_id: str) -> Optional[FormModel]:
        def _get():
            snap = self.client.collection(FORMS).document(form_id).get()
            return FormModel.model_validate(snap.to_dict()) if snap.exists else None

        return await self._run(_get)

    async def list_forms(self, owner_id: str) -> List[FormModel]:
        def _list():
            docs = self.client.collection(FORMS).where(filter=FieldFilter("ownerId", "==", owner_id)).stream()
            forms = [FormModel.model_validate(d.to_dict()) for d in docs]
            forms.sort(key=_created_key, reverse=True)
            return forms

        return await self._run(_list)

    async def update_notification_email(self, form_id: str, email: Optional[str]) -> Optional[FormModel]:
        def _update():
            ref = self.client.collection(FORMS).document(form_id)
            try:
                ref.update({"notificationEmail": email})
            except gexc.NotFound:
                return None
            return FormModel.model_validate(ref.get().to_dict())

        return await self._run(_update)

    async def delete_form(self, form_id: str) -> bool:
        def _delete():
            ref = self.client.collection(FORMS).document(form_id)
            if not ref.get().exists:
                return False
            ref.delete()
            return True

        return await self._run(_delete)

    # Folders
    async def create_folder(self, folder: FolderModel) -> FolderModel:
        def _create():
            doc = folder.to_document()
            doc["createdAt"] = firestore.SERVER_TIMESTAMP
            ref = self.client.collection(FOLDERS).document(folder.folder_id)
            ref.create(doc)
            return FolderModel.model_validate(ref.get().to_dict())

        return await self._run(_create)

    async def get_folder(self, folder_id: str) -> Optional[FolderModel]:
        def _get():
            snap = self.client.collection(FOLDERS).document(folder_id).get()
            return FolderModel.model_validate(snap.to_dict()) if snap.exists else None

        return await self._run(_get)

    async def list_folders(self, owner_id: str) -> List[FolderModel]:
        def _list():
            docs = self.client.collection(FOLDERS).where(filter=FieldFilter("ownerId", "==", owner_id)).stream()
            folders = [FolderModel.model_validate(d.to_dict()) for d in docs]
            folders.sort(key=_created_key, reverse=True)
            return folders

        return await self._run(_list)

    async def delete_folder(self, folder_id: str) -> bool:
        def _delete():
            ref = self.client.collection(FOLDERS).document(folder_id)
            if not ref.get().exists:
                return False
            ref.delete()
            return True

        return await self._run(_delete)

    async def ping(self) -> bool:
        def _probe():
            # Any read proves credentials and connectivity
            list(self.client.collection(FORMS).limit(1).stream())
            return True

        return await self._run(_probe)
