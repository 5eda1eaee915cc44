"""
In-process document store with the same shape as the Firestore layout
(forms/{formId}/submissions/{id}). Used for local runs (STORE_BACKEND=memory)
and the test suite. Nothing is persisted across restarts.
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.base import FolderModel, FormModel, SubmissionModel
from services.store import (
    SnapshotCallback,
    SubmissionStore,
    Subscription,
    order_newest_first,
)

logger = logging.getLogger("backend.store.memory")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemorySubmissionStore(SubmissionStore):
    name = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        self._forms: Dict[str, Dict[str, Any]] = {}
        self._folders: Dict[str, Dict[str, Any]] = {}
        # form_id -> submissions in write order
        self._submissions: Dict[str, List[Dict[str, Any]]] = {}
        self._last_stamp: Dict[str, datetime] = {}
        self._watchers: Dict[str, Dict[int, SnapshotCallback]] = {}
        self._next_watch_id = 0

    # Submissions
    def _server_timestamp(self, form_id: str) -> datetime:
        now = _utcnow()
        last = self._last_stamp.get(form_id)
        if last is not None and now < last:
            now = last
        self._last_stamp[form_id] = now
        return now

    def _snapshot(self, form_id: str) -> List[SubmissionModel]:
        docs = self._submissions.get(form_id, [])
        # Reverse first so equal stamps come out newest first
        models = [SubmissionModel(id=d["id"], data=dict(d["data"]), submitted_at=d["submittedAt"]) for d in reversed(docs)]
        return order_newest_first(models)

    def _notify(self, form_id: str) -> None:
        with self._lock:
            callbacks = list(self._watchers.get(form_id, {}).values())
            snapshot = self._snapshot(form_id)
        for callback in callbacks:
            try:
                callback(list(snapshot))
            except Exception:
                logger.exception("Snapshot listener failed form_id=%s", form_id)

    async def append(self, form_id: str, data: Dict[str, Any]) -> str:
        submission_id = uuid.uuid4().hex
        with self._lock:
            self._submissions.setdefault(form_id, []).append(
                {"id": submission_id, "data": dict(data), "submittedAt": self._server_timestamp(form_id)}
            )
        logger.debug("Appended submission form_id=%s id=%s", form_id, submission_id)
        self._notify(form_id)
        return submission_id

    async def list_submissions(self, form_id: str) -> List[SubmissionModel]:
        with self._lock:
            return self._snapshot(form_id)

    async def watch_submissions(self, form_id: str, callback: SnapshotCallback) -> Subscription:
        with self._lock:
            watch_id = self._next_watch_id
            self._next_watch_id += 1
            self._watchers.setdefault(form_id, {})[watch_id] = callback
            snapshot = self._snapshot(form_id)

        def _cancel():
            with self._lock:
                self._watchers.get(form_id, {}).pop(watch_id, None)

        callback(snapshot)
        return Subscription(_cancel)

    def watcher_count(self, form_id: str) -> int:
        with self._lock:
            return len(self._watchers.get(form_id, {}))

    # Forms
    async def create_form(self, form: FormModel) -> FormModel:
        doc = form.to_document()
        doc["createdAt"] = doc.get("createdAt") or _utcnow()
        with self._lock:
            self._forms[form.form_id] = doc
        return FormModel.model_validate(doc)

    async def get_form(self, form_id: str) -> Optional[FormModel]:
        with self._lock:
            doc = self._forms.get(form_id)
        return FormModel.model_validate(doc) if doc else None

    async def list_forms(self, owner_id: str) -> List[FormModel]:
        with self._lock:
            docs = [dict(d) for d in self._forms.values() if d.get("ownerId") == owner_id]
        docs.sort(key=lambda d: d["createdAt"], reverse=True)
        return [FormModel.model_validate(d) for d in docs]

    async def update_notification_email(self, form_id: str, email: Optional[str]) -> Optional[FormModel]:
        with self._lock:
            doc = self._forms.get(form_id)
            if doc is None:
                return None
            doc["notificationEmail"] = email
            return FormModel.model_validate(dict(doc))

    async def delete_form(self, form_id: str) -> bool:
        with self._lock:
            return self._forms.pop(form_id, None) is not None

    # Folders
    async def create_folder(self, folder: FolderModel) -> FolderModel:
        doc = folder.to_document()
        doc["createdAt"] = doc.get("createdAt") or _utcnow()
        with self._lock:
            self._folders[folder.folder_id] = doc
        return FolderModel.model_validate(doc)

    async def get_folder(self, folder_id: str) -> Optional[FolderModel]:
        with self._lock:
            doc = self._folders.get(folder_id)
        return FolderModel.model_validate(doc) if doc else None

    async def list_folders(self, owner_id: str) -> List[FolderModel]:
        with self._lock:
            docs = [dict(d) for d in self._folders.values() if d.get("ownerId") == owner_id]
        docs.sort(key=lambda d: d["createdAt"], reverse=True)
        return [FolderModel.model_validate(d) for d in docs]

    async def delete_folder(self, folder_id: str) -> bool:
        with self._lock:
            return self._folders.pop(folder_id, None) is not None
