"""
Storage contract shared by the Firestore, SQL and in-memory backends.

Submissions are append-only: a backend creates one new record per `append`
and never updates or deletes it. Reads for the dashboard come from a live
query, exposed as a push-based `watch_submissions` primitive and, on top of
it, the `SubmissionStream` async iterator.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from models.base import FolderModel, FormModel, SubmissionModel

logger = logging.getLogger("backend.store")

SnapshotCallback = Callable[[List[SubmissionModel]], None]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StoreUnavailable(Exception):
    """The backing store is unconfigured or unreachable."""


def _sort_key(submission: SubmissionModel):
    ts = submission.submitted_at
    if ts is None:
        return (0, _EPOCH)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (1, ts)


def order_newest_first(submissions: List[SubmissionModel]) -> List[SubmissionModel]:
    """In-process ordering used when the store cannot order for us; undated last.

    The sort is stable, so ties keep the store's own order.
    """
    return sorted(submissions, key=_sort_key, reverse=True)


class Subscription:
    """Cancellation handle for a live query; `unsubscribe` is idempotent."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._lock = threading.Lock()
        self.active = True

    def unsubscribe(self) -> None:
        with self._lock:
            if not self.active:
                return
            self.active = False
        self._cancel()


class SubmissionStream:
    """Live, restartable view of a form's submissions, newest first.

    Use as `async with store.stream_by_form(form_id) as stream:` and iterate;
    leaving the block releases the underlying listener. Each item is the full
    current list of submissions.
    """

    def __init__(self, store: "SubmissionStore", form_id: str):
        self._store = store
        self.form_id = form_id
        self._queue: Optional[asyncio.Queue] = None
        self._subscription: Optional[Subscription] = None

    async def __aenter__(self) -> "SubmissionStream":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def open(self) -> None:
        if self._subscription is not None:
            return
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue

        def _deliver(snapshot: List[SubmissionModel]) -> None:
            # Backends may call back from their own threads
            loop.call_soon_threadsafe(queue.put_nowait, snapshot)

        self._subscription = await self._store.watch_submissions(self.form_id, _deliver)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()

    def __aiter__(self) -> "SubmissionStream":
        return self

    async def __anext__(self) -> List[SubmissionModel]:
        if self._subscription is None:
            await self.open()
        if not self._subscription.active:
            raise StopAsyncIteration
        return await self._queue.get()


class SubmissionStore(ABC):
    """Abstract document store for forms, folders and their submissions."""

    name = "abstract"

    # Submissions
    @abstractmethod
    async def append(self, form_id: str, data: Dict[str, Any]) -> str:
        """Create one new submission stamped with the store's clock; returns its id."""

    @abstractmethod
    async def list_submissions(self, form_id: str) -> List[SubmissionModel]:
        """One-shot read, newest first."""

    @abstractmethod
    async def watch_submissions(self, form_id: str, callback: SnapshotCallback) -> Subscription:
        """Deliver the current ordered list now and again after every change."""

    def stream_by_form(self, form_id: str) -> SubmissionStream:
        return SubmissionStream(self, form_id)

    # Forms
    @abstractmethod
    async def create_form(self, form: FormModel) -> FormModel:
        ...

    @abstractmethod
    async def get_form(self, form_id: str) -> Optional[FormModel]:
        ...

    @abstractmethod
    async def list_forms(self, owner_id: str) -> List[FormModel]:
        ...

    @abstractmethod
    async def update_notification_email(self, form_id: str, email: Optional[str]) -> Optional[FormModel]:
        ...

    @abstractmethod
    async def delete_form(self, form_id: str) -> bool:
        """Delete the form document only; its submissions are left in place."""

    # Folders
    @abstractmethod
    async def create_folder(self, folder: FolderModel) -> FolderModel:
        ...

    @abstractmethod
    async def get_folder(self, folder_id: str) -> Optional[FolderModel]:
        ...

    @abstractmethod
    async def list_folders(self, owner_id: str) -> List[FolderModel]:
        ...

    @abstractmethod
    async def delete_folder(self, folder_id: str) -> bool:
        ...

    async def ping(self) -> bool:
        """Cheap reachability probe used by the health endpoint."""
        return True

    async def close(self) -> None:
        return None
