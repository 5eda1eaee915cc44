"""
SQL store backend (PostgreSQL via asyncpg in production, SQLite in tests).

Submission timestamps come from the database server (`now()` /
CURRENT_TIMESTAMP). SQL has no push queries, so live reads poll and only
deliver a snapshot when it differs from the previous one.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import Base, create_engine_for, create_session_maker
from db.tables import FolderRow, FormRow, SubmissionRow
from models.base import FolderModel, FormModel, SubmissionModel
from services.store import (
    SnapshotCallback,
    StoreUnavailable,
    SubmissionStore,
    Subscription,
)

logger = logging.getLogger("backend.store.sql")


def _form_from_row(row: FormRow) -> FormModel:
    return FormModel(
        form_id=row.form_id,
        name=row.name,
        url=row.url,
        owner_id=row.owner_id,
        notification_email=row.notification_email,
        folder_id=row.folder_id,
        created_at=row.created_at,
    )


def _folder_from_row(row: FolderRow) -> FolderModel:
    return FolderModel(folder_id=row.folder_id, name=row.name, owner_id=row.owner_id, created_at=row.created_at)


def _fingerprint(submissions: List[SubmissionModel]):
    return tuple((s.id, s.submitted_at) for s in submissions)


class SqlSubmissionStore(SubmissionStore):
    name = "sql"

    def __init__(self, database_url: str, poll_interval: float = 2.0):
        self._database_url = database_url
        self._poll_interval = poll_interval
        self._engine = None
        self._session_maker = None
        self._schema_ready = False
        self._init_lock = asyncio.Lock()

    async def _ensure_ready(self) -> None:
        if self._schema_ready:
            return
        async with self._init_lock:
            if self._schema_ready:
                return
            if not self._database_url:
                raise StoreUnavailable("DATABASE_URL is not configured")
            try:
                if self._engine is None:
                    self._engine = create_engine_for(self._database_url)
                    self._session_maker = create_session_maker(self._engine)
                async with self._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            except (SQLAlchemyError, OSError) as e:
                raise StoreUnavailable(f"Database unavailable: {e}") from e
            self._schema_ready = True
            logger.info("SQL store ready")

    @asynccontextmanager
    async def _session(self, commit: bool = False) -> AsyncIterator[AsyncSession]:
        await self._ensure_ready()
        try:
            async with self._session_maker() as session:
                yield session
                if commit:
                    await session.commit()
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailable(str(e)) from e

    # Submissions
    async def append(self, form_id: str, data: Dict[str, Any]) -> str:
        submission_id = str(uuid.uuid4())
        async with self._session(commit=True) as session:
            session.add(SubmissionRow(id=submission_id, form_id=form_id, data=dict(data)))
        logger.debug("Appended submission form_id=%s id=%s", form_id, submission_id)
        return submission_id

    async def list_submissions(self, form_id: str) -> List[SubmissionModel]:
        query = (
            select(SubmissionRow)
            .where(SubmissionRow.form_id == form_id)
            .order_by(SubmissionRow.submitted_at.desc(), SubmissionRow.seq.desc())
        )
        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [SubmissionModel(id=r.id, data=r.data or {}, submitted_at=r.submitted_at) for r in rows]

    async def watch_submissions(self, form_id: str, callback: SnapshotCallback) -> Subscription:
        async def _current():
            try:
                return await self.list_submissions(form_id)
            except StoreUnavailable as e:
                logger.warning("Live submissions query failed form_id=%s: %s", form_id, e)
                return []

        initial = await _current()
        callback(initial)
        last = _fingerprint(initial)

        async def _poll():
            nonlocal last
            while True:
                await asyncio.sleep(self._poll_interval)
                try:
                    current = await _current()
                    marker = _fingerprint(current)
                    if marker != last:
                        last = marker
                        callback(current)
                except Exception:
                    logger.exception("Live submissions poll failed form_id=%s", form_id)

        loop = asyncio.get_running_loop()
        task = loop.create_task(_poll())
        return Subscription(lambda: loop.call_soon_threadsafe(task.cancel))

    # Forms
    async def create_form(self, form: FormModel) -> FormModel:
        row = FormRow(
            form_id=form.form_id,
            name=form.name,
            url=form.url,
            owner_id=form.owner_id,
            notification_email=form.notification_email,
            folder_id=form.folder_id,
        )
        async with self._session(commit=True) as session:
            session.add(row)
        return await self.get_form(form.form_id)

    async def get_form(self, form_id: str) -> Optional[FormModel]:
        async with self._session() as session:
            row = await session.get(FormRow, form_id)
        return _form_from_row(row) if row else None

    async def list_forms(self, owner_id: str) -> List[FormModel]:
        query = select(FormRow).where(FormRow.owner_id == owner_id).order_by(FormRow.created_at.desc())
        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [_form_from_row(r) for r in rows]

    async def update_notification_email(self, form_id: str, email: Optional[str]) -> Optional[FormModel]:
        async with self._session(commit=True) as session:
            result = await session.execute(
                update(FormRow).where(FormRow.form_id == form_id).values(notification_email=email)
            )
        if not result.rowcount:
            return None
        return await self.get_form(form_id)

    async def delete_form(self, form_id: str) -> bool:
        async with self._session(commit=True) as session:
            result = await session.execute(delete(FormRow).where(FormRow.form_id == form_id))
        return bool(result.rowcount)

    # Folders
    async def create_folder(self, folder: FolderModel) -> FolderModel:
        async with self._session(commit=True) as session:
            session.add(FolderRow(folder_id=folder.folder_id, name=folder.name, owner_id=folder.owner_id))
        return await self.get_folder(folder.folder_id)

    async def get_folder(self, folder_id: str) -> Optional[FolderModel]:
        async with self._session() as session:
            row = await session.get(FolderRow, folder_id)
        return _folder_from_row(row) if row else None

    async def list_folders(self, owner_id: str) -> List[FolderModel]:
        query = select(FolderRow).where(FolderRow.owner_id == owner_id).order_by(FolderRow.created_at.desc())
        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [_folder_from_row(r) for r in rows]

    async def delete_folder(self, folder_id: str) -> bool:
        async with self._session(commit=True) as session:
            result = await session.execute(delete(FolderRow).where(FolderRow.folder_id == folder_id))
        return bool(result.rowcount)

    async def ping(self) -> bool:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
