"""
Firestore backend against a mocked client: document layout, server timestamps
and the missing-index fallback.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock

import pytest
from google.api_core import exceptions as gexc
from google.cloud import firestore

from services.firestore_store import FirestoreSubmissionStore
from services.store import StoreUnavailable
from utils.config import Settings


def _doc(doc_id, data, submitted_at):
    snap = Mock()
    snap.id = doc_id
    snap.to_dict.return_value = {"data": data, "submittedAt": submitted_at}
    return snap


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def store(client):
    return FirestoreSubmissionStore(Settings(store_backend="firestore"), client=client)


def _submissions(client):
    return client.collection.return_value.document.return_value.collection.return_value


class TestFirestoreSubmissions:
    @pytest.mark.asyncio
    async def test_append_uses_server_timestamp(self, store, client):
        _submissions(client).add.return_value = (None, Mock(id="sub-1"))

        submission_id = await store.append("abc12345", {"name": "Ada"})

        assert submission_id == "sub-1"
        client.collection.assert_called_with("forms")
        client.collection.return_value.document.assert_called_with("abc12345")
        _submissions(client).add.assert_called_once_with(
            {"data": {"name": "Ada"}, "submittedAt": firestore.SERVER_TIMESTAMP}
        )

    @pytest.mark.asyncio
    async def test_missing_index_falls_back_to_in_process_order(self, store, client):
        now = datetime.now(timezone.utc)
        coll = _submissions(client)
        coll.order_by.return_value.stream.side_effect = gexc.FailedPrecondition("index required")
        coll.stream.return_value = [
            _doc("pending", {"a": "3"}, None),
            _doc("old", {"a": "1"}, now - timedelta(minutes=1)),
            _doc("new", {"a": "2"}, now),
        ]

        submissions = await store.list_submissions("abc12345")

        assert [s.id for s in submissions] == ["new", "old", "pending"]

    @pytest.mark.asyncio
    async def test_api_errors_become_store_unavailable(self, store, client):
        _submissions(client).add.side_effect = gexc.ServiceUnavailable("unreachable")

        with pytest.raises(StoreUnavailable):
            await store.append("abc12345", {"name": "Ada"})

    @pytest.mark.asyncio
    async def test_watch_delivers_ordered_snapshots_and_unsubscribes(self, store, client):
        watch = Mock()
        ordered = _submissions(client).order_by.return_value
        ordered.on_snapshot.return_value = watch
        received = []

        subscription = await store.watch_submissions("abc12345", received.append)
        on_snapshot = ordered.on_snapshot.call_args.args[0]
        on_snapshot([_doc("s1", {"a": "1"}, datetime.now(timezone.utc))], [], None)
        subscription.unsubscribe()
        subscription.unsubscribe()

        assert [[s.id for s in snap] for snap in received] == [["s1"]]
        watch.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_watch_without_index_subscribes_to_default_order(self, store, client):
        now = datetime.now(timezone.utc)
        coll = _submissions(client)
        ordered = coll.order_by.return_value
        ordered.limit.return_value.stream.side_effect = gexc.FailedPrecondition("index required")
        watch = Mock()
        coll.on_snapshot.return_value = watch
        received = []

        subscription = await store.watch_submissions("abc12345", received.append)
        coll.on_snapshot.call_args.args[0](
            [_doc("old", {"a": "1"}, now - timedelta(minutes=1)), _doc("new", {"a": "2"}, now)], [], None
        )
        subscription.unsubscribe()

        ordered.limit.assert_called_once_with(1)
        ordered.on_snapshot.assert_not_called()
        assert [[s.id for s in snap] for snap in received] == [["new", "old"]]
        watch.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_broken_listener_payload_delivers_empty_snapshot(self, store, client):
        ordered = _submissions(client).order_by.return_value
        ordered.on_snapshot.return_value = Mock()
        received = []
        broken = Mock()
        broken.to_dict.side_effect = RuntimeError("decode failed")

        await store.watch_submissions("abc12345", received.append)
        ordered.on_snapshot.call_args.args[0]([broken], [], None)

        assert received == [[]]


class TestFirestoreForms:
    @pytest.mark.asyncio
    async def test_get_missing_form(self, store, client):
        client.collection.return_value.document.return_value.get.return_value = Mock(exists=False)

        assert await store.get_form("nope") is None

    @pytest.mark.asyncio
    async def test_update_missing_form_returns_none(self, store, client):
        client.collection.return_value.document.return_value.update.side_effect = gexc.NotFound("no doc")

        assert await store.update_notification_email("nope", "x@example.com") is None
