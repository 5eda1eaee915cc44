"""
Dashboard API: forms, folders, submissions table, health and embed script.
"""
import re
from dataclasses import replace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from main import create_app

URLENCODED = {"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"}


def _create_form(client, headers, name="Contact", **extra):
    response = client.post("/api/forms", json={"name": name, **extra}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestForms:
    def test_create_form(self, client, auth_headers):
        form = _create_form(client, auth_headers, notificationEmail="owner@example.com")

        assert re.fullmatch(r"[a-z0-9]{8}", form["formId"])
        assert form["url"] == f"https://api.formdrop.test/api/f/{form['formId']}"
        assert form["ownerId"] == "user-1"
        assert form["notificationEmail"] == "owner@example.com"
        assert form["createdAt"]

    def test_blank_name_is_rejected(self, client, auth_headers):
        response = client.post("/api/forms", json={"name": "   "}, headers=auth_headers)

        assert response.status_code == 422

    def test_invalid_notification_email_is_rejected(self, client, auth_headers):
        response = client.post("/api/forms", json={"name": "Contact", "notificationEmail": "nope"}, headers=auth_headers)

        assert response.status_code == 422

    def test_requires_a_caller(self, client):
        response = client.get("/api/forms")

        assert response.status_code == 401

    def test_list_is_scoped_to_the_caller(self, client, auth_headers):
        first = _create_form(client, auth_headers, name="First")
        second = _create_form(client, auth_headers, name="Second")
        _create_form(client, {"X-User-Id": "someone-else"}, name="Theirs")

        response = client.get("/api/forms", headers=auth_headers)

        ids = [f["formId"] for f in response.json()["forms"]]
        assert set(ids) == {first["formId"], second["formId"]}

    def test_other_users_form_is_404(self, client, auth_headers):
        form = _create_form(client, {"X-User-Id": "someone-else"})

        response = client.get(f"/api/forms/{form['formId']}", headers=auth_headers)

        assert response.status_code == 404

    def test_update_notification_email_and_clear_it(self, client, auth_headers):
        form = _create_form(client, auth_headers)
        url = f"/api/forms/{form['formId']}"

        updated = client.patch(url, json={"notificationEmail": "new@example.com"}, headers=auth_headers)
        cleared = client.patch(url, json={"notificationEmail": None}, headers=auth_headers)

        assert updated.json()["notificationEmail"] == "new@example.com"
        assert cleared.json()["notificationEmail"] is None

    def test_delete_form_keeps_submissions(self, client, auth_headers, memory_store):
        form = _create_form(client, auth_headers)
        client.post(f"/api/f/{form['formId']}", content="name=Ada", headers=URLENCODED)

        response = client.delete(f"/api/forms/{form['formId']}", headers=auth_headers)

        assert response.status_code == 200
        assert client.get(f"/api/forms/{form['formId']}", headers=auth_headers).status_code == 404
        assert len(memory_store._snapshot(form["formId"])) == 1


class TestSubmissionsTable:
    def test_columns_and_rows(self, client, auth_headers):
        form = _create_form(client, auth_headers)
        post_url = f"/api/f/{form['formId']}"
        client.post(post_url, content="name=Ada&email=ada%40example.com", headers=URLENCODED)
        client.post(post_url, content="name=Bob&phone=555&_gotcha=", headers=URLENCODED)

        response = client.get(f"/api/forms/{form['formId']}/submissions", headers=auth_headers)

        table = response.json()
        assert response.status_code == 200
        assert table["formId"] == form["formId"]
        assert table["columns"] == ["name", "phone", "email"]
        newest, oldest = table["rows"]
        assert newest["cells"] == {"name": "Bob", "phone": "555", "email": "-"}
        assert oldest["cells"] == {"name": "Ada", "phone": "-", "email": "ada@example.com"}
        assert newest["submittedAt"].endswith("UTC")

    def test_unknown_form_is_404(self, client, auth_headers):
        response = client.get("/api/forms/zzzzzzzz/submissions", headers=auth_headers)

        assert response.status_code == 404

    def test_stream_for_unknown_form_is_404(self, client, auth_headers):
        response = client.get("/api/forms/zzzzzzzz/submissions/stream", headers=auth_headers)

        assert response.status_code == 404


class TestFolders:
    def test_folder_lifecycle(self, client, auth_headers):
        folder = client.post("/api/folders", json={"name": "Work"}, headers=auth_headers).json()
        form = _create_form(client, auth_headers, folderId=folder["folderId"])

        listed = client.get("/api/folders", headers=auth_headers).json()["folders"]
        assert [f["name"] for f in listed] == ["Work"]
        assert form["folderId"] == folder["folderId"]

        response = client.delete(f"/api/folders/{folder['folderId']}", headers=auth_headers)

        assert response.status_code == 200
        forms = client.get("/api/forms", headers=auth_headers).json()["forms"]
        assert forms[0]["formId"] == form["formId"]
        assert forms[0]["folderId"] is None

    def test_unknown_folder_on_create_is_404(self, client, auth_headers):
        response = client.post("/api/forms", json={"name": "Contact", "folderId": "nope"}, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Folder not found"


class TestFirebaseAuth:
    @pytest.fixture
    def firebase_client(self, settings, memory_store, dispatcher):
        return TestClient(create_app(replace(settings, auth_mode="firebase"), memory_store, dispatcher))

    def test_valid_token(self, firebase_client):
        with patch("utils.auth.verify_id_token", return_value={"uid": "fb-user"}):
            response = firebase_client.get("/api/forms", headers={"Authorization": "Bearer good-token"})

        assert response.status_code == 200
        assert response.json() == {"forms": []}

    def test_invalid_token(self, firebase_client):
        with patch("utils.auth.verify_id_token", side_effect=ValueError("expired")):
            response = firebase_client.get("/api/forms", headers={"Authorization": "Bearer bad-token"})

        assert response.status_code == 401

    def test_header_identity_is_ignored(self, firebase_client):
        response = firebase_client.get("/api/forms", headers={"X-User-Id": "user-1"})

        assert response.status_code == 401


class TestServiceRoutes:
    def test_root_and_health(self, client):
        assert client.get("/").status_code == 200
        assert client.get("/health").json() == {"status": "ok"}

    def test_store_health(self, client):
        response = client.get("/health/store")

        assert response.json() == {"status": "ok", "store": True, "backend": "memory"}

    def test_store_health_when_unconfigured(self, settings, dispatcher):
        app = create_app(replace(settings, store_backend="sql", database_url=""), dispatcher=dispatcher)

        response = TestClient(app).get("/health/store")

        assert response.status_code == 503
        assert response.json()["store"] is False

    def test_dashboard_reports_unavailable_store(self, settings, dispatcher, auth_headers):
        app = create_app(replace(settings, store_backend="sql", database_url=""), dispatcher=dispatcher)

        response = TestClient(app).get("/api/forms", headers=auth_headers)

        assert response.status_code == 503

    def test_embed_script_knows_ingest_prefixes(self, client):
        response = client.get("/embed.js")

        assert response.status_code == 200
        assert "javascript" in response.headers["content-type"]
        assert '["/api/f", "/forms"]' in response.text

    def test_production_hides_error_details(self, settings, memory_store, dispatcher, auth_headers):
        app = create_app(replace(settings, env="production"), memory_store, dispatcher)

        response = TestClient(app).get("/api/forms/zzzzzzzz", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"detail": "Not found."}
