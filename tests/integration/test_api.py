"""Integration tests for the FastAPI application."""

import hashlib

import pytest
from fastapi.testclient import TestClient

from conversation import ConversationEngine
from field_detector import HybridFieldDetector
from main import app, get_detector, get_engine, get_session_store
from session_store import InMemorySessionStore

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def client(store):
    engine = ConversationEngine()
    detector = HybridFieldDetector()
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_detector] = lambda: detector
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def template(make_docx):
    return make_docx([
        "SIMPLE AGREEMENT FOR FUTURE EQUITY",
        "{company_name} issues this SAFE to {investor_name} for {purchase_amount}.",
        "Dated {current_date}.",
    ])


def _upload(client, buffer, filename="safe.docx"):
    return client.post("/upload", files={"file": (filename, buffer, DOCX_MIME)})


def _chat(client, session_id, message):
    response = client.post("/chat", json={"session_id": session_id, "message": message})
    assert response.status_code == 200
    return response.json()


class TestUpload:
    """Tests for POST /upload."""

    def test_upload_creates_session(self, client, store, template):
        response = _upload(client, template)
        assert response.status_code == 200

        body = response.json()
        assert body["document_type"] == "SAFE"
        assert [f["placeholder"] for f in body["fields"]] == ["company_name", "investor_name", "purchase_amount"]
        assert "company's legal name" in body["message"]
        assert store.has(body["session_id"])
        assert store.get(body["session_id"]).status.value == "filling"

    def test_rejects_other_extensions(self, client, template):
        response = _upload(client, template, filename="safe.pdf")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UPLOAD_ERROR"

    def test_rejects_unreadable_docx(self, client):
        response = _upload(client, b"definitely not a zip")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "PARSE_ERROR"


class TestConversationFlow:
    """Tests for the chat, status, validate and download endpoints."""

    @pytest.fixture
    def session_id(self, client, template):
        return _upload(client, template).json()["session_id"]

    def _fill(self, client, session_id):
        replies = [_chat(client, session_id, answer) for answer in ["Acme Inc.", "John Doe", "$100,000"]]
        assert [reply["status"] for reply in replies] == ["filling", "filling", "review"]
        assert replies[-1]["progress"] == "3/3"

    def test_full_flow(self, client, session_id, docx_text):
        self._fill(client, session_id)
        assert _chat(client, session_id, "confirm")["status"] == "complete"

        status = client.get(f"/status/{session_id}").json()
        assert status["completed"] is True
        assert status["progress"] == "3/3"

        validation = client.post("/validate", json={"session_id": session_id}).json()
        assert validation["valid"] is True

        response = client.post("/download", json={"session_id": session_id, "audit_trail": True})
        assert response.status_code == 200
        assert response.headers["content-type"] == DOCX_MIME
        assert response.headers["x-document-checksum"] == hashlib.sha256(response.content).hexdigest()
        assert response.headers["x-audit-entries"] == "4"
        assert "Acme Inc. issues this SAFE to John Doe for $100,000." in docx_text(response.content)

    def test_invalid_answer_is_reprompted(self, client, session_id):
        reply = _chat(client, session_id, "ab")
        assert reply["status"] == "filling"
        assert reply["progress"] == "0/3"

    def test_validate_candidate_values(self, client, session_id):
        body = client.post("/validate", json={"session_id": session_id, "filled_fields": {"field-2": "0"}}).json()
        codes = sorted(error["code"] for error in body["errors"])
        assert codes == ["INVALID_AMOUNT", "REQUIRED_FIELD_MISSING", "REQUIRED_FIELD_MISSING"]

    def test_download_is_gated_by_validation(self, client, session_id):
        response = client.post("/download", json={"session_id": session_id})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert len(error["errors"]) == 3

    def test_stream_question(self, client, session_id):
        response = client.get(f"/question/{session_id}/stream")
        assert response.status_code == 200
        assert response.text.startswith("What's your company's legal name?")

    def test_debug_and_delete(self, client, session_id):
        debug = client.get(f"/debug/{session_id}").json()
        assert debug["unfilled_fields"] == ["company_name", "investor_name", "purchase_amount"]

        assert client.delete(f"/session/{session_id}").json()["deleted"] is True
        response = client.get(f"/status/{session_id}")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SESSION_NOT_FOUND"


def test_unknown_session_chat(client):
    response = client.post("/chat", json={"session_id": "missing", "message": "hi"})
    assert response.status_code == 404


def test_health(client, store, make_session):
    store.set("s1", make_session([]))
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["active_sessions"] == 1
