"""
HTTP tests for the FastAPI application.

The app is built without entering its lifespan, and ``get_gate`` is
overridden with a gate over the test database and FakeEngine, so no
settings file or open_jtalk binary is involved.
"""
from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEngine, StubEncoder
from tts_api.api.dependencies import get_gate
from tts_api.core.errors import EngineExecutionError
from tts_api.main import create_app
from tts_api.services.gate import RequestGate

TOKEN_LENGTH = 24


@pytest.fixture
def make_client(tokens, ledger):
    def _make(engine=None, **gate_kwargs):
        gate = RequestGate(tokens, ledger, engine or FakeEngine(), StubEncoder(), **gate_kwargs)
        app = create_app()
        app.dependency_overrides[get_gate] = lambda: gate
        return TestClient(app)
    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def token(tokens) -> str:
    issued = tokens.issue()
    tokens.register(42, issued)
    return issued.show()


class TestIndex:

    def test_it_works(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert r.text == "it works!"
        assert r.headers.get("X-Request-Id")


class TestUser:
    """GET /user"""

    def test_ok(self, client, token):
        r = client.get("/user", params={"id": 42, "token": token})
        assert r.status_code == 200
        assert r.json() == {
            "id": 42,
            "account_status": 0,
            "character_count": 0,
            "character_limit": 5000,
        }

    def test_wrong_token(self, client, token):
        r = client.get("/user", params={"id": 42, "token": "0" * TOKEN_LENGTH})
        assert r.status_code == 401
        body = r.json()
        assert body["error"] == "UNAUTHORIZED"
        assert body["message"] == "Invalid token."
        assert body["request_id"] == r.headers["X-Request-Id"]

    def test_overlong_token(self, client, token):
        r = client.get("/user", params={"id": 42, "token": "F" * 80})
        assert r.status_code == 401
        assert r.json()["error"] == "UNAUTHORIZED"

    def test_unknown_user(self, client):
        r = client.get("/user", params={"id": 5, "token": "0" * TOKEN_LENGTH})
        assert r.status_code == 404
        assert r.json()["message"] == "User not found"

    def test_missing_token(self, client):
        r = client.get("/user", params={"id": 42})
        assert r.status_code == 400
        assert r.json()["error"] == "VALIDATION_ERROR"

    def test_non_integer_id(self, client):
        r = client.get("/user", params={"id": "abc", "token": "x"})
        assert r.status_code == 400


class TestGenerateWav:
    """GET /tts/generate.wav"""

    def test_ok(self, make_client, token, ledger):
        engine = FakeEngine()
        client = make_client(engine)

        r = client.get("/tts/generate.wav", params={"id": 42, "token": token, "text": "こんにちは"})

        assert r.status_code == 200
        assert r.headers["content-type"] == "audio/wav"
        assert r.headers["X-Characters"] == "5"
        assert r.content == engine.wav_bytes
        assert r.content[:4] == b"RIFF"
        assert ledger.get(42).character_count == 5

    def test_too_long(self, client, token, ledger):
        r = client.get("/tts/generate.wav", params={"id": 42, "token": token, "text": "a" * 201})
        assert r.status_code == 400
        assert r.json()["message"] == "Text length must be at most 200 characters."
        assert ledger.get(42) is None

    def test_quota_exceeded(self, client, token, ledger):
        ledger.get_or_create(42)
        ledger.use_capacity(42, 5000)

        r = client.get("/tts/generate.wav", params={"id": 42, "token": token, "text": "a"})
        assert r.status_code == 429
        assert r.json()["message"] == "Account quota exceeded."

    def test_missing_text(self, client, token):
        r = client.get("/tts/generate.wav", params={"id": 42, "token": token})
        assert r.status_code == 400

    def test_engine_failure_is_masked(self, make_client, token):
        client = make_client(FakeEngine(error=EngineExecutionError("", "unknown dictionary", 1)))

        r = client.get("/tts/generate.wav", params={"id": 42, "token": token, "text": "hello"})

        assert r.status_code == 500
        body = r.json()
        assert body["error"] == "INTERNAL_ERROR"
        assert body["message"] == "Unexpected Error"
        assert "unknown dictionary" not in r.text

    def test_unexpected_exception(self, make_client, token):
        client = make_client(FakeEngine(error=RuntimeError("segfault at 0x0")))

        r = client.get("/tts/generate.wav", params={"id": 42, "token": token, "text": "hello"})

        assert r.status_code == 500
        assert r.json()["message"] == "Unexpected Error"
        assert "segfault" not in r.text

    def test_busy(self, make_client, token):
        from tts_api.tts.concurrency import ConcurrencyController

        controller = ConcurrencyController(max_concurrent=1, max_queue=0)
        client = make_client(controller=controller)

        with controller.acquire_sync(timeout=1.0):
            r = client.get("/tts/generate.wav", params={"id": 42, "token": token, "text": "hello"})
        assert r.status_code == 503
        assert r.json()["error"] == "BUSY"


class TestGenerateOpus:
    """GET /tts/generate.opus"""

    def test_ok(self, client, token):
        r = client.get("/tts/generate.opus", params={"id": 42, "token": token, "text": "hello"})

        assert r.status_code == 200
        body = r.json()
        assert body["sample_rate"] == 48000
        assert body["frame_ms"] == 20
        # FakeEngine's default WAV is 4800 samples: five 960-sample frames
        assert len(body["data"]) == 5
        assert all(len(base64.b64decode(frame)) == 2 for frame in body["data"])

    def test_wrong_token(self, client, token):
        r = client.get("/tts/generate.opus", params={"id": 42, "token": "F" * TOKEN_LENGTH, "text": "hello"})
        assert r.status_code == 401


class TestRevoke:
    """GET /revoke"""

    def test_rotates(self, client, token):
        r = client.get("/revoke", params={"id": 42, "token": token})
        assert r.status_code == 200
        new_token = r.json()["token"]
        assert len(new_token) == TOKEN_LENGTH
        assert new_token != token

        assert client.get("/user", params={"id": 42, "token": token}).status_code == 401
        assert client.get("/user", params={"id": 42, "token": new_token}).status_code == 200


class TestOps:
    """Health and metrics."""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert body["engine"]["engine"] == "fake"

    def test_metrics(self, client, token):
        client.get("/user", params={"id": 42, "token": token})
        r = client.get("/metrics")
        assert r.status_code == 200
        assert "tts_api_requests_total" in r.text


class TestRequestId:

    def test_unique_per_request(self, client):
        first = client.get("/").headers["X-Request-Id"]
        second = client.get("/").headers["X-Request-Id"]
        assert first != second
