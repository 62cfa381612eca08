"""
Tests for the error taxonomy.

Tests cover:
- ErrorCode values and the client-facing set
- to_dict() masking of internal errors
- Engine error attributes
"""
import pytest

from tts_api.core.errors import (
    ApiError,
    AuthError,
    BusyError,
    CLIENT_FACING,
    EncodeError,
    EngineDataError,
    EngineError,
    EngineExecutionError,
    EngineSpawnError,
    EngineTimeoutError,
    ErrorCode,
    GENERIC_INTERNAL_MESSAGE,
    NotFoundError,
    QuotaExceeded,
    StoreError,
    ValidationError,
)


class TestErrorCode:
    """Client-facing codes are exactly the ones with specific statuses."""

    def test_client_facing_set(self):
        assert CLIENT_FACING == {
            ErrorCode.VALIDATION_ERROR,
            ErrorCode.UNAUTHORIZED,
            ErrorCode.NOT_FOUND,
            ErrorCode.QUOTA_EXCEEDED,
            ErrorCode.BUSY,
        }


class TestClientFacing:
    """Client-facing errors keep their message."""

    @pytest.mark.parametrize("error, code", [
        (ValidationError("too long"), ErrorCode.VALIDATION_ERROR),
        (AuthError(), ErrorCode.UNAUTHORIZED),
        (NotFoundError(), ErrorCode.NOT_FOUND),
        (QuotaExceeded(), ErrorCode.QUOTA_EXCEEDED),
        (BusyError("busy"), ErrorCode.BUSY),
    ])
    def test_to_dict(self, error, code):
        body = error.to_dict()
        assert body["ok"] is False
        assert body["error"] == code
        assert body["message"] == error.message
        assert error.client_facing is True

    def test_default_messages(self):
        assert AuthError().message == "Invalid token."
        assert NotFoundError().message == "User not found"
        assert QuotaExceeded().message == "Account quota exceeded."

    def test_details_included(self):
        body = ValidationError("too long", {"length": 201}).to_dict()
        assert body["details"] == {"length": 201}


class TestInternal:
    """Internal errors never leak their message or details."""

    @pytest.mark.parametrize("error", [
        EngineSpawnError("no such file", {"command": "open_jtalk"}),
        EngineExecutionError("", "unknown dictionary", 1),
        EngineTimeoutError(30.0),
        EngineDataError("not PCM"),
        EncodeError("bad frame"),
        StoreError("connection refused"),
        ApiError("boom"),
    ])
    def test_masked(self, error):
        body = error.to_dict()
        assert body == {
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": GENERIC_INTERNAL_MESSAGE,
        }
        assert error.client_facing is False


class TestEngineErrors:
    """Engine errors carry diagnostic attributes."""

    def test_execution_error_fields(self):
        err = EngineExecutionError("out", "unknown dictionary", 1)
        assert err.stdout == "out"
        assert err.stderr == "unknown dictionary"
        assert err.exit_code == 1
        assert err.code == ErrorCode.ENGINE_FAILED
        assert "unknown dictionary" in str(err)
        assert err.details["stderr"] == "unknown dictionary"

    def test_hierarchy(self):
        for cls in (EngineSpawnError, EngineExecutionError, EngineTimeoutError, EngineDataError):
            assert issubclass(cls, EngineError)
            assert issubclass(cls, ApiError)
        assert not issubclass(EncodeError, EngineError)

    def test_timeout_fields(self):
        err = EngineTimeoutError(2.5)
        assert err.timeout_s == 2.5
        assert err.code == ErrorCode.ENGINE_TIMEOUT
