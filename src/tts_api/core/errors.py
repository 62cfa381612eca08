"""
Error Taxonomy for tts-api.

Every failure a request can meet is an ``ApiError`` subclass carrying a
machine-readable code. The HTTP layer maps codes to status codes and
decides what the caller may see:

    Client-facing (message returned as-is):
        VALIDATION_ERROR  -> 400
        UNAUTHORIZED      -> 401
        NOT_FOUND         -> 404
        QUOTA_EXCEEDED    -> 429
        BUSY              -> 503

    Internal (logged in full, caller sees "Unexpected Error"):
        ENGINE_SPAWN_FAILED, ENGINE_FAILED, ENGINE_TIMEOUT,
        ENGINE_BAD_OUTPUT, ENCODE_FAILED, STORE_ERROR, INTERNAL_ERROR

Nothing in the service retries; a caller must resubmit.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes for API responses."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    BUSY = "BUSY"
    ENGINE_SPAWN_FAILED = "ENGINE_SPAWN_FAILED"
    ENGINE_FAILED = "ENGINE_FAILED"
    ENGINE_TIMEOUT = "ENGINE_TIMEOUT"
    ENGINE_BAD_OUTPUT = "ENGINE_BAD_OUTPUT"
    ENCODE_FAILED = "ENCODE_FAILED"
    STORE_ERROR = "STORE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


CLIENT_FACING = frozenset({
    ErrorCode.VALIDATION_ERROR,
    ErrorCode.UNAUTHORIZED,
    ErrorCode.NOT_FOUND,
    ErrorCode.QUOTA_EXCEEDED,
    ErrorCode.BUSY,
})

GENERIC_INTERNAL_MESSAGE = "Unexpected Error"


class ApiError(Exception):
    """
    Base exception for request failures.

    Attributes:
        message: Human-readable message.
        code: Value from ErrorCode.
        details: Extra context for logs. Only included in responses for
            client-facing codes.
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    @property
    def client_facing(self) -> bool:
        return self.code in CLIENT_FACING

    def to_dict(self) -> Dict[str, Any]:
        """Response body. Internal errors are reduced to a generic message."""
        if not self.client_facing:
            return {
                "ok": False,
                "error": ErrorCode.INTERNAL_ERROR,
                "message": GENERIC_INTERNAL_MESSAGE,
            }
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ApiError):
    """Input out of bounds (text too long, bad id)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class AuthError(ApiError):
    """Supplied token does not match the registered one."""
    def __init__(self, message: str = "Invalid token.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class NotFoundError(ApiError):
    """No token or user row registered for the id."""
    def __init__(self, message: str = "User not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class QuotaExceeded(ApiError):
    """The request would push character_count past character_limit."""
    def __init__(self, message: str = "Account quota exceeded.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.QUOTA_EXCEEDED, details)


class BusyError(ApiError):
    """No synthesis slot became available (queue full or wait timed out)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.BUSY, details)


class StoreError(ApiError):
    """Persistence failure other than a missing row."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.STORE_ERROR, details)


class EngineError(ApiError):
    """Base class for synthesis engine failures."""


class EngineSpawnError(EngineError):
    """The engine process could not be started."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.ENGINE_SPAWN_FAILED, details)


class EngineExecutionError(EngineError):
    """
    The engine exited with a non-zero status.

    Attributes:
        stdout: Captured standard output (decoded, lossy).
        stderr: Captured standard error (decoded, lossy).
        exit_code: Process exit status, negative when killed by a signal.
    """

    def __init__(self, stdout: str, stderr: str, exit_code: Optional[int]):
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(
            f"Non-zero exit code ({exit_code})\nStdout: {stdout!r}\nStderr: {stderr!r}",
            ErrorCode.ENGINE_FAILED,
            {"exit_code": exit_code, "stdout": stdout, "stderr": stderr},
        )


class EngineTimeoutError(EngineError):
    """The engine did not finish within the configured time."""
    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(
            f"Engine did not finish within {timeout_s}s",
            ErrorCode.ENGINE_TIMEOUT,
            {"timeout_s": timeout_s},
        )


class EngineDataError(EngineError):
    """The engine produced output that is not 16-bit PCM WAV."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.ENGINE_BAD_OUTPUT, details)


class EncodeError(ApiError):
    """Opus encoding failed."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.ENCODE_FAILED, details)
