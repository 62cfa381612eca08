"""
HTTP Routes.

Endpoints:
    GET /                    - Liveness text ("it works!")
    GET /user                - Quota record for an authenticated user
    GET /tts/generate.wav    - Synthesize to a WAV container
    GET /tts/generate.opus   - Synthesize to base64 Opus frames (JSON)
    GET /revoke              - Rotate the caller's token
    GET /health              - Engine, store and concurrency status
    GET /metrics             - Prometheus metrics

Request Flow:
    1. Bind the request id assigned by the middleware in main.py
    2. Hand the query parameters to the RequestGate
    3. Map the outcome to a response

Error Handling:
    Every error is JSON:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "request_id": "<id>"
    }

    Client-facing codes keep their message and map to:
        - VALIDATION_ERROR -> 400 Bad Request
        - UNAUTHORIZED     -> 401 Unauthorized
        - NOT_FOUND        -> 404 Not Found
        - QUOTA_EXCEEDED   -> 429 Too Many Requests
        - BUSY             -> 503 Service Unavailable

    Everything else (engine, encoder, store failures) is 500 with the
    message "Unexpected Error"; the detail only reaches the server log.

Example Usage:
    curl "http://localhost:8000/tts/generate.wav?id=42&token=...&text=こんにちは" \\
        --output speech.wav
"""
from __future__ import annotations

import base64
import uuid

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from tts_api.api.dependencies import get_gate
from tts_api.api.schemas import OpusFramesResponse, RevokeResponse, UserResponse
from tts_api.core.errors import ApiError, ErrorCode, GENERIC_INTERNAL_MESSAGE
from tts_api.core.logging import fail, get_logger, set_request_id
from tts_api.core.metrics import metrics
from tts_api.services.gate import RequestGate, SynthesisRequest

router = APIRouter()

_LOG = get_logger("tts-api.api")

STATUS_MAP = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.BUSY: 503,
}


def new_request_id() -> str:
    return str(uuid.uuid4())[:12]


def bind_request_id(request: Request) -> str:
    """Bind the middleware-assigned id to this thread's logging context."""
    rid = getattr(request.state, "request_id", None) or new_request_id()
    request.state.request_id = rid
    set_request_id(rid)
    return rid


def error_response(error: ApiError, request_id: str) -> JSONResponse:
    """Status and body for an ApiError; internal codes are masked."""
    body = error.to_dict()
    body["request_id"] = request_id
    return JSONResponse(
        status_code=STATUS_MAP.get(error.code, 500),
        content=body,
        headers={"X-Request-Id": request_id},
    )


def internal_error_response(request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": GENERIC_INTERNAL_MESSAGE,
            "request_id": request_id,
        },
        headers={"X-Request-Id": request_id},
    )


@router.get("/", response_class=PlainTextResponse)
def index() -> str:
    return "it works!"


@router.get("/user", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int = Query(..., alias="id"),
    token: str = Query(...),
    gate: RequestGate = Depends(get_gate),
):
    """Return the caller's quota record (creating it on first use)."""
    rid = bind_request_id(request)
    try:
        user = gate.fetch_user(user_id, token)
    except ApiError as e:
        return error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", exc_info=True, route="/user", error=str(e), error_type=type(e).__name__)
        return internal_error_response(rid)
    return UserResponse(**user.to_dict())


@router.get("/tts/generate.wav", response_class=Response)
def generate_wav(
    request: Request,
    text: str = Query(...),
    user_id: int = Query(..., alias="id"),
    token: str = Query(...),
    gate: RequestGate = Depends(get_gate),
):
    """
    Synthesize ``text`` and return the WAV container.

    Returns:
        Response: audio/wav body with headers:
            - X-Request-Id: Request identifier for tracing
            - X-Characters: Characters charged to the quota
    """
    rid = bind_request_id(request)
    try:
        result = gate.synthesize_wav(SynthesisRequest(text=text, user_id=user_id, token=token))
    except ApiError as e:
        return error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", exc_info=True, route="/tts/generate.wav", error=str(e), error_type=type(e).__name__)
        return internal_error_response(rid)

    headers = {
        "X-Request-Id": rid,
        "X-Characters": str(result.chars),
    }
    return Response(content=result.wav_bytes, media_type="audio/wav", headers=headers)


@router.get("/tts/generate.opus", response_model=OpusFramesResponse)
def generate_opus(
    request: Request,
    text: str = Query(...),
    user_id: int = Query(..., alias="id"),
    token: str = Query(...),
    gate: RequestGate = Depends(get_gate),
):
    """
    Synthesize ``text`` and return Opus frames.

    Frames are base64-encoded so the body stays plain JSON; decode each
    and feed them to an Opus decoder in order.
    """
    rid = bind_request_id(request)
    try:
        result = gate.synthesize_frames(SynthesisRequest(text=text, user_id=user_id, token=token))
    except ApiError as e:
        return error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", exc_info=True, route="/tts/generate.opus", error=str(e), error_type=type(e).__name__)
        return internal_error_response(rid)

    return OpusFramesResponse(
        data=[base64.b64encode(frame).decode("ascii") for frame in result.frames],
        sample_rate=result.sample_rate,
        frame_ms=result.frame_ms,
    )


@router.get("/revoke", response_model=RevokeResponse)
def revoke(
    request: Request,
    user_id: int = Query(..., alias="id"),
    token: str = Query(...),
    gate: RequestGate = Depends(get_gate),
):
    """Issue a new token for the caller; the supplied one stops working."""
    rid = bind_request_id(request)
    try:
        new_token = gate.rotate_token(user_id, token)
    except ApiError as e:
        return error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", exc_info=True, route="/revoke", error=str(e), error_type=type(e).__name__)
        return internal_error_response(rid)
    return RevokeResponse(token=new_token.show())


@router.get("/health")
def health(gate: RequestGate = Depends(get_gate)):
    """
    Health check for load balancers and orchestrators.

    ``ok`` is false when the database does not answer.
    """
    return gate.health()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
