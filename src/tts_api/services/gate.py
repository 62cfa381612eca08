"""
Request Gate: authentication, quota and synthesis for one request.

The gate is the single path by which a request reaches the engine. For each
request it walks a fixed sequence of states:

    RECEIVED -> VALIDATED -> AUTHENTICATED -> QUOTA_CHECKED
             -> SYNTHESIZED -> (ENCODED) -> COMPLETED

Any step before SYNTHESIZED may end in REJECTED. Each transition is logged
at VERBOSE level under the current request id.

Pipeline:
    1. Validate text length (characters, default limit 200)
    2. Verify the token (mismatch -> AuthError, no token -> NotFoundError)
    3. Resolve or create the user row
    4. Charge len(text) against the quota (QuotaExceeded stops here,
       before any engine work)
    5. Synthesize inside a concurrency slot (BusyError when saturated)
    6. Encode to Opus frames (frames variant only)

Engine and encoder failures propagate as their own EngineError/EncodeError
types and are logged in full. Capacity charged in step 4 stays charged.

Usage:
    gate = RequestGate(tokens, ledger, engine, encoder)
    result = gate.synthesize_wav(SynthesisRequest(text="...", user_id=42, token="..."))
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine

from tts_api.core.config import Defaults, ServiceConfig
from tts_api.core.errors import (
    ApiError,
    AuthError,
    EngineError,
    ErrorCode,
    QuotaExceeded,
)
from tts_api.core.logging import fail, get_logger, get_request_id, info, success, verbose
from tts_api.core.metrics import metrics
from tts_api.services.validators import validate_text, validate_user_id
from tts_api.store.database import create_db_engine
from tts_api.store.quota import QuotaLedger, User
from tts_api.store.tokens import Token, TokenStore, make_hasher
from tts_api.tts.concurrency import ConcurrencyController
from tts_api.tts.encoder import OpusFrameEncoder
from tts_api.tts.engine import SynthesisEngine, build_engine
from tts_api.utils.timeit import timeit

_LOG = get_logger("tts-api.gate")


class GateState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    AUTHENTICATED = "authenticated"
    QUOTA_CHECKED = "quota_checked"
    SYNTHESIZED = "synthesized"
    ENCODED = "encoded"
    COMPLETED = "completed"
    REJECTED = "rejected"


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

@dataclass
class SynthesisRequest:
    """
    One synthesis request as received from a caller.

    Attributes:
        text: Text to synthesize.
        user_id: External account id.
        token: Secret token as supplied; excluded from repr.
    """
    text: str
    user_id: int
    token: str = field(repr=False)


@dataclass
class WavResult:
    """WAV container produced for a request."""
    wav_bytes: bytes
    user_id: int
    chars: int
    request_id: str
    total_seconds: float


@dataclass
class FramesResult:
    """
    Opus frames produced for a request.

    Attributes:
        frames: Encoded packets in order; frame i covers
            samples [i*frame_size, (i+1)*frame_size).
        sample_rate: Encoder sample rate in Hz.
        frame_ms: Frame duration in milliseconds.
    """
    frames: List[bytes]
    sample_rate: int
    frame_ms: int
    user_id: int
    chars: int
    request_id: str
    total_seconds: float


# =============================================================================
# Gate
# =============================================================================

class RequestGate:
    """
    Orchestrates TokenStore, QuotaLedger, SynthesisEngine and the encoder.

    Every collaborator is passed in at construction; the gate keeps no
    per-request state and is shared by all request threads.
    """

    def __init__(
        self,
        tokens: TokenStore,
        ledger: QuotaLedger,
        engine: SynthesisEngine,
        encoder: OpusFrameEncoder,
        controller: Optional[ConcurrencyController] = None,
        max_text_chars: int = Defaults.GATE_MAX_TEXT_CHARS,
        concurrency_timeout_s: float = Defaults.CONCURRENCY_TIMEOUT_S,
        text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS,
    ):
        self.tokens = tokens
        self.ledger = ledger
        self.engine = engine
        self.encoder = encoder
        self.controller = controller
        self.max_text_chars = max_text_chars
        self.concurrency_timeout_s = concurrency_timeout_s
        self.text_preview_chars = text_preview_chars

    @classmethod
    def from_config(cls, config: ServiceConfig, db_engine: Optional[Engine] = None) -> "RequestGate":
        """Build a gate and all collaborators from validated configuration."""
        db_engine = db_engine or create_db_engine(config.database)
        controller = None
        if config.concurrency.enabled:
            controller = ConcurrencyController(
                max_concurrent=config.concurrency.max_concurrent,
                max_queue=config.concurrency.max_queue,
            )
        return cls(
            tokens=TokenStore(db_engine, make_hasher(config.auth), token_length=config.auth.token_length),
            ledger=QuotaLedger(db_engine, default_limit=config.quota.default_limit),
            engine=build_engine(config),
            encoder=OpusFrameEncoder(
                sample_rate=config.encoder.sample_rate,
                frame_ms=config.encoder.frame_ms,
                max_packet_bytes=config.encoder.max_packet_bytes,
                pad_final_frame=config.encoder.pad_final_frame,
            ),
            controller=controller,
            max_text_chars=config.gate.max_text_chars,
            concurrency_timeout_s=config.concurrency.timeout_s,
            text_preview_chars=config.logging.text_preview_chars,
        )

    # =========================================================================
    # Steps
    # =========================================================================

    def _transition(self, state: GateState, **fields: Any) -> None:
        verbose(_LOG, "gate_state", state=state.value, **fields)

    def _authenticate(self, user_id: int, token: str) -> User:
        validate_user_id(user_id)
        if not self.tokens.verify(user_id, token):
            raise AuthError("Invalid token.", {"user_id": user_id})
        self._transition(GateState.AUTHENTICATED, user_id=user_id)
        return self.ledger.get_or_create(user_id)

    def _admit(self, request: SynthesisRequest) -> int:
        """Run steps 1-4 and return the number of characters charged."""
        self._transition(GateState.RECEIVED, user_id=request.user_id)
        text = validate_text(request.text, self.max_text_chars)
        chars = len(text)
        self._transition(GateState.VALIDATED, chars=chars)

        self._authenticate(request.user_id, request.token)

        try:
            self.ledger.use_capacity(request.user_id, chars)
        except QuotaExceeded:
            metrics.record_quota_rejection()
            raise
        metrics.record_characters(chars)
        self._transition(GateState.QUOTA_CHECKED, user_id=request.user_id, chars=chars)
        return chars

    def _synthesize(self, fn, text: str):
        if self.controller is None:
            return fn(text)
        with self.controller.acquire_sync(timeout=self.concurrency_timeout_s):
            return fn(text)

    def _run(self, endpoint: str, request: SynthesisRequest, body):
        """
        Admit the request, call ``body(chars)``, and record the outcome.

        Client-facing rejections are logged at NORMAL level; anything else
        is logged in full with FAIL before it propagates.
        """
        preview = request.text[:self.text_preview_chars] if self.text_preview_chars > 0 else ""
        info(_LOG, "request", endpoint=endpoint, user_id=request.user_id, chars=len(request.text), text_preview=preview)

        with timeit(endpoint) as total_t:
            try:
                chars = self._admit(request)
                result = body(chars)
            except ApiError as e:
                self._transition(GateState.REJECTED, reason=e.code)
                if e.client_facing:
                    info(_LOG, "rejected", endpoint=endpoint, code=e.code, message=e.message)
                else:
                    if isinstance(e, EngineError):
                        metrics.record_engine_failure(e.code)
                    fail(_LOG, "request_failed", endpoint=endpoint, code=e.code, error=e.message, details=e.details)
                metrics.record_request(endpoint, e.code, duration=-1)
                raise
            except Exception as e:
                fail(_LOG, "request_failed", exc_info=True, endpoint=endpoint,
                     error=str(e), error_type=type(e).__name__)
                metrics.record_request(endpoint, ErrorCode.INTERNAL_ERROR, duration=-1)
                raise

        self._transition(GateState.COMPLETED)
        metrics.record_request(endpoint, "ok", duration=total_t.seconds)
        return result, total_t.seconds

    # =========================================================================
    # Public API
    # =========================================================================

    def fetch_user(self, user_id: int, token: str) -> User:
        """
        Return the user's quota record after verifying the token.

        Creates the row on first use, like a synthesis request would.
        """
        with timeit("user") as t:
            try:
                user = self._authenticate(user_id, token)
            except ApiError as e:
                metrics.record_request("user", e.code, duration=-1)
                raise
        metrics.record_request("user", "ok", duration=t.seconds)
        return user

    def synthesize_wav(self, request: SynthesisRequest) -> WavResult:
        """
        Synthesize to a WAV container.

        Raises:
            ValidationError, AuthError, NotFoundError, QuotaExceeded,
            BusyError: Client-facing rejections.
            EngineError, StoreError: Internal failures.
        """
        def body(chars: int) -> WavResult:
            wav_bytes = self._synthesize(self.engine.generate, request.text)
            self._transition(GateState.SYNTHESIZED, bytes=len(wav_bytes))
            return WavResult(
                wav_bytes=wav_bytes,
                user_id=request.user_id,
                chars=chars,
                request_id=get_request_id(),
                total_seconds=-1.0,
            )

        result, seconds = self._run("wav", request, body)
        result.total_seconds = seconds
        success(_LOG, "done", endpoint="wav", bytes=len(result.wav_bytes), seconds=round(seconds, 3))
        return result

    def synthesize_frames(self, request: SynthesisRequest) -> FramesResult:
        """
        Synthesize to a list of Opus frames.

        Raises:
            Same as synthesize_wav, plus EncodeError.
        """
        def body(chars: int) -> FramesResult:
            samples = self._synthesize(self.engine.generate_pcm, request.text)
            self._transition(GateState.SYNTHESIZED, samples=int(samples.size))
            frames = self.encoder.encode(samples)
            metrics.record_frames(len(frames))
            self._transition(GateState.ENCODED, frames=len(frames))
            return FramesResult(
                frames=frames,
                sample_rate=self.encoder.sample_rate,
                frame_ms=self.encoder.frame_ms,
                user_id=request.user_id,
                chars=chars,
                request_id=get_request_id(),
                total_seconds=-1.0,
            )

        result, seconds = self._run("opus", request, body)
        result.total_seconds = seconds
        success(_LOG, "done", endpoint="opus", frames=len(result.frames), seconds=round(seconds, 3))
        return result

    def rotate_token(self, user_id: int, token: str) -> Token:
        """
        Replace the user's token with a freshly issued one.

        The old token stops verifying as soon as this returns.
        """
        with timeit("revoke") as t:
            try:
                user = self._authenticate(user_id, token)
                new_token = self.tokens.issue()
                self.tokens.register(user.id, new_token)
            except ApiError as e:
                metrics.record_request("revoke", e.code, duration=-1)
                raise
        metrics.record_request("revoke", "ok", duration=t.seconds)
        info(_LOG, "token_rotated", user_id=user_id)
        return new_token

    def login(self, account_id: int) -> Token:
        """
        Issue and register a token for an account id verified elsewhere.

        Stored tokens are one-way digests, so an existing token cannot be
        handed out again; every login issues a new one and revokes the old.
        """
        validate_user_id(account_id)
        token = self.tokens.issue()
        self.tokens.register(account_id, token)
        info(_LOG, "login", user_id=account_id)
        return token

    def health(self) -> Dict[str, Any]:
        store_ok = self.ledger.ping()
        result: Dict[str, Any] = {
            "ok": store_ok,
            "store": store_ok,
            "engine": self.engine.describe(),
            "encoder": {
                "sample_rate": self.encoder.sample_rate,
                "frame_ms": self.encoder.frame_ms,
                "frame_size": self.encoder.frame_size,
            },
            "max_text_chars": self.max_text_chars,
        }
        if self.controller is not None:
            stats = self.controller.stats()
            result["concurrency"] = {
                "max_concurrent": stats.max_concurrent,
                "active": stats.current_active,
                "waiting": stats.current_waiting,
                "total_processed": stats.total_processed,
                "total_rejected": stats.total_rejected,
            }
        return result
