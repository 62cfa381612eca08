"""Request orchestration and input validation."""
from tts_api.services.gate import (
    FramesResult,
    GateState,
    RequestGate,
    SynthesisRequest,
    WavResult,
)

__all__ = [
    "FramesResult",
    "GateState",
    "RequestGate",
    "SynthesisRequest",
    "WavResult",
]
