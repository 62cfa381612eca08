"""
tts-api: Authenticated Open JTalk Speech Synthesis Service.

Exposes text-to-speech over HTTP for registered users. Every synthesis
request is authenticated with a per-user secret token and charged against
a per-user character quota before the external ``open_jtalk`` command runs.

Output Variants:
    - WAV container: the raw file produced by the engine
    - Opus frames: 20 ms frames at 48 kHz mono, encoded independently

Key Features:
    - Hashed per-user tokens (bcrypt) with upsert-style rotation
    - Atomic quota accounting (single conditional UPDATE)
    - Subprocess synthesis with scoped temporary files and timeouts
    - Bounded synthesis concurrency
    - Structured logging and Prometheus metrics

Example Usage:
    >>> from tts_api.core.config import Settings
    >>> from tts_api.services import RequestGate, SynthesisRequest
    >>>
    >>> gate = RequestGate.from_settings(Settings(raw={}))
    >>> result = gate.synthesize_wav(
    ...     SynthesisRequest(text="こんにちは", user_id=42, token="0A1B...")
    ... )
    >>> with open("output.wav", "wb") as f:
    ...     f.write(result.wav_bytes)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
