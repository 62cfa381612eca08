"""Speech synthesis: engine, Opus encoder and slot limiter."""
from tts_api.tts.concurrency import ConcurrencyController
from tts_api.tts.encoder import OpusFrameEncoder, split_frames
from tts_api.tts.engine import SynthesisEngine, get_engine
from tts_api.tts.openjtalk import OpenJTalkEngine, build_command

__all__ = [
    "ConcurrencyController",
    "OpusFrameEncoder",
    "split_frames",
    "SynthesisEngine",
    "get_engine",
    "OpenJTalkEngine",
    "build_command",
]
