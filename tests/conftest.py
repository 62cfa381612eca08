"""Shared fixtures: SQLite-backed stores and an in-process synthesis engine."""
from __future__ import annotations

import io

import numpy as np
import pytest
import soundfile as sf

from tts_api.core.config import DatabaseConfig
from tts_api.store.database import create_db_engine, init_db
from tts_api.store.quota import QuotaLedger
from tts_api.store.tokens import BcryptHasher, TokenStore
from tts_api.tts.encoder import OpusFrameEncoder, split_frames
from tts_api.tts.engine import SynthesisEngine


def make_wav(n_samples: int = 4800, sample_rate: int = 48000, subtype: str = "PCM_16", channels: int = 1) -> bytes:
    """A sine-tone WAV container of ``n_samples`` frames."""
    t = np.arange(n_samples) / sample_rate
    tone = (0.3 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    if channels > 1:
        tone = np.stack([tone] * channels, axis=1)
    buf = io.BytesIO()
    sf.write(buf, tone, sample_rate, format="WAV", subtype=subtype)
    return buf.getvalue()


class FakeEngine(SynthesisEngine):
    """Engine double returning a fixed WAV, or raising ``error`` if set."""
    name = "fake"

    def __init__(self, wav_bytes: bytes | None = None, error: Exception | None = None):
        super().__init__(command="fake")
        self.wav_bytes = wav_bytes if wav_bytes is not None else make_wav()
        self.error = error
        self.calls: list[str] = []

    def generate(self, text: str) -> bytes:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.wav_bytes

    def is_available(self) -> bool:
        return True


class StubEncoder(OpusFrameEncoder):
    """Frames the PCM without libopus; each packet is the frame's first sample."""

    def encode(self, samples):
        frames = split_frames(samples, self.frame_size, pad=self.pad_final_frame)
        return [frame[:1].tobytes() for frame in frames]


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(DatabaseConfig(url=f"sqlite:///{tmp_path / 'tts-api-test.db'}"))
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def tokens(db_engine):
    # Minimum bcrypt cost keeps the suite fast
    return TokenStore(db_engine, BcryptHasher(rounds=4))


@pytest.fixture
def ledger(db_engine):
    return QuotaLedger(db_engine, default_limit=5000)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def encoder():
    return OpusFrameEncoder()
