"""
Synthesis Engine Base Class and Factory.

This module provides:
    - SynthesisEngine: Base class for engines that turn text into WAV audio
    - get_engine(): Factory building the configured engine from settings

Only the Open JTalk engine is registered. The service speaks a single
voice, chosen by configuration rather than per request.

Implementing a New Engine:
    1. Inherit from SynthesisEngine
    2. Implement generate()
    3. Register it in build_engine()
"""
from __future__ import annotations

import shutil
from typing import Any, Dict

import numpy as np

from tts_api.core.config import ConfigValidationError, ServiceConfig, Settings
from tts_api.core.logging import get_logger, info, warn
from tts_api.utils.audio import read_pcm16


class SynthesisEngine:
    """
    Base class for synthesis engines.

    Subclasses implement ``generate``; ``generate_pcm`` parses its output.

    Attributes:
        name: Engine identifier.
        command: Executable the engine runs, if any.
        expected_sample_rate: Rate downstream consumers assume; a mismatch
            is logged but not rejected.
    """
    name: str = "base"

    def __init__(self, command: str = "", expected_sample_rate: int = 48000):
        self.command = command
        self.expected_sample_rate = expected_sample_rate
        self.logger = get_logger(f"tts-api.engine.{self.name}")

    def generate(self, text: str) -> bytes:
        """
        Synthesize ``text`` and return a complete WAV container.

        Raises:
            EngineError: Any failure while producing audio.
        """
        raise NotImplementedError

    def generate_pcm(self, text: str) -> np.ndarray:
        """
        Synthesize ``text`` and return interleaved int16 samples.

        Raises:
            EngineDataError: The output is not 16-bit PCM.
            EngineError: Any other failure from ``generate``.
        """
        samples, sample_rate = read_pcm16(self.generate(text))
        if sample_rate != self.expected_sample_rate:
            warn(
                self.logger,
                "sample_rate_mismatch",
                sr=sample_rate,
                expected=self.expected_sample_rate,
            )
        return samples

    def is_available(self) -> bool:
        """True if the executable can be found on PATH (or as a path)."""
        return bool(self.command) and shutil.which(self.command) is not None

    def describe(self) -> Dict[str, Any]:
        return {
            "engine": self.name,
            "command": self.command,
            "available": self.is_available(),
        }


def build_engine(config: ServiceConfig) -> SynthesisEngine:
    engine_name = config.engine.name

    if engine_name == "openjtalk":
        from tts_api.tts.openjtalk import OpenJTalkEngine
        return OpenJTalkEngine(
            config.engine.openjtalk,
            command=config.engine.command,
            timeout_s=config.engine.timeout_s,
            expected_sample_rate=config.encoder.sample_rate,
        )

    raise ConfigValidationError(f"Unknown engine: {engine_name!r} (available: 'openjtalk')")


def get_engine(settings: Settings) -> SynthesisEngine:
    """
    Build the engine named by ``engine.name`` in settings.

    Raises:
        ConfigValidationError: Unknown engine name or invalid parameters.
    """
    config = settings.get_service_config()
    engine = build_engine(config)
    info(engine.logger, "engine_ready", engine=engine.name, command=engine.command)
    return engine
