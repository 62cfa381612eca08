"""
Audio and Scratch-File Utilities.

open_jtalk writes a RIFF/WAV container with 16-bit linear PCM. This module
parses such containers into int16 sample arrays and provides the scratch
directory each engine invocation writes into.

Key Functions:
    scratch_dir: Context manager for a private temporary directory
    read_pcm16: Parse WAV bytes into (int16 samples, sample_rate)

Dependencies:
    - numpy: Sample arrays
    - soundfile: WAV parsing (uses libsndfile)
"""
from __future__ import annotations

import contextlib
import io
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

import numpy as np
import soundfile as sf

from tts_api.core.errors import EngineDataError
from tts_api.core.logging import debug, get_logger

_LOG = get_logger("tts-api.audio")

PCM_16 = "PCM_16"


@contextlib.contextmanager
def scratch_dir(prefix: str = "tts_api_") -> Iterator[Path]:
    """
    Yield a fresh temporary directory, removed on every exit path.

    Each call gets its own directory, so concurrent synthesis calls never
    share input or output files.

    Example:
        >>> with scratch_dir() as workdir:
        ...     (workdir / "input.txt").write_text("...")
        ... # Directory and contents deleted here
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield tmp_dir
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)


def read_pcm16(wav_bytes: bytes) -> tuple[np.ndarray, int]:
    """
    Decode a WAV container holding 16-bit linear PCM.

    Multi-channel audio is returned interleaved, i.e. flattened frame by
    frame.

    Args:
        wav_bytes: Complete WAV file contents.

    Returns:
        Tuple of (samples, sample_rate); samples is a 1-D int16 array.

    Raises:
        EngineDataError: The bytes are not a readable container, or the
            container does not hold 16-bit PCM.
    """
    try:
        with sf.SoundFile(io.BytesIO(wav_bytes)) as f:
            if f.subtype != PCM_16:
                raise EngineDataError(
                    "Output is not 16-bit PCM",
                    {"subtype": f.subtype, "format": f.format},
                )
            samples = f.read(dtype="int16")
            sample_rate = int(f.samplerate)
            channels = int(f.channels)
    except (RuntimeError, TypeError, ValueError) as exc:
        # libsndfile raises LibsndfileError (a RuntimeError) on bad headers
        raise EngineDataError(
            "Output is not a readable WAV container",
            {"error": str(exc), "bytes": len(wav_bytes)},
        ) from exc

    samples = np.asarray(samples, dtype=np.int16).reshape(-1)
    debug(_LOG, "pcm_parsed", samples=int(samples.size), sr=sample_rate, channels=channels)
    return samples, sample_rate
