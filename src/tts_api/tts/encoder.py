"""
PCM to Opus Frame Encoder.

Splits 16-bit PCM into fixed-duration frames and compresses each with
libopus (through ``opuslib``). At the default 48 kHz and 20 ms a frame is
960 samples, and frame ``i`` covers samples ``[i*960, (i+1)*960)``.

One libopus encoder state is created per ``encode`` call and used for every
frame of that call, so the codec keeps its cross-frame prediction; it is
destroyed when the call returns. The encoder object itself holds no state
between calls and can be shared across request threads.

Final partial frame:
    pad_final_frame=True (default): zero-padded to a full frame
    pad_final_frame=False: dropped, with a warning naming the sample count

Each frame is encoded into a ``max_packet_bytes`` buffer and only the
length libopus reports is returned.
"""
from __future__ import annotations

from typing import List

import numpy as np

from tts_api.core.config import Defaults
from tts_api.core.errors import EncodeError
from tts_api.core.logging import debug, get_logger, warn

_LOG = get_logger("tts-api.encoder")


def split_frames(samples: np.ndarray, frame_size: int, pad: bool = True) -> List[np.ndarray]:
    """
    Partition ``samples`` into consecutive frames of ``frame_size`` samples.

    Args:
        samples: 1-D int16 samples (interleaved if multi-channel).
        frame_size: Samples per frame across all channels.
        pad: Zero-pad a trailing partial frame instead of dropping it.

    Returns:
        List of int16 arrays, each exactly ``frame_size`` long.
    """
    if frame_size <= 0:
        raise ValueError(f"frame_size must be positive, got {frame_size}")

    samples = np.asarray(samples, dtype=np.int16).reshape(-1)
    full, rest = divmod(samples.size, frame_size)
    frames = [samples[i * frame_size:(i + 1) * frame_size] for i in range(full)]

    if rest:
        if pad:
            tail = np.zeros(frame_size, dtype=np.int16)
            tail[:rest] = samples[full * frame_size:]
            frames.append(tail)
        else:
            warn(_LOG, "partial_frame_dropped", samples=rest, frame_size=frame_size)
    return frames


def _load_opuslib():
    try:
        import opuslib
        import opuslib.api.encoder
    except Exception as exc:
        # opuslib raises a bare Exception when libopus cannot be located
        raise EncodeError("Opus codec unavailable", {"error": str(exc)}) from exc
    return opuslib


class OpusFrameEncoder:
    """
    Encodes int16 PCM into a list of Opus packets.

    Usage:
        encoder = OpusFrameEncoder()
        frames = encoder.encode(samples)    # list[bytes], each <= 256 bytes
    """

    def __init__(
        self,
        sample_rate: int = Defaults.ENCODER_SAMPLE_RATE,
        frame_ms: int = Defaults.ENCODER_FRAME_MS,
        channels: int = 1,
        max_packet_bytes: int = Defaults.ENCODER_MAX_PACKET_BYTES,
        pad_final_frame: bool = Defaults.ENCODER_PAD_FINAL_FRAME,
    ):
        self.sample_rate = sample_rate
        self.frame_ms = frame_ms
        self.channels = channels
        self.max_packet_bytes = max_packet_bytes
        self.pad_final_frame = pad_final_frame

    @property
    def frame_size(self) -> int:
        """Samples per channel in one frame."""
        return self.sample_rate * self.frame_ms // 1000

    def encode(self, samples: np.ndarray) -> List[bytes]:
        """
        Encode ``samples`` into Opus frames, in order.

        Raises:
            EncodeError: libopus is unavailable or rejected a frame.
        """
        pcm_frames = split_frames(samples, self.frame_size * self.channels, pad=self.pad_final_frame)
        if not pcm_frames:
            return []

        opuslib = _load_opuslib()
        try:
            state = opuslib.api.encoder.create_state(self.sample_rate, self.channels, opuslib.APPLICATION_AUDIO)
        except opuslib.OpusError as exc:
            raise EncodeError("Failed to create Opus encoder", {"error": str(exc)}) from exc

        packets: List[bytes] = []
        try:
            for index, frame in enumerate(pcm_frames):
                pcm = np.ascontiguousarray(frame, dtype=np.int16).tobytes()
                try:
                    packet = opuslib.api.encoder.encode(state, pcm, self.frame_size, self.max_packet_bytes)
                except opuslib.OpusError as exc:
                    raise EncodeError(
                        "Opus encoding failed",
                        {"frame": index, "error": str(exc)},
                    ) from exc
                packets.append(bytes(packet))
        finally:
            opuslib.api.encoder.destroy(state)

        debug(_LOG, "opus_encoded", frames=len(packets), bytes=sum(len(p) for p in packets))
        return packets
