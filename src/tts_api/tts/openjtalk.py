"""
Open JTalk Engine.

Runs the ``open_jtalk`` executable once per request. Each call gets its own
scratch directory holding ``input.txt`` (the UTF-8 text) and ``output.wav``
(written by open_jtalk); the directory is removed however the call ends.

Command line built from OpenJTalkConfig:

    open_jtalk -x <dictionary> -m <hts_path> [-s <sampling>] [-p <frame_period>]
               -a <all_pass> -b <postfilter_coef> -r <speed_rate>
               -fm <additional_half_tone> -u <unvoiced_threshold>
               -jm <spectrum_weight> -jf <spectrum_f0>
               -ow <output.wav> <input.txt>

settings.yaml:
    engine:
      command: open_jtalk
      timeout_s: 30
      openjtalk:
        dictionary: /var/lib/mecab/dic/open-jtalk/naist-jdic
        hts_path: /usr/share/hts-voice/mei/mei_normal.htsvoice
        speed_rate: 1.0

Failures:
    EngineSpawnError      open_jtalk could not be started
    EngineExecutionError  non-zero exit (stdout, stderr and exit code kept)
    EngineTimeoutError    did not finish within timeout_s (process killed)
    EngineDataError       no output file, or output is not 16-bit PCM
"""
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List

from tts_api.core.config import Defaults, OpenJTalkConfig
from tts_api.core.errors import (
    EngineDataError,
    EngineExecutionError,
    EngineSpawnError,
    EngineTimeoutError,
)
from tts_api.core.logging import debug, error, info
from tts_api.tts.engine import SynthesisEngine
from tts_api.utils.audio import scratch_dir
from tts_api.utils.timeit import timeit

INPUT_NAME = "input.txt"
OUTPUT_NAME = "output.wav"


def build_command(config: OpenJTalkConfig, command: str, input_path: Path, output_path: Path) -> List[str]:
    """Return the argv for one open_jtalk invocation."""
    args = [
        command,
        "-x", str(config.dictionary),
        "-m", str(config.hts_path),
    ]
    if config.sampling is not None:
        args += ["-s", str(config.sampling)]
    if config.frame_period is not None:
        args += ["-p", str(config.frame_period)]
    args += [
        "-a", str(config.all_pass if config.all_pass is not None else 0),
        "-b", str(config.postfilter_coef),
        "-r", str(config.speed_rate),
        "-fm", str(config.additional_half_tone),
        "-u", str(config.unvoiced_threshold),
        "-jm", str(config.spectrum_weight),
        "-jf", str(config.spectrum_f0),
        "-ow", str(output_path),
        str(input_path),
    ]
    return args


def _decode(stream: bytes | None) -> str:
    return (stream or b"").decode("utf-8", errors="replace")


class OpenJTalkEngine(SynthesisEngine):
    """
    Synthesis through the open_jtalk command.

    Instances hold no per-call state and may be shared across threads.
    """
    name = "openjtalk"

    def __init__(
        self,
        config: OpenJTalkConfig,
        command: str = Defaults.ENGINE_COMMAND,
        timeout_s: float = Defaults.ENGINE_TIMEOUT_S,
        expected_sample_rate: int = Defaults.ENCODER_SAMPLE_RATE,
    ):
        super().__init__(command=command, expected_sample_rate=expected_sample_rate)
        self.config = config
        self.timeout_s = timeout_s

    def generate(self, text: str) -> bytes:
        with scratch_dir(prefix="tts_api_ojt_") as workdir:
            input_path = workdir / INPUT_NAME
            output_path = workdir / OUTPUT_NAME
            input_path.write_text(text, encoding="utf-8")

            argv = build_command(self.config, self.command, input_path, output_path)
            debug(self.logger, "spawn", argv=argv)

            with timeit("openjtalk") as t:
                self._run(argv)

            if not output_path.exists():
                raise EngineDataError("Engine produced no output file", {"output": str(output_path)})
            wav_bytes = output_path.read_bytes()

        if not wav_bytes:
            raise EngineDataError("Engine produced an empty output file")

        info(self.logger, "synthesized", chars=len(text), bytes=len(wav_bytes), seconds=round(t.seconds, 3))
        return wav_bytes

    def _run(self, argv: List[str]) -> None:
        try:
            proc = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=self.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            error(self.logger, "engine_timeout", timeout_s=self.timeout_s, stderr=_decode(exc.stderr))
            raise EngineTimeoutError(self.timeout_s) from exc
        except OSError as exc:
            error(self.logger, "engine_spawn_failed", command=self.command, error=str(exc))
            raise EngineSpawnError(
                f"Failed to start {self.command}",
                {"command": self.command, "error": str(exc), "errno": exc.errno},
            ) from exc

        if proc.returncode != 0:
            stdout = _decode(proc.stdout)
            stderr = _decode(proc.stderr)
            error(self.logger, "engine_exit_nonzero", exit_code=proc.returncode, stdout=stdout, stderr=stderr)
            raise EngineExecutionError(stdout, stderr, proc.returncode)
