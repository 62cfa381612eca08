"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

PYPROJECT = Path(__file__).parent.parent / "pyproject.toml"


class TestPackageInstallation:
    """The package imports without PYTHONPATH tweaks."""

    def test_version_defined(self):
        import tts_api
        assert isinstance(tts_api.__version__, str)
        assert tts_api.__version__

    def test_modules_importable(self):
        from tts_api.api import routes, schemas
        from tts_api.core import config, errors, logging, metrics
        from tts_api.services import gate
        from tts_api.store import database, quota, tokens
        from tts_api.tts import concurrency, encoder, engine, openjtalk

        for module in (routes, schemas, config, errors, logging, metrics, gate,
                       database, quota, tokens, concurrency, encoder, engine, openjtalk):
            assert module is not None


class TestCLIEntryPoint:

    def test_module_help(self):
        result = subprocess.run(
            [sys.executable, "-m", "tts_api.cli", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "tts-api operator CLI" in result.stdout


class TestPyprojectToml:

    @pytest.fixture
    def data(self):
        tomllib = pytest.importorskip("tomllib")
        return tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    def test_name(self, data):
        assert data["project"]["name"] == "tts-api"

    def test_dependencies(self, data):
        names = {d.split(">=")[0].split("[")[0].strip() for d in data["project"]["dependencies"]}
        for required in ("fastapi", "uvicorn", "pydantic", "pyyaml", "sqlalchemy", "bcrypt", "opuslib"):
            assert required in names

    def test_script(self, data):
        assert data["project"]["scripts"]["tts-api"] == "tts_api.cli:main"
