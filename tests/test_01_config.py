"""Tests for settings loading and ServiceConfig validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from tts_api.core.config import (
    ConfigValidationError,
    Defaults,
    OpenJTalkConfig,
    ServiceConfig,
    Settings,
    load_settings,
)


class TestDefaults:
    """An empty settings mapping yields the documented defaults."""

    def test_empty_settings(self, monkeypatch):
        monkeypatch.delenv("TTS_API_DATABASE_URL", raising=False)
        monkeypatch.delenv("TTS_API_OPENJTALK_COMMAND", raising=False)
        config = ServiceConfig.from_settings(Settings(raw={}))

        assert config.database.url == Defaults.DATABASE_URL
        assert config.auth.token_length == 24
        assert config.auth.token_hashing == "bcrypt"
        assert config.quota.default_limit == 5000
        assert config.gate.max_text_chars == 200
        assert config.engine.name == "openjtalk"
        assert config.engine.command == "open_jtalk"
        assert config.encoder.sample_rate == 48000
        assert config.encoder.frame_ms == 20
        assert config.encoder.max_packet_bytes == 256
        assert config.encoder.pad_final_frame is True

    def test_openjtalk_defaults(self):
        cfg = OpenJTalkConfig.from_dict({})
        assert cfg.sampling is None
        assert cfg.frame_period is None
        assert cfg.all_pass is None
        assert cfg.postfilter_coef == 0.0
        assert cfg.speed_rate == 1.0
        assert cfg.additional_half_tone == 0.0
        assert cfg.unvoiced_threshold == 0.5
        assert cfg.spectrum_weight == 1.0
        assert cfg.spectrum_f0 == 1.0


class TestOverrides:
    """YAML values and environment variables are applied."""

    def test_yaml_values(self):
        raw = {
            "quota": {"default_limit": 100},
            "gate": {"max_text_chars": 50},
            "engine": {"openjtalk": {"dictionary": "/dic", "hts_path": "/v.htsvoice", "sampling": 48000}},
            "logging": {"level": "verbose"},
        }
        config = ServiceConfig.from_settings(Settings(raw=raw))

        assert config.quota.default_limit == 100
        assert config.gate.max_text_chars == 50
        assert config.engine.openjtalk.dictionary == Path("/dic")
        assert config.engine.openjtalk.sampling == 48000
        assert config.logging.level == 3

    def test_env_database_url(self, monkeypatch):
        monkeypatch.setenv("TTS_API_DATABASE_URL", "sqlite:///env.db")
        config = ServiceConfig.from_settings(Settings(raw={"database": {"url": "sqlite:///file.db"}}))
        assert config.database.url == "sqlite:///env.db"

    def test_env_command(self, monkeypatch):
        monkeypatch.setenv("TTS_API_OPENJTALK_COMMAND", "/opt/bin/open_jtalk")
        config = ServiceConfig.from_settings(Settings(raw={}))
        assert config.engine.command == "/opt/bin/open_jtalk"


class TestValidation:
    """Out-of-range values raise ConfigValidationError."""

    @pytest.mark.parametrize("raw", [
        {"auth": {"token_hashing": "md5"}},
        {"auth": {"bcrypt_rounds": 2}},
        {"auth": {"token_length": 4}},
        {"auth": {"token_length": 100}},
        {"encoder": {"pad_final_frame": "false"}},
        {"concurrency": {"enabled": "false"}},
        {"database": {"echo": 1}},
        {"quota": {"default_limit": -1}},
        {"gate": {"max_text_chars": 0}},
        {"engine": {"timeout_s": 0}},
        {"encoder": {"sample_rate": 44100}},
        {"encoder": {"frame_ms": 25}},
        {"concurrency": {"max_concurrent": 0}},
        {"logging": {"level": 7}},
    ])
    def test_rejects(self, raw):
        with pytest.raises(ConfigValidationError):
            ServiceConfig.from_settings(Settings(raw=raw))

    def test_bool_flags_accept_yaml_booleans(self):
        config = ServiceConfig.from_settings(Settings(raw={
            "encoder": {"pad_final_frame": False},
            "concurrency": {"enabled": False},
        }))
        assert config.encoder.pad_final_frame is False
        assert config.concurrency.enabled is False

    def test_long_tokens_allowed_without_bcrypt(self):
        config = ServiceConfig.from_settings(Settings(raw={"auth": {"token_hashing": "plain", "token_length": 100}}))
        assert config.auth.token_length == 100

    def test_is_value_error(self):
        assert issubclass(ConfigValidationError, ValueError)


class TestLoadSettings:
    """load_settings reads YAML files."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("quota: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            load_settings(str(path))

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            load_settings(str(path))

    def test_round_trip(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("quota:\n  default_limit: 42\n", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.get_service_config().quota.default_limit == 42

    def test_shipped_settings_valid(self):
        path = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"
        config = load_settings(str(path)).get_service_config()
        assert config.engine.name == "openjtalk"
