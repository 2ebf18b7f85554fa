# SPDX-License-Identifier: Apache-2.0
"""Tests for kvsim.settings module."""

import json
import os
import tempfile
from argparse import Namespace
from pathlib import Path
from unittest.mock import patch

import pytest

from kvsim.config import EvictionPolicy
from kvsim.settings import (
    AuthSettings,
    GlobalSettings,
    LoggingSettings,
    ServerSettings,
    SimulationSettings,
    get_settings,
    init_settings,
    reset_settings,
)


class TestServerSettings:
    """Tests for ServerSettings dataclass."""

    def test_defaults(self):
        """Test default values."""
        settings = ServerSettings()
        assert settings.host == "127.0.0.1"
        assert settings.port == 8000
        assert settings.log_level == "info"
        assert settings.max_sessions == 64

    def test_to_dict(self):
        """Test conversion to dictionary."""
        result = ServerSettings(port=9000).to_dict()
        assert result["port"] == 9000
        assert result["cors_origins"] == ["*"]

    def test_from_dict_with_defaults(self):
        """Test creation from partial dictionary uses defaults."""
        settings = ServerSettings.from_dict({"port": 9000})
        assert settings.port == 9000
        assert settings.host == "127.0.0.1"
        assert settings.max_sessions == 64


class TestSimulationSettings:
    """Tests for SimulationSettings dataclass."""

    def test_defaults(self):
        settings = SimulationSettings()
        assert settings.block_count == 4
        assert settings.block_capacity == 8
        assert settings.eviction_policy == "sliding-window"
        assert settings.recent_n_window == 8
        assert settings.max_ticks_per_request == 256

    def test_round_trip(self):
        settings = SimulationSettings(block_count=6, eviction_policy="recent-n")
        assert SimulationSettings.from_dict(settings.to_dict()) == settings


class TestAuthSettings:
    """Tests for AuthSettings dataclass."""

    def test_defaults(self):
        assert AuthSettings().api_key is None

    def test_from_dict(self):
        assert AuthSettings.from_dict({"api_key": "k"}).api_key == "k"


class TestLoggingSettings:
    """Tests for LoggingSettings dataclass."""

    def test_defaults(self):
        settings = LoggingSettings()
        assert settings.log_dir is None
        assert settings.retention_days == 7
        assert settings.format_style == "standard"
        assert settings.file_logging is False

    def test_get_log_dir_default(self):
        base = Path("/tmp/kvsim")
        assert LoggingSettings().get_log_dir(base) == base / "logs"

    def test_get_log_dir_custom(self):
        settings = LoggingSettings(log_dir="/var/log/kvsim")
        assert settings.get_log_dir(Path("/tmp")) == Path("/var/log/kvsim").resolve()


class TestGlobalSettings:
    """Tests for GlobalSettings class."""

    def test_defaults(self):
        """Test default values."""
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = GlobalSettings(base_path=Path(tmpdir))
            assert settings.server.port == 8000
            assert settings.simulation.block_count == 4
            assert settings.auth.api_key is None
            assert settings.logging.retention_days == 7

    def test_load_from_file(self):
        """Test loading settings from JSON file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            settings_file = Path(tmpdir) / "settings.json"
            settings_file.write_text(
                json.dumps(
                    {
                        "version": "1.0",
                        "server": {"port": 9000},
                        "simulation": {"block_count": 8, "eviction_policy": "pinned-prefix"},
                        "auth": {"api_key": "test-key"},
                        "logging": {"format_style": "json"},
                    }
                )
            )

            settings = GlobalSettings.load(base_path=tmpdir)
            assert settings.server.port == 9000
            assert settings.simulation.block_count == 8
            assert settings.simulation.eviction_policy == "pinned-prefix"
            assert settings.auth.api_key == "test-key"
            assert settings.logging.format_style == "json"

    def test_load_invalid_json_uses_defaults(self):
        """Test loading invalid JSON file logs warning and uses defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "settings.json").write_text("{ invalid json }")
            settings = GlobalSettings.load(base_path=tmpdir)
            assert settings.server.port == 8000

    def test_save(self):
        """Test saving settings to file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = GlobalSettings(base_path=Path(tmpdir))
            settings.server.port = 9001
            settings.simulation.recent_n_window = 12
            settings.save()

            data = json.loads((Path(tmpdir) / "settings.json").read_text())
            assert data["version"] == "1.0"
            assert data["server"]["port"] == 9001
            assert data["simulation"]["recent_n_window"] == 12

    def test_save_then_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = GlobalSettings(base_path=Path(tmpdir))
            settings.auth.api_key = "saved-key"
            settings.save()

            loaded = GlobalSettings.load(base_path=tmpdir)
            assert loaded.auth.api_key == "saved-key"

    def test_ensure_directories(self):
        """Test directory creation."""
        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir) / "kvsim"
            settings = GlobalSettings(base_path=base)
            settings.ensure_directories()
            assert base.exists()
            assert (base / "logs").exists()

    def test_validate_valid_settings(self):
        assert GlobalSettings().validate() == []

    @pytest.mark.parametrize(
        "section,field,value,fragment",
        [
            ("server", "port", 0, "port"),
            ("server", "log_level", "loud", "log_level"),
            ("server", "max_sessions", 0, "max_sessions"),
            ("simulation", "block_count", 0, "block_count"),
            ("simulation", "block_capacity", -1, "block_capacity"),
            ("simulation", "block_count", 1000, "block_count"),
            ("simulation", "block_capacity", 65, "block_capacity"),
            ("simulation", "eviction_policy", "lru", "eviction policy"),
            ("simulation", "recent_n_window", 33, "recent_n_window"),
            ("simulation", "max_ticks_per_request", 0, "max_ticks_per_request"),
            ("logging", "format_style", "xml", "log format"),
        ],
    )
    def test_validate_errors(self, section, field, value, fragment):
        settings = GlobalSettings()
        setattr(getattr(settings, section), field, value)
        errors = settings.validate()
        assert len(errors) == 1
        assert fragment in errors[0].lower()

    def test_env_override_server(self):
        """Test environment variable override for server settings."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(
                os.environ,
                {"KVSIM_HOST": "0.0.0.0", "KVSIM_PORT": "9100", "KVSIM_API_KEY": "env-key"},
            ):
                settings = GlobalSettings.load(base_path=tmpdir)
                assert settings.server.host == "0.0.0.0"
                assert settings.server.port == 9100
                assert settings.auth.api_key == "env-key"

    def test_env_override_simulation(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(
                os.environ,
                {
                    "KVSIM_BLOCK_COUNT": "6",
                    "KVSIM_EVICTION_POLICY": "recent-n",
                    "KVSIM_RECENT_N_WINDOW": "3",
                },
            ):
                settings = GlobalSettings.load(base_path=tmpdir)
                assert settings.simulation.block_count == 6
                assert settings.simulation.eviction_policy == "recent-n"
                assert settings.simulation.recent_n_window == 3

    def test_invalid_env_value_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(os.environ, {"KVSIM_PORT": "not-a-port"}):
                settings = GlobalSettings.load(base_path=tmpdir)
                assert settings.server.port == 8000

    def test_cli_overrides_env(self):
        """CLI arguments take priority over environment variables."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(os.environ, {"KVSIM_PORT": "9100"}):
                args = Namespace(host=None, port=9200, log_level="debug", api_key=None)
                settings = GlobalSettings.load(base_path=tmpdir, cli_args=args)
                assert settings.server.port == 9200
                assert settings.server.log_level == "debug"

    def test_env_overrides_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "settings.json").write_text(json.dumps({"server": {"port": 9000}}))
            with patch.dict(os.environ, {"KVSIM_PORT": "9100"}):
                settings = GlobalSettings.load(base_path=tmpdir)
                assert settings.server.port == 9100

    def test_to_simulation_config(self):
        settings = GlobalSettings()
        settings.simulation.block_count = 2
        settings.simulation.eviction_policy = "pinned-prefix"

        config = settings.to_simulation_config()
        assert config.block_count == 2
        assert config.eviction_policy == EvictionPolicy.PINNED_PREFIX
        assert config.prompt_count == 1

        batched = settings.to_simulation_config(("a", "b"))
        assert batched.prompt_count == 2
        assert batched.is_batched

    def test_to_dict(self):
        data = GlobalSettings(base_path=Path("/tmp/kvsim")).to_dict()
        assert data["base_path"] == "/tmp/kvsim"
        assert set(data) == {"version", "base_path", "server", "simulation", "auth", "logging"}


class TestSettingsSingleton:
    """Tests for the global settings helpers."""

    def setup_method(self):
        reset_settings()

    def teardown_method(self):
        reset_settings()

    def test_get_before_init_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_settings()

    def test_init_and_get(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = init_settings(base_path=tmpdir)
            assert get_settings() is settings
            assert settings.base_path == Path(tmpdir).resolve()
