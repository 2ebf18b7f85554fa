# SPDX-License-Identifier: Apache-2.0
"""
CLI tests for kvsim.

Tests CLI argument parsing, the headless run command and serve setup.
"""

import argparse
import json
import subprocess
import sys
from unittest.mock import patch

import pytest

from kvsim import cli


def _run_main(argv):
    with patch.object(sys, "argv", ["kvsim", *argv]):
        with patch("kvsim.logging_config.configure_logging"):
            cli.main()


class TestCLIHelp:
    """Tests for CLI help functionality."""

    def test_main_help(self):
        """Test main CLI help output."""
        result = subprocess.run(
            [sys.executable, "-m", "kvsim.cli", "--help"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        assert result.returncode == 0
        assert "serve" in result.stdout
        assert "run" in result.stdout

    def test_serve_help(self):
        """Test serve command help output."""
        result = subprocess.run(
            [sys.executable, "-m", "kvsim.cli", "serve", "--help"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        assert result.returncode == 0
        stdout_lower = result.stdout.lower()
        assert "--host" in stdout_lower
        assert "--api-key" in stdout_lower

    def test_run_help_lists_policies(self):
        result = subprocess.run(
            [sys.executable, "-m", "kvsim.cli", "run", "--help"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        assert result.returncode == 0
        for policy in ("sliding-window", "pinned-prefix", "recent-n"):
            assert policy in result.stdout

    def test_no_command_exits(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _run_main([])
        assert exc_info.value.code == 1


class TestRunCommand:
    """Tests for the headless run command."""

    def test_prints_each_tick(self, capsys):
        _run_main(["run", "--prompt", "a b c", "--ticks", "3"])

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 4
        assert "+a" in lines[0]
        assert "[NNN.....]" in lines[2]
        assert lines[-1].startswith("writes=3 evictions=0 dropped=0")

    def test_json_output(self, capsys):
        _run_main(
            ["run", "--prompt", "Hi", "--prompt", "Yes", "--ticks", "5", "--json"]
        )

        data = json.loads(capsys.readouterr().out)
        assert data["config"]["prompt_count"] == 2
        assert data["mode"] == "decode"
        assert data["stats"]["writes"] == data["write_clock"]
        assert data["memory"]["bytes_per_token"] == 512 * 1024

    def test_eviction_reported(self, capsys):
        _run_main(
            [
                "run",
                "--prompt", "a b c d e f",
                "--block-count", "2",
                "--block-capacity", "2",
                "--ticks", "6",
            ]
        )
        out = capsys.readouterr().out
        assert "evicted=[0]" in out

    def test_invalid_config_exits(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _run_main(["run", "--block-count", "0"])
        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_unknown_policy_rejected_by_parser(self):
        with pytest.raises(SystemExit) as exc_info:
            _run_main(["run", "--policy", "lru"])
        assert exc_info.value.code == 2


class TestConfigFromArgs:
    """Tests for _config_from_args."""

    def test_default_prompt(self):
        args = argparse.Namespace(
            prompt=None, block_count=4, block_capacity=8, policy="recent-n", recent_n=3
        )
        config = cli._config_from_args(args)
        assert config.prompt_count == 1
        assert config.recent_n_window == 3

    def test_batched(self):
        args = argparse.Namespace(
            prompt=["a", "b", "c"], block_count=4, block_capacity=8,
            policy="sliding-window", recent_n=8,
        )
        config = cli._config_from_args(args)
        assert config.is_batched
        assert config.prompt_texts == ("a", "b", "c")


class TestServeCommand:
    """Tests for serve command setup."""

    def test_has_cli_overrides(self):
        assert not cli._has_cli_overrides(argparse.Namespace(port=None, host=None, log_level=None))
        assert not cli._has_cli_overrides(argparse.Namespace(port=8000, host=None, log_level="info"))
        assert cli._has_cli_overrides(argparse.Namespace(port=9000, host=None, log_level=None))

    def test_serve_starts_uvicorn(self, tmp_path):
        from kvsim.settings import reset_settings

        argv = [
            "serve",
            "--base-path", str(tmp_path),
            "--port", "9123",
            "--api-key", "secret",
        ]
        try:
            with patch("uvicorn.run") as mock_run, patch(
                "kvsim.server.init_server"
            ) as mock_init:
                _run_main(argv)
        finally:
            reset_settings()

        mock_init.assert_called_once()
        assert mock_init.call_args.kwargs["api_key"] == "secret"
        assert mock_run.call_args.kwargs["port"] == 9123
        assert mock_run.call_args.kwargs["log_level"] == "info"
        # Non-default port is persisted
        saved = json.loads((tmp_path / "settings.json").read_text())
        assert saved["server"]["port"] == 9123

    def test_serve_invalid_settings_exits(self, tmp_path, capsys):
        from kvsim.settings import reset_settings

        (tmp_path / "settings.json").write_text(
            json.dumps({"simulation": {"eviction_policy": "lru"}})
        )
        try:
            with pytest.raises(SystemExit):
                _run_main(["serve", "--base-path", str(tmp_path)])
        finally:
            reset_settings()
        assert "Configuration error" in capsys.readouterr().out
