# SPDX-License-Identifier: Apache-2.0
"""
Global settings management for kvsim.

This module provides a centralized settings system with:
- Hierarchical configuration (CLI > env > file > defaults)
- Automatic directory creation
- Settings persistence to JSON file

Usage:
    from kvsim.settings import init_settings, get_settings

    # At startup
    init_settings(cli_args=args)

    # Anywhere else
    settings = get_settings()
    print(settings.server.port)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .config import (
    DEFAULT_BLOCK_CAPACITY,
    DEFAULT_BLOCK_COUNT,
    DEFAULT_EVICTION_POLICY,
    DEFAULT_RECENT_N_WINDOW,
    MAX_BLOCK_CAPACITY,
    MAX_BLOCK_COUNT,
    MAX_RECENT_N_WINDOW,
    MIN_RECENT_N_WINDOW,
    EvictionPolicy,
    SimulationConfig,
    parse_policy,
)

logger = logging.getLogger(__name__)

# Settings file version for future migrations
SETTINGS_VERSION = "1.0"

# Default base path
DEFAULT_BASE_PATH = Path.home() / ".kvsim"

VALID_LOG_LEVELS = {"trace", "debug", "info", "warning", "error", "critical"}
VALID_LOG_FORMATS = {"standard", "json"}


@dataclass
class ServerSettings:
    """Server configuration settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    max_sessions: int = 64

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerSettings:
        """Create from dictionary."""
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 8000),
            log_level=data.get("log_level", "info"),
            cors_origins=data.get("cors_origins", ["*"]),
            max_sessions=data.get("max_sessions", 64),
        )


@dataclass
class SimulationSettings:
    """Defaults applied to simulations created without an explicit value."""

    block_count: int = DEFAULT_BLOCK_COUNT
    block_capacity: int = DEFAULT_BLOCK_CAPACITY
    eviction_policy: str = DEFAULT_EVICTION_POLICY.value
    recent_n_window: int = DEFAULT_RECENT_N_WINDOW
    max_ticks_per_request: int = 256

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimulationSettings:
        """Create from dictionary."""
        return cls(
            block_count=data.get("block_count", DEFAULT_BLOCK_COUNT),
            block_capacity=data.get("block_capacity", DEFAULT_BLOCK_CAPACITY),
            eviction_policy=data.get("eviction_policy", DEFAULT_EVICTION_POLICY.value),
            recent_n_window=data.get("recent_n_window", DEFAULT_RECENT_N_WINDOW),
            max_ticks_per_request=data.get("max_ticks_per_request", 256),
        )


@dataclass
class AuthSettings:
    """Authentication configuration settings."""

    api_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"api_key": self.api_key}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthSettings:
        """Create from dictionary."""
        return cls(api_key=data.get("api_key"))


@dataclass
class LoggingSettings:
    """Logging configuration settings."""

    log_dir: str | None = None  # None means {base_path}/logs
    retention_days: int = 7
    format_style: str = "standard"
    file_logging: bool = False

    def get_log_dir(self, base_path: Path) -> Path:
        """
        Get the resolved log directory path.

        Args:
            base_path: Base kvsim directory.

        Returns:
            Resolved log directory path.
        """
        if self.log_dir:
            return Path(self.log_dir).expanduser().resolve()
        return base_path / "logs"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create from dictionary."""
        return cls(
            log_dir=data.get("log_dir"),
            retention_days=data.get("retention_days", 7),
            format_style=data.get("format_style", "standard"),
            file_logging=data.get("file_logging", False),
        )


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


@dataclass
class GlobalSettings:
    """
    Global settings for kvsim.

    Combines all settings sections and provides methods for:
    - Loading from file with CLI/env overrides
    - Saving to file
    - Directory management
    - Validation
    """

    base_path: Path = field(default_factory=lambda: DEFAULT_BASE_PATH)
    server: ServerSettings = field(default_factory=ServerSettings)
    simulation: SimulationSettings = field(default_factory=SimulationSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def load(
        cls,
        base_path: str | Path | None = None,
        cli_args: Any | None = None,
    ) -> GlobalSettings:
        """
        Load settings with priority hierarchy: CLI > env > file > defaults.

        Args:
            base_path: Base directory for kvsim (default: ~/.kvsim).
            cli_args: Argparse namespace with CLI arguments.

        Returns:
            Loaded GlobalSettings instance.
        """
        if base_path:
            resolved_base = Path(base_path).expanduser().resolve()
        elif env_base := os.getenv("KVSIM_BASE_PATH"):
            resolved_base = Path(env_base).expanduser().resolve()
        else:
            resolved_base = DEFAULT_BASE_PATH

        settings = cls(base_path=resolved_base)

        settings_file = resolved_base / "settings.json"
        if settings_file.exists():
            settings._load_from_file(settings_file)
            logger.debug(f"Loaded settings from {settings_file}")

        settings._apply_env_overrides()

        if cli_args:
            settings._apply_cli_overrides(cli_args)

        return settings

    def _load_from_file(self, path: Path) -> None:
        """
        Load settings from a JSON file.

        Args:
            path: Path to the settings JSON file.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)

            version = data.get("version", "1.0")
            if version != SETTINGS_VERSION:
                logger.info(
                    f"Settings file version {version} differs from "
                    f"current {SETTINGS_VERSION}, migrating..."
                )

            if "server" in data:
                self.server = ServerSettings.from_dict(data["server"])
            if "simulation" in data:
                self.simulation = SimulationSettings.from_dict(data["simulation"])
            if "auth" in data:
                self.auth = AuthSettings.from_dict(data["auth"])
            if "logging" in data:
                self.logging = LoggingSettings.from_dict(data["logging"])

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse settings file {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to read settings file {path}: {e}")

    def _apply_env_overrides(self) -> None:
        """Apply KVSIM_* environment variable overrides."""
        # Server settings
        if host := os.getenv("KVSIM_HOST"):
            self.server.host = host
        if port := os.getenv("KVSIM_PORT"):
            try:
                self.server.port = int(port)
            except ValueError:
                logger.warning(f"Invalid KVSIM_PORT value: {port}")
        if log_level := os.getenv("KVSIM_LOG_LEVEL"):
            self.server.log_level = log_level
        if max_sessions := os.getenv("KVSIM_MAX_SESSIONS"):
            try:
                self.server.max_sessions = int(max_sessions)
            except ValueError:
                logger.warning(f"Invalid KVSIM_MAX_SESSIONS value: {max_sessions}")

        # Simulation defaults
        if block_count := os.getenv("KVSIM_BLOCK_COUNT"):
            try:
                self.simulation.block_count = int(block_count)
            except ValueError:
                logger.warning(f"Invalid KVSIM_BLOCK_COUNT value: {block_count}")
        if block_capacity := os.getenv("KVSIM_BLOCK_CAPACITY"):
            try:
                self.simulation.block_capacity = int(block_capacity)
            except ValueError:
                logger.warning(f"Invalid KVSIM_BLOCK_CAPACITY value: {block_capacity}")
        if policy := os.getenv("KVSIM_EVICTION_POLICY"):
            self.simulation.eviction_policy = policy
        if recent_n := os.getenv("KVSIM_RECENT_N_WINDOW"):
            try:
                self.simulation.recent_n_window = int(recent_n)
            except ValueError:
                logger.warning(f"Invalid KVSIM_RECENT_N_WINDOW value: {recent_n}")

        # Auth settings
        if api_key := os.getenv("KVSIM_API_KEY"):
            self.auth.api_key = api_key

        # Logging settings
        if log_dir := os.getenv("KVSIM_LOG_DIR"):
            self.logging.log_dir = log_dir
        if retention_days := os.getenv("KVSIM_LOG_RETENTION_DAYS"):
            try:
                self.logging.retention_days = int(retention_days)
            except ValueError:
                logger.warning(f"Invalid KVSIM_LOG_RETENTION_DAYS: {retention_days}")
        if log_format := os.getenv("KVSIM_LOG_FORMAT"):
            self.logging.format_style = log_format
        if file_logging := os.getenv("KVSIM_FILE_LOGGING"):
            self.logging.file_logging = _parse_bool(file_logging)

    def _apply_cli_overrides(self, args: Any) -> None:
        """
        Apply CLI argument overrides.

        Args:
            args: Argparse namespace with CLI arguments.
        """
        # Server settings
        if getattr(args, "host", None) is not None:
            self.server.host = args.host
        if getattr(args, "port", None) is not None:
            self.server.port = args.port
        if getattr(args, "log_level", None) is not None:
            self.server.log_level = args.log_level

        # Simulation defaults
        if getattr(args, "block_count", None) is not None:
            self.simulation.block_count = args.block_count
        if getattr(args, "block_capacity", None) is not None:
            self.simulation.block_capacity = args.block_capacity
        if getattr(args, "policy", None) is not None:
            self.simulation.eviction_policy = args.policy
        if getattr(args, "recent_n", None) is not None:
            self.simulation.recent_n_window = args.recent_n

        # Auth settings
        if getattr(args, "api_key", None) is not None:
            self.auth.api_key = args.api_key

        # Logging settings
        if getattr(args, "log_format", None) is not None:
            self.logging.format_style = args.log_format

    def save(self) -> None:
        """Save current settings to the settings file."""
        self.ensure_directories()

        settings_file = self.base_path / "settings.json"
        data = {
            "version": SETTINGS_VERSION,
            "server": self.server.to_dict(),
            "simulation": self.simulation.to_dict(),
            "auth": self.auth.to_dict(),
            "logging": self.logging.to_dict(),
        }

        try:
            with open(settings_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            logger.info(f"Saved settings to {settings_file}")
        except OSError as e:
            logger.error(f"Failed to save settings to {settings_file}: {e}")
            raise

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        directories = [
            self.base_path,
            self.logging.get_log_dir(self.base_path),
        ]

        for directory in directories:
            if not directory.exists():
                try:
                    directory.mkdir(parents=True, exist_ok=True)
                    logger.debug(f"Created directory: {directory}")
                except OSError as e:
                    logger.error(f"Failed to create directory {directory}: {e}")
                    raise

    def validate(self) -> list[str]:
        """
        Validate all settings.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        # Server validation
        if not 1 <= self.server.port <= 65535:
            errors.append(f"Invalid port: {self.server.port} (must be 1-65535)")

        if self.server.log_level.lower() not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log_level: {self.server.log_level} "
                f"(must be one of {sorted(VALID_LOG_LEVELS)})"
            )
        if self.server.max_sessions <= 0:
            errors.append(
                f"Invalid max_sessions: {self.server.max_sessions} (must be > 0)"
            )

        # Simulation validation
        if not 1 <= self.simulation.block_count <= MAX_BLOCK_COUNT:
            errors.append(
                f"Invalid block_count: {self.simulation.block_count} "
                f"(must be 1-{MAX_BLOCK_COUNT})"
            )
        if not 1 <= self.simulation.block_capacity <= MAX_BLOCK_CAPACITY:
            errors.append(
                f"Invalid block_capacity: {self.simulation.block_capacity} "
                f"(must be 1-{MAX_BLOCK_CAPACITY})"
            )
        try:
            parse_policy(self.simulation.eviction_policy)
        except ValueError as e:
            errors.append(str(e))
        if not (
            MIN_RECENT_N_WINDOW
            <= self.simulation.recent_n_window
            <= MAX_RECENT_N_WINDOW
        ):
            errors.append(
                f"Invalid recent_n_window: {self.simulation.recent_n_window} "
                f"(must be {MIN_RECENT_N_WINDOW}-{MAX_RECENT_N_WINDOW})"
            )
        if self.simulation.max_ticks_per_request <= 0:
            errors.append(
                f"Invalid max_ticks_per_request: "
                f"{self.simulation.max_ticks_per_request} (must be > 0)"
            )

        # Logging validation
        if self.logging.format_style not in VALID_LOG_FORMATS:
            errors.append(
                f"Invalid log format: {self.logging.format_style} "
                f"(must be one of {sorted(VALID_LOG_FORMATS)})"
            )
        if self.logging.retention_days < 0:
            errors.append(
                f"Invalid retention_days: {self.logging.retention_days} "
                "(must be >= 0)"
            )

        return errors

    def default_policy(self) -> EvictionPolicy:
        return parse_policy(self.simulation.eviction_policy)

    def to_simulation_config(
        self, prompt_texts: tuple[str, ...] | None = None
    ) -> SimulationConfig:
        """
        Build a SimulationConfig from the simulation defaults.

        Args:
            prompt_texts: Prompts to simulate; one prompt means single-sequence
                mode. None keeps the config's default single prompt.

        Returns:
            SimulationConfig instance with values from settings.
        """
        kwargs: dict[str, Any] = {
            "block_count": self.simulation.block_count,
            "block_capacity": self.simulation.block_capacity,
            "eviction_policy": self.default_policy(),
            "recent_n_window": self.simulation.recent_n_window,
        }
        if prompt_texts:
            kwargs["prompt_count"] = len(prompt_texts)
            kwargs["prompt_texts"] = tuple(prompt_texts)
        return SimulationConfig(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert all settings to a dictionary."""
        return {
            "version": SETTINGS_VERSION,
            "base_path": str(self.base_path),
            "server": self.server.to_dict(),
            "simulation": self.simulation.to_dict(),
            "auth": self.auth.to_dict(),
            "logging": self.logging.to_dict(),
        }


# Global singleton instance
_global_settings: GlobalSettings | None = None


def get_settings() -> GlobalSettings:
    """
    Get the global settings instance.

    Raises:
        RuntimeError: If settings have not been initialized.
    """
    global _global_settings
    if _global_settings is None:
        raise RuntimeError("Settings not initialized. Call init_settings() first.")
    return _global_settings


def init_settings(
    base_path: str | Path | None = None,
    cli_args: Any | None = None,
) -> GlobalSettings:
    """
    Initialize global settings (call once at startup).

    Args:
        base_path: Base directory for kvsim (default: ~/.kvsim).
        cli_args: Argparse namespace with CLI arguments.

    Returns:
        The initialized GlobalSettings instance.
    """
    global _global_settings
    _global_settings = GlobalSettings.load(base_path=base_path, cli_args=cli_args)
    logger.info(f"Initialized settings with base_path: {_global_settings.base_path}")
    return _global_settings


def reset_settings() -> None:
    """
    Reset global settings (primarily for testing).

    This clears the global singleton, allowing init_settings to be called again.
    """
    global _global_settings
    _global_settings = None
