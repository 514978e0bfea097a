"""
Configuration management for the FusedKernelLibrary MCP Server.

This module implements the AppConfig Pydantic model and configuration loading.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (--config path or FKL_MCP_CONFIG)
3. Environment variables (FKL_MCP_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)

The resulting AppConfig is passed explicitly to every component. The project
root is resolved to an absolute path once, at load time; nothing downstream
depends on the process working directory.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from mcp_fkl.sanitize import sanitize_path

ENV_PREFIX = "FKL_MCP_"
CONFIG_PATH_ENV = "FKL_MCP_CONFIG"

_VALID_LOG_LEVELS = {"debug", "info", "warn", "warning", "error", "critical"}


def _normalize_log_level(v: str) -> str:
    v_lower = v.lower()
    if v_lower not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {v}. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    if v_lower == "warn":
        return "warning"
    return v_lower


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """Server settings configuration.

    Attributes:
        name: Server name reported by initialize.
        max_request_bytes: Longest request line accepted on stdin.
    """

    name: str = Field(
        default="fused-kernel-library-mcp",
        description="Server name reported to clients",
    )
    max_request_bytes: int = Field(
        default=4 * 1024 * 1024,
        ge=1024,
        description="Maximum size of one request line in bytes",
    )


# =============================================================================
# Project Configuration
# =============================================================================


def _check_path_chars(label: str, path: Path) -> None:
    if sanitize_path(str(path)) != str(path):
        raise ValueError(
            f"{label} contains unsupported characters: {path} "
            "(allowed: letters, digits, '_', '-', '.', '/')"
        )


class ProjectConfig(BaseModel):
    """Layout of the FusedKernelLibrary checkout the server operates on.

    Relative paths are interpreted against ``root``.
    """

    root: Path = Field(
        default_factory=Path.cwd,
        description="Root directory of the library checkout",
    )
    build_dir: Path = Field(
        default=Path("build"),
        description="CMake build directory",
    )
    tests_dir: Path = Field(
        default=Path("tests"),
        description="Directory scanned for example sources",
    )
    readme: Path = Field(
        default=Path("README.md"),
        description="Primary documentation file",
    )
    cmake_file: Path = Field(
        default=Path("CMakeLists.txt"),
        description="Top-level CMake configuration file",
    )

    @field_validator("root")
    @classmethod
    def resolve_root(cls, v: Path) -> Path:
        """Resolve the project root and reject characters outside the allow-list."""
        root = v.expanduser().resolve()
        _check_path_chars("Project root", root)
        return root

    @field_validator("build_dir")
    @classmethod
    def validate_build_dir(cls, v: Path) -> Path:
        _check_path_chars("Build directory", v)
        return v

    def _under_root(self, path: Path) -> Path:
        return path if path.is_absolute() else self.root / path

    @property
    def build_path(self) -> Path:
        """Absolute build directory."""
        return self._under_root(self.build_dir)

    @property
    def tests_path(self) -> Path:
        """Absolute tests directory."""
        return self._under_root(self.tests_dir)

    @property
    def readme_path(self) -> Path:
        """Absolute README path."""
        return self._under_root(self.readme)

    @property
    def cmake_path(self) -> Path:
        """Absolute CMakeLists.txt path."""
        return self._under_root(self.cmake_file)


# =============================================================================
# Timeouts Configuration
# =============================================================================


class TimeoutsConfig(BaseModel):
    """Subprocess timeouts in seconds."""

    configure_seconds: float = Field(default=60.0, gt=0)
    build_seconds: float = Field(default=120.0, gt=0)
    test_seconds: float = Field(default=300.0, gt=0)
    probe_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for toolchain probes such as nvcc --version",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stderr: Whether to log to stderr.
        json_format: Whether to emit JSON log lines.
        debug_mode: Enable extra diagnostic logging.
    """

    level: str = Field(
        default="info",
        description="Log level",
    )
    log_to_stderr: bool = Field(
        default=True,
        description="Whether to log to stderr (stdout carries the protocol)",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON-formatted log lines",
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable extra diagnostic logging",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        server: Server settings.
        project: Library checkout layout.
        timeouts: Subprocess timeouts.
        logging: Logging configuration.
    """

    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="Server settings",
    )
    project: ProjectConfig = Field(
        default_factory=ProjectConfig,
        description="Library checkout layout",
    )
    timeouts: TimeoutsConfig = Field(
        default_factory=TimeoutsConfig,
        description="Subprocess timeouts",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to an appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _load_env_config(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    - Prefix: FKL_MCP_ (configurable)
    - Nested keys: Double underscore (__) separator
    - Example: FKL_MCP_TIMEOUTS__BUILD_SECONDS=600

    The FKL_MCP_CONFIG variable names the YAML file and is not a setting.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == CONFIG_PATH_ENV:
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = _parse_env_value(value)

    return result


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="mcp-fkl",
        description="FusedKernelLibrary MCP Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--project-root",
        type=str,
        help="Root directory of the FusedKernelLibrary checkout",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )

    parsed = parser.parse_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.project_root:
        result["project"] = {"root": parsed.project_root}

    if parsed.log_level:
        result["logging"] = {"level": parsed.log_level}

    if parsed.debug:
        result.setdefault("logging", {})["debug_mode"] = True
        result["logging"]["level"] = "debug"

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Path to YAML configuration file. If None, uses the CLI
            --config argument or the FKL_MCP_CONFIG environment variable.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=["--project-root", "/src/FusedKernelLibrary"])
        >>> config.project.build_path
        PosixPath('/src/FusedKernelLibrary/build')
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif os.environ.get(CONFIG_PATH_ENV):
            config_path = Path(os.environ[CONFIG_PATH_ENV])
    elif isinstance(config_path, str):
        config_path = Path(config_path)
    cli_config.pop("_config_path", None)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
