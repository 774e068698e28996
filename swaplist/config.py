"""
Config loading for swaplist.

Sources (in precedence order, highest first):
  1. Environment variables (SWAPLIST_*)
  2. ~/.swaplist/config.toml (or --config / SWAPLIST_CONFIG_PATH)
  3. Built-in defaults

Command-line flags override whatever this module resolves.

Usage:
    from swaplist.config import load_config
    config = load_config()
    print(config.rpc.endpoint)
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import toml

from swaplist.exceptions import ConfigInvalidError

DEFAULT_CONFIG_DIR = Path.home() / ".swaplist"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

DEFAULT_RPC_ENDPOINT = "https://rpc.gnosischain.com"
DEFAULT_EXPLORER_URL = "https://api.gnosisscan.io/api"

# env var → dotted config key; values are coerced to the field's type
ENV_OVERRIDES: dict[str, str] = {
    "SWAPLIST_RPC_ENDPOINT": "rpc.endpoint",
    "SWAPLIST_MAX_REQUESTS": "rpc.max_requests_per_second",
    "SWAPLIST_BLOCK_RANGE_LIMIT": "rpc.block_range_limit",
    "SWAPLIST_RPC_TIMEOUT": "rpc.timeout_seconds",
    "SWAPLIST_EXPLORER_URL": "explorer.base_url",
    "SWAPLIST_EXPLORER_API_KEY": "explorer.api_key",
    "SWAPLIST_OUTPUT_PATH": "output.path",
    "SWAPLIST_OUTPUT_FORMAT": "output.default_format",
    "SWAPLIST_LOG_LEVEL": "log.level",
}

VALID_FORMATS = {"json", "table"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class RPCConfig:
    """Node connection and pacing."""

    endpoint: str = DEFAULT_RPC_ENDPOINT
    max_requests_per_second: int = 15   # 0 disables throttling
    block_range_limit: int = 5          # blocks per eth_getLogs call
    timeout_seconds: float = 30.0


@dataclass
class ExplorerConfig:
    """Block-explorer API used by `swaplist limit`."""

    base_url: str = DEFAULT_EXPLORER_URL
    api_key: str = ""


@dataclass
class OutputConfig:
    """Where results go and how summaries print."""

    path: str = "transactions.txt"
    default_format: str = "json"        # json | table


@dataclass
class LogConfig:
    level: str = "INFO"


@dataclass
class SwaplistConfig:
    """Full configuration object. Passed via Click context to all commands."""

    rpc: RPCConfig = field(default_factory=RPCConfig)
    explorer: ExplorerConfig = field(default_factory=ExplorerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def set_value(self, dotted_key: str, value: Any) -> Any:
        """
        Set `section.key` to `value`, coerced to the field's current type.

        Returns the stored value.

        Raises:
            ConfigInvalidError: Unknown key or a value of the wrong type.
        """
        section_name, _, key = dotted_key.partition(".")
        section = getattr(self, section_name, None)
        if not key or section is None or key not in {f.name for f in fields(section)}:
            raise ConfigInvalidError(f"Unknown config key: {dotted_key!r}")
        try:
            typed = _coerce(getattr(section, key), value)
        except (ValueError, TypeError) as e:
            raise ConfigInvalidError(f"Invalid value for {dotted_key}: {value!r} ({e})") from e
        setattr(section, key, typed)
        return typed


def load_config(path: str | None = None) -> SwaplistConfig:
    """
    Load configuration from the TOML file, then apply SWAPLIST_* overrides.

    A missing file is not an error: defaults apply.

    Raises:
        ConfigInvalidError: The file is not valid TOML, or a value (from the
            file or the environment) has the wrong type or fails validation.
    """
    config_path = _resolve_config_path(path)
    config = SwaplistConfig()

    if config_path.exists():
        try:
            raw = toml.load(str(config_path))
        except toml.TomlDecodeError as e:
            raise ConfigInvalidError(f"Invalid TOML in {config_path}: {e}") from e
        for section_name, values in raw.items():
            if not isinstance(values, dict):
                continue
            for key, value in values.items():
                config.set_value(f"{section_name}.{key}", value)

    for env_var, dotted_key in ENV_OVERRIDES.items():
        if env_var in os.environ:
            try:
                config.set_value(dotted_key, os.environ[env_var])
            except ConfigInvalidError as e:
                raise ConfigInvalidError(f"{env_var}: {e.message}") from e

    config.log.level = config.log.level.upper()
    validate_config(config)
    return config


def save_config(config: SwaplistConfig, path: str | None = None) -> Path:
    """Write `config` as TOML, creating parent directories. Returns the path."""
    config_path = _resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        toml.dump(asdict(config), f)
    return config_path


def get_default_config_path() -> Path:
    return DEFAULT_CONFIG_PATH


def validate_config(config: SwaplistConfig) -> None:
    """Raise ConfigInvalidError if any value is out of range."""
    checks = [
        (config.rpc.block_range_limit >= 1,
         f"rpc.block_range_limit must be at least 1, got {config.rpc.block_range_limit}"),
        (config.rpc.max_requests_per_second >= 0,
         "rpc.max_requests_per_second must be non-negative, "
         f"got {config.rpc.max_requests_per_second}"),
        (config.rpc.timeout_seconds > 0,
         f"rpc.timeout_seconds must be positive, got {config.rpc.timeout_seconds}"),
        (config.output.default_format in VALID_FORMATS,
         f"output.default_format must be one of {sorted(VALID_FORMATS)}, "
         f"got {config.output.default_format!r}"),
        (config.log.level.upper() in VALID_LOG_LEVELS,
         f"log.level must be one of {sorted(VALID_LOG_LEVELS)}, got {config.log.level!r}"),
    ]
    for ok, message in checks:
        if not ok:
            raise ConfigInvalidError(message)


# ──────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────


def _resolve_config_path(path: str | None) -> Path:
    chosen = path or os.environ.get("SWAPLIST_CONFIG_PATH")
    return Path(chosen).expanduser() if chosen else DEFAULT_CONFIG_PATH


def _coerce(current: Any, value: Any) -> Any:
    """Convert `value` (TOML scalar or env string) to the type of `current`."""
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.lower() in ("1", "true", "yes")
        return bool(value)
    if isinstance(current, int):
        if isinstance(value, float) and not value.is_integer():
            raise ValueError("expected an integer")
        return int(value)
    if isinstance(current, float):
        return float(value)
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value
