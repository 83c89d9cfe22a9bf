"""Config loading for softban.

Reads `.softban/config.yaml` (or `~/.softban/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. SOFTBAN_CONFIG environment variable (if set)
  3. `.softban/config.yaml` (working directory — for development)
  4. `~/.softban/config.yaml` (home directory — for production deployments)

Environment variable overrides (applied after the file, so env always wins):
  SOFTBAN_BLOCK_DURATION — block.duration_seconds (integer seconds, 1..30 days)
  SOFTBAN_STORE_BACKEND  — store.backend ("sqlite" | "memory")
  SOFTBAN_STORE_PATH     — store.path
  SOFTBAN_PORT           — server.port
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

import yaml

from softban.constants import (
    DEFAULT_BLOCK_DURATION_SECONDS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_STORE_BACKEND,
    DEFAULT_STORE_PATH,
    DEFAULT_STORE_TIMEOUT_MS,
    MAX_BLOCK_DURATION_SECONDS,
    VALID_STORE_BACKENDS,
)
from softban.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (SOFTBAN_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".softban/config.yaml",
    os.path.expanduser("~/.softban/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class BlockConfig:
    """Cooldown applied to an actor after a qualifying rejection."""

    duration_seconds: int = DEFAULT_BLOCK_DURATION_SECONDS

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_seconds)


@dataclass
class StoreConfig:
    """Durable store configuration."""

    backend: str = DEFAULT_STORE_BACKEND  # "sqlite" | "memory"
    path: str = DEFAULT_STORE_PATH
    timeout_ms: int = DEFAULT_STORE_TIMEOUT_MS


@dataclass
class ServerConfig:
    """HTTP binding for the inspection API."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class Config:
    """Root configuration object populated from .softban/config.yaml.

    All fields have safe defaults — softban can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    block: BlockConfig = field(default_factory=BlockConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an out-of-range duration, a non-positive timeout or an
                           unknown store backend.
        """
        # ── Block ─────────────────────────────────────────────────────────────
        block_raw = raw.get("block") or {}
        block = BlockConfig(
            duration_seconds=_positive_int(
                block_raw.get("duration_seconds", DEFAULT_BLOCK_DURATION_SECONDS),
                "block.duration_seconds",
                maximum=MAX_BLOCK_DURATION_SECONDS,
            ),
        )

        # ── Store ─────────────────────────────────────────────────────────────
        store_raw = raw.get("store") or {}
        store = StoreConfig(
            backend=_store_backend(store_raw.get("backend", DEFAULT_STORE_BACKEND)),
            path=store_raw.get("path", DEFAULT_STORE_PATH),
            timeout_ms=_positive_int(
                store_raw.get("timeout_ms", DEFAULT_STORE_TIMEOUT_MS),
                "store.timeout_ms",
            ),
        )

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", DEFAULT_HOST),
            port=server_raw.get("port", DEFAULT_PORT),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            block=block,
            store=store,
            server=server,
            path=path,
        )


# ─── Validation helpers ───────────────────────────────────────────────────────


def _config_error(msg: str) -> None:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


def _positive_int(value: Any, name: str, maximum: Optional[int] = None) -> int:
    # bool is an int subclass; "duration_seconds: yes" is not a duration
    if isinstance(value, bool) or not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except ValueError:
            _config_error(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        _config_error(f"{name} must be greater than 0, got {value}")
    if maximum is not None and value > maximum:
        _config_error(f"{name} must be at most {maximum}, got {value}")
    return value


def _store_backend(value: Any) -> str:
    if value not in VALID_STORE_BACKENDS:
        _config_error(
            f"Invalid store.backend: '{value}'. "
            f"Supported values: {sorted(VALID_STORE_BACKENDS)}."
        )
    return value


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate softban configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid values, or invalid env overrides.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("SOFTBAN_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "softban refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: the inspection API is configured to bind on 0.0.0.0. "
            "Block records (actor ids and reasons) become readable from the network. "
            "Recommended: server.host: '127.0.0.1'."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        block_duration_seconds=config.block.duration_seconds,
        store_backend=config.store.backend,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Called both for file-loaded and default configs so env vars always take
    precedence over any file value.

    Raises:
        SystemExit(1): If an override holds an invalid value.
    """
    env_duration = os.environ.get("SOFTBAN_BLOCK_DURATION")
    if env_duration is not None:
        config.block.duration_seconds = _positive_int(
            env_duration, "SOFTBAN_BLOCK_DURATION", maximum=MAX_BLOCK_DURATION_SECONDS
        )

    env_backend = os.environ.get("SOFTBAN_STORE_BACKEND")
    if env_backend is not None:
        config.store.backend = _store_backend(env_backend.strip().lower())

    env_path = os.environ.get("SOFTBAN_STORE_PATH")
    if env_path:
        config.store.path = env_path

    env_port = os.environ.get("SOFTBAN_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(
                f"SOFTBAN_PORT environment variable is not a valid integer: '{env_port}'"
            )
