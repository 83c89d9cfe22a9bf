"""Unit tests for config file loading, validation and env overrides.

Covers:
  - Missing config file → Config.defaults(), no exception
  - Missing / unsupported version, invalid YAML, non-mapping → SystemExit(1)
  - block.duration_seconds / store.timeout_ms must be positive integers;
    the duration is capped at MAX_BLOCK_DURATION_SECONDS
  - store.backend must be sqlite | memory
  - SOFTBAN_CONFIG, SOFTBAN_BLOCK_DURATION, SOFTBAN_STORE_BACKEND,
    SOFTBAN_STORE_PATH, SOFTBAN_PORT overrides
"""

from __future__ import annotations

import textwrap
from datetime import timedelta
from typing import Any

import pytest

from softban.config import SUPPORTED_VERSIONS, Config, load_config
from softban.constants import (
    DEFAULT_BLOCK_DURATION_SECONDS,
    DEFAULT_PORT,
    DEFAULT_STORE_PATH,
    DEFAULT_STORE_TIMEOUT_MS,
    MAX_BLOCK_DURATION_SECONDS,
)


def _write(tmp_path: Any, body: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


@pytest.fixture(autouse=True)
def no_default_config_files(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Run from an empty directory so .softban/config.yaml in the repo is never read."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("softban.config.DEFAULT_CONFIG_PATHS", [])


class TestDefaults:

    def test_missing_file_returns_defaults(self, tmp_path: Any) -> None:
        config = load_config(str(tmp_path / "nope.yaml"))
        assert config == Config.defaults()
        assert config.path is None

    def test_default_values(self) -> None:
        config = Config.defaults()
        assert config.block.duration_seconds == DEFAULT_BLOCK_DURATION_SECONDS
        assert config.block.duration == timedelta(minutes=10)
        assert config.store.backend == "sqlite"
        assert config.store.path == DEFAULT_STORE_PATH
        assert config.store.timeout_ms == DEFAULT_STORE_TIMEOUT_MS
        assert config.server.host == "127.0.0.1"
        assert config.server.port == DEFAULT_PORT

    def test_supported_versions(self) -> None:
        assert SUPPORTED_VERSIONS == frozenset({1})


class TestFileLoading:

    def test_version_only(self, tmp_path: Any) -> None:
        path = _write(tmp_path, "version: 1\n")
        config = load_config(path)
        assert config.path == path
        assert config.block.duration_seconds == DEFAULT_BLOCK_DURATION_SECONDS

    def test_full_file(self, tmp_path: Any) -> None:
        path = _write(tmp_path, """
            version: 1
            block:
              duration_seconds: 900
            store:
              backend: memory
              path: /tmp/blocks.db
              timeout_ms: 250
            server:
              host: 0.0.0.0
              port: 9000
        """)
        config = load_config(path)
        assert config.block.duration == timedelta(minutes=15)
        assert config.store.backend == "memory"
        assert config.store.path == "/tmp/blocks.db"
        assert config.store.timeout_ms == 250
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 9000

    def test_empty_sections_use_defaults(self, tmp_path: Any) -> None:
        path = _write(tmp_path, "version: 1\nblock:\nstore:\n")
        config = load_config(path)
        assert config.block.duration_seconds == DEFAULT_BLOCK_DURATION_SECONDS
        assert config.store.backend == "sqlite"

    def test_softban_config_env_var(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "version: 1\nblock:\n  duration_seconds: 30\n")
        monkeypatch.setenv("SOFTBAN_CONFIG", path)
        assert load_config().block.duration_seconds == 30


class TestValidation:

    @pytest.mark.parametrize(
        "body",
        [
            "",                                    # empty file → missing version
            "block:\n  duration_seconds: 5\n",     # missing version
            "version: 2\n",                        # unsupported version
            "- just\n- a list\n",                  # not a mapping
            "version: 1\nblock: [unclosed\n",      # invalid YAML
            "version: 1\nblock:\n  duration_seconds: 0\n",
            "version: 1\nblock:\n  duration_seconds: -5\n",
            "version: 1\nblock:\n  duration_seconds: soon\n",
            "version: 1\nblock:\n  duration_seconds: true\n",
            "version: 1\nblock:\n  duration_seconds: 1000000000000\n",
            "version: 1\nstore:\n  timeout_ms: 0\n",
            "version: 1\nstore:\n  backend: redis\n",
        ],
    )
    def test_invalid_config_exits(self, tmp_path: Any, body: str) -> None:
        path = _write(tmp_path, body)
        with pytest.raises(SystemExit) as exc_info:
            load_config(path)
        assert exc_info.value.code == 1

    def test_maximum_duration_accepted(self, tmp_path: Any) -> None:
        path = _write(tmp_path, f"version: 1\nblock:\n  duration_seconds: {MAX_BLOCK_DURATION_SECONDS}\n")
        assert load_config(path).block.duration == timedelta(days=30)

    def test_oversized_duration_message(self, tmp_path: Any, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "version: 1\nblock:\n  duration_seconds: 1000000000000\n")
        with pytest.raises(SystemExit):
            load_config(path)
        assert "block.duration_seconds must be at most" in capsys.readouterr().err

    def test_error_message_on_stderr(self, tmp_path: Any, capsys: pytest.CaptureFixture) -> None:
        path = _write(tmp_path, "version: 7\n")
        with pytest.raises(SystemExit):
            load_config(path)
        assert "Unsupported config version: 7" in capsys.readouterr().err


class TestEnvOverrides:

    def test_overrides_apply_without_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SOFTBAN_BLOCK_DURATION", "120")
        monkeypatch.setenv("SOFTBAN_STORE_BACKEND", "MEMORY")
        monkeypatch.setenv("SOFTBAN_STORE_PATH", "/srv/softban/blocks.db")
        monkeypatch.setenv("SOFTBAN_PORT", "8080")

        config = load_config()
        assert config.block.duration_seconds == 120
        assert config.store.backend == "memory"
        assert config.store.path == "/srv/softban/blocks.db"
        assert config.server.port == 8080

    def test_env_beats_file(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "version: 1\nblock:\n  duration_seconds: 900\n")
        monkeypatch.setenv("SOFTBAN_BLOCK_DURATION", "60")
        assert load_config(path).block.duration_seconds == 60

    @pytest.mark.parametrize(
        "name, value",
        [
            ("SOFTBAN_BLOCK_DURATION", "ten"),
            ("SOFTBAN_BLOCK_DURATION", "0"),
            ("SOFTBAN_BLOCK_DURATION", "1000000000000"),
            ("SOFTBAN_STORE_BACKEND", "postgres"),
            ("SOFTBAN_PORT", "http"),
        ],
    )
    def test_invalid_override_exits(
        self, monkeypatch: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        monkeypatch.setenv(name, value)
        with pytest.raises(SystemExit):
            load_config()
