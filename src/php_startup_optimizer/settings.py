from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

_KNOWN_KEYS = {
    "php_binary",
    "probe_timeout_seconds",
    "enable_opcache",
    "enable_jit",
    "jit_buffer_size",
}


def _default_settings_path() -> Path:
    """Return bundled default settings TOML path.

    Example:
        ```python
        path = _default_settings_path()
        ```
    """
    return Path(__file__).with_name("default_settings.toml")


def _read_settings_toml(path: Path) -> dict[str, Any]:
    """Read settings TOML and return the optimizer table.

    Values may sit at the top level or under an ``[optimizer]`` table.

    Example:
        ```python
        raw = _read_settings_toml(Path("/tmp/phpopt.toml"))
        ```
    """
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid settings TOML in {path}: {exc}") from exc
    table = raw.get("optimizer", raw)
    if not isinstance(table, dict):
        raise ValueError("Settings config must be a TOML table")
    unknown = sorted(set(table) - _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"Unknown settings key(s): {', '.join(unknown)}")
    return table


def _bundled_defaults() -> dict[str, Any]:
    """Return bundled defaults, falling back to in-code values when the file is absent.

    Example:
        ```python
        raw = _bundled_defaults()
        ```
    """
    path = _default_settings_path()
    if not path.exists():
        return {
            "php_binary": "php",
            "probe_timeout_seconds": 10,
            "enable_opcache": True,
            "enable_jit": True,
            "jit_buffer_size": "100M",
        }
    return _read_settings_toml(path)


def _as_bool(value: Any, field_name: str) -> bool:
    """Validate a boolean settings field.

    Example:
        ```python
        enabled = _as_bool(True, "enable_jit")
        ```
    """
    if not isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be true or false")
    return value


def _as_str(value: Any, field_name: str) -> str:
    """Validate a non-empty string settings field.

    Example:
        ```python
        size = _as_str("100M", "jit_buffer_size")
        ```
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{field_name}' must be a non-empty string")
    return value.strip()


def _as_positive_int(value: Any, field_name: str) -> int:
    """Validate a positive integer settings field.

    Example:
        ```python
        seconds = _as_positive_int(10, "probe_timeout_seconds")
        ```
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{field_name}' must be a positive integer")
    return value


_DEFAULTS_RAW = _bundled_defaults()
DEFAULT_PHP_BINARY = _as_str(_DEFAULTS_RAW.get("php_binary", "php"), "php_binary")
DEFAULT_PROBE_TIMEOUT_SECONDS = _as_positive_int(
    _DEFAULTS_RAW.get("probe_timeout_seconds", 10), "probe_timeout_seconds"
)
DEFAULT_ENABLE_OPCACHE = _as_bool(_DEFAULTS_RAW.get("enable_opcache", True), "enable_opcache")
DEFAULT_ENABLE_JIT = _as_bool(_DEFAULTS_RAW.get("enable_jit", True), "enable_jit")
DEFAULT_SETTINGS_JIT_BUFFER_SIZE = _as_str(
    _DEFAULTS_RAW.get("jit_buffer_size", "100M"), "jit_buffer_size"
)


def _default_php_binary() -> str:
    """Return ``$PHP_BINARY`` when set, else the bundled default binary.

    Example:
        ```python
        binary = _default_php_binary()
        ```
    """
    return os.environ.get("PHP_BINARY", "").strip() or DEFAULT_PHP_BINARY


@dataclass(frozen=True, slots=True)
class OptimizerSettings:
    """How to reach the PHP runtime and which flag groups to generate.

    Example:
        ```python
        settings = OptimizerSettings(php_binary="/usr/bin/php8.3", enable_jit=False)
        ```
    """

    php_binary: str = DEFAULT_PHP_BINARY
    probe_timeout_seconds: int = DEFAULT_PROBE_TIMEOUT_SECONDS
    enable_opcache: bool = DEFAULT_ENABLE_OPCACHE
    enable_jit: bool = DEFAULT_ENABLE_JIT
    jit_buffer_size: str = DEFAULT_SETTINGS_JIT_BUFFER_SIZE

    def __post_init__(self) -> None:
        """Validate field values after dataclass initialization.

        Example:
            ```python
            OptimizerSettings(probe_timeout_seconds=5)
            ```
        """
        _as_str(self.php_binary, "php_binary")
        _as_positive_int(self.probe_timeout_seconds, "probe_timeout_seconds")
        _as_bool(self.enable_opcache, "enable_opcache")
        _as_bool(self.enable_jit, "enable_jit")
        _as_str(self.jit_buffer_size, "jit_buffer_size")

    @classmethod
    def from_file(cls, config_path: str) -> "OptimizerSettings":
        """Create settings from a TOML file, filling gaps with defaults.

        Example:
            ```python
            settings = OptimizerSettings.from_file("/tmp/phpopt.toml")
            ```
        """
        path = Path(config_path)
        if not path.exists():
            raise ValueError(f"Settings file not found: {config_path}")
        raw = _read_settings_toml(path)
        return cls(
            php_binary=_as_str(raw.get("php_binary", _default_php_binary()), "php_binary"),
            probe_timeout_seconds=_as_positive_int(
                raw.get("probe_timeout_seconds", DEFAULT_PROBE_TIMEOUT_SECONDS),
                "probe_timeout_seconds",
            ),
            enable_opcache=_as_bool(raw.get("enable_opcache", DEFAULT_ENABLE_OPCACHE), "enable_opcache"),
            enable_jit=_as_bool(raw.get("enable_jit", DEFAULT_ENABLE_JIT), "enable_jit"),
            jit_buffer_size=_as_str(
                raw.get("jit_buffer_size", DEFAULT_SETTINGS_JIT_BUFFER_SIZE), "jit_buffer_size"
            ),
        )

    def with_overrides(self, **overrides: Any) -> "OptimizerSettings":
        """Return a copy with non-None overrides applied.

        Example:
            ```python
            tuned = settings.with_overrides(php_binary="php8.2", jit_buffer_size=None)
            ```
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def load_settings(config_path: str | None = None) -> OptimizerSettings:
    """Resolve effective settings from an optional TOML file and ``$PHP_BINARY``.

    Example:
        ```python
        settings = load_settings("/tmp/phpopt.toml")
        ```
    """
    if config_path is not None:
        return OptimizerSettings.from_file(config_path)
    return OptimizerSettings(php_binary=_default_php_binary())
