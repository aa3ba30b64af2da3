from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


class ExtensionChecker(Protocol):
    def extension_loaded(self, name: str) -> bool:
        """Return whether the runtime reports extension `name` as loaded.

        Example:
            ```python
            loaded = probe.extension_loaded("Zend OPcache")
            ```
        """
        ...


class ConfigReader(Protocol):
    def ini_get(self, key: str) -> str | None:
        """Return an ini setting value, or None when the setting is not registered.

        Example:
            ```python
            jit = probe.ini_get("opcache.jit")
            ```
        """
        ...


class ConstantReader(Protocol):
    def defined(self, name: str) -> bool:
        """Return whether a compile-time constant is defined.

        Example:
            ```python
            has_flag = probe.defined("ZEND_JIT_AVAILABLE")
            ```
        """
        ...

    def constant(self, name: str) -> Any:
        """Return the value of a defined constant.

        Example:
            ```python
            value = probe.constant("ZEND_JIT_AVAILABLE")
            ```
        """
        ...


class VersionReader(Protocol):
    def version(self) -> str:
        """Return the runtime version string, e.g. ``8.3.4``.

        Example:
            ```python
            text = probe.version()
            ```
        """
        ...

    def version_id(self) -> int:
        """Return the numeric runtime version, e.g. ``80304``.

        Example:
            ```python
            number = probe.version_id()
            ```
        """
        ...


class RuntimeProbe(ExtensionChecker, ConfigReader, ConstantReader, VersionReader, Protocol):
    """All capability queries the optimizer needs from a PHP runtime."""


@dataclass(frozen=True, slots=True)
class RuntimeSnapshot:
    """Capability facts captured from one PHP runtime.

    Example:
        ```python
        snap = RuntimeSnapshot(version="8.3.4", version_id=80304, extensions=frozenset({"zend opcache"}))
        ```
    """

    version: str = ""
    version_id: int = 0
    extensions: frozenset[str] = frozenset()
    ini: dict[str, str] = field(default_factory=dict)
    constants: dict[str, Any] = field(default_factory=dict)


def version_id_from_string(version: str) -> int:
    """Convert ``major.minor.patch`` into PHP's ``PHP_VERSION_ID`` form.

    Non-numeric suffixes such as ``-dev`` or ``RC1`` are ignored; an
    unreadable string yields 0.

    Example:
        ```python
        assert version_id_from_string("8.2.10") == 80210
        ```
    """
    parts: list[int] = []
    for chunk in version.split(".")[:3]:
        digits = ""
        for char in chunk:
            if not char.isdigit():
                break
            digits += char
        if not digits:
            break
        parts.append(int(digits))
    if not parts:
        return 0
    parts.extend([0] * (3 - len(parts)))
    major, minor, patch = parts
    return major * 10000 + minor * 100 + patch
