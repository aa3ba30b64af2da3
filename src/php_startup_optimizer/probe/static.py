from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .types import version_id_from_string


@dataclass(slots=True)
class StaticProbe:
    """In-memory runtime facts, for tests or callers that already know them.

    Fields can be changed after construction; the optimizer's status
    diagnosis reads them again on every call.

    Example:
        ```python
        probe = StaticProbe(
            php_version="8.3.4",
            extensions={"Zend OPcache"},
            ini={"opcache.jit": "tracing"},
        )
        ```
    """

    php_version: str = "8.3.0"
    php_version_id: int | None = None
    extensions: set[str] = field(default_factory=set)
    ini: dict[str, str] = field(default_factory=dict)
    constants: dict[str, Any] = field(default_factory=dict)

    def extension_loaded(self, name: str) -> bool:
        """Return whether `name` is among the configured extensions, ignoring case.

        Example:
            ```python
            assert StaticProbe(extensions={"Zend OPcache"}).extension_loaded("zend opcache")
            ```
        """
        wanted = name.lower()
        return any(ext.lower() == wanted for ext in self.extensions)

    def ini_get(self, key: str) -> str | None:
        """Return the configured ini value, or None for an unregistered key.

        Example:
            ```python
            assert StaticProbe().ini_get("opcache.jit") is None
            ```
        """
        return self.ini.get(key)

    def defined(self, name: str) -> bool:
        """Return whether a constant is configured.

        Example:
            ```python
            assert not StaticProbe().defined("ZEND_JIT_AVAILABLE")
            ```
        """
        return name in self.constants

    def constant(self, name: str) -> Any:
        """Return a configured constant's value, or None.

        Example:
            ```python
            value = StaticProbe(constants={"ZEND_JIT_AVAILABLE": 1}).constant("ZEND_JIT_AVAILABLE")
            ```
        """
        return self.constants.get(name)

    def version(self) -> str:
        """Return the configured version string.

        Example:
            ```python
            assert StaticProbe(php_version="7.4.33").version() == "7.4.33"
            ```
        """
        return self.php_version

    def version_id(self) -> int:
        """Return the explicit version id, or one derived from the version string.

        Example:
            ```python
            assert StaticProbe(php_version="7.4.33").version_id() == 70433
            ```
        """
        if self.php_version_id is not None:
            return self.php_version_id
        return version_id_from_string(self.php_version)
