from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .probe.php_binary import PhpBinaryProbe
from .probe.types import RuntimeProbe
from .settings import OptimizerSettings, load_settings

log = logging.getLogger("php_startup_optimizer")

DEFAULT_JIT_BUFFER_SIZE = "100M"
DEFAULT_OPCACHE_MEMORY = 256
DEFAULT_OPCACHE_MAX_FILES = 50000
DEFAULT_OPCACHE_INTERNED_STRINGS_BUFFER = 16

OPCACHE_EXTENSION = "Zend OPcache"
JIT_INI_KEY = "opcache.jit"
JIT_AVAILABLE_CONSTANT = "ZEND_JIT_AVAILABLE"
JIT_MIN_VERSION_ID = 80000
DEFINE_FLAG = "-d"
UNKNOWN_REASON = "Unknown reason"


def php_truthy(value: Any) -> bool:
    """Apply PHP's ``(bool)`` cast rules to a decoded scalar.

    Example:
        ```python
        assert php_truthy("0") is False
        ```
    """
    if isinstance(value, str):
        return value not in {"", "0"}
    return bool(value)


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Snapshot of detected capabilities and why unsupported ones are missing.

    Example:
        ```python
        report = StatusReport(opcache=False, jit=False, php_version="7.4.33", reasons={"opcache": "..."})
        ```
    """

    opcache: bool
    jit: bool
    php_version: str
    reasons: Mapping[str, str] = field(default_factory=dict)

    # reasons is a mapping proxy, which cannot be hashed
    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        """Freeze the reasons mapping.

        Example:
            ```python
            StatusReport(opcache=True, jit=True, php_version="8.3.4")
            ```
        """
        object.__setattr__(self, "reasons", MappingProxyType(dict(self.reasons)))

    def to_dict(self) -> dict[str, Any]:
        """Return the report as a plain four-key dictionary.

        Example:
            ```python
            payload = report.to_dict()
            ```
        """
        return {
            "opcache": self.opcache,
            "jit": self.jit,
            "php_version": self.php_version,
            "reasons": dict(self.reasons),
        }


class PhpOptimizer:
    """Detect OPcache/JIT support of a PHP runtime and build startup flags.

    Detection runs once, in the constructor; the flag builders only read
    the stored results.

    Example:
        ```python
        optimizer = PhpOptimizer(StaticProbe(extensions={"Zend OPcache"}, ini={"opcache.jit": "tracing"}))
        flags = optimizer.get_optimized_parameters()
        ```
    """

    DEFAULT_JIT_BUFFER_SIZE = DEFAULT_JIT_BUFFER_SIZE
    DEFAULT_OPCACHE_MEMORY = DEFAULT_OPCACHE_MEMORY
    DEFAULT_OPCACHE_MAX_FILES = DEFAULT_OPCACHE_MAX_FILES
    DEFAULT_OPCACHE_INTERNED_STRINGS_BUFFER = DEFAULT_OPCACHE_INTERNED_STRINGS_BUFFER

    def __init__(self, probe: RuntimeProbe | None = None) -> None:
        """Run capability detection against `probe` (the ``php`` binary by default).

        Example:
            ```python
            optimizer = PhpOptimizer()
            ```
        """
        self._probe: RuntimeProbe = probe if probe is not None else _binary_probe(load_settings())
        self._opcache_supported = self._detect_opcache_support()
        self._jit_supported = self._detect_jit_support()
        log.debug(
            "Detected PHP %s: opcache=%s jit=%s",
            self._probe.version(),
            self._opcache_supported,
            self._jit_supported,
        )

    @classmethod
    def from_settings(cls, settings: OptimizerSettings) -> "PhpOptimizer":
        """Create an optimizer that probes the binary named in `settings`.

        Example:
            ```python
            optimizer = PhpOptimizer.from_settings(OptimizerSettings(php_binary="php8.3"))
            ```
        """
        return cls(_binary_probe(settings))

    def _detect_opcache_support(self) -> bool:
        """Return whether the OPcache extension is loaded.

        Example:
            ```python
            supported = optimizer._detect_opcache_support()
            ```
        """
        return self._probe.extension_loaded(OPCACHE_EXTENSION)

    def _detect_jit_support(self) -> bool:
        """Return whether the OPcache JIT can be used.

        Checks run in order and stop at the first failure: PHP 8.0+,
        OPcache loaded, ``opcache.jit`` registered, then the compile-time
        constant when the runtime defines it. A runtime passing the first
        three checks without the constant is treated as JIT capable.

        Example:
            ```python
            supported = optimizer._detect_jit_support()
            ```
        """
        if self._probe.version_id() < JIT_MIN_VERSION_ID:
            return False
        if not self._detect_opcache_support():
            return False
        if self._probe.ini_get(JIT_INI_KEY) is None:
            return False
        if self._probe.defined(JIT_AVAILABLE_CONSTANT):
            return php_truthy(self._probe.constant(JIT_AVAILABLE_CONSTANT))
        return True

    def is_opcache_supported(self) -> bool:
        """Return the OPcache support detected at construction.

        Example:
            ```python
            if optimizer.is_opcache_supported(): ...
            ```
        """
        return self._opcache_supported

    def is_jit_supported(self) -> bool:
        """Return the JIT support detected at construction.

        Example:
            ```python
            if optimizer.is_jit_supported(): ...
            ```
        """
        return self._jit_supported

    def get_optimized_parameters(
        self,
        enable_opcache: bool = True,
        enable_jit: bool = True,
        jit_buffer_size: str = DEFAULT_JIT_BUFFER_SIZE,
    ) -> list[str]:
        """Return OPcache flags followed by JIT flags, gated by the toggles.

        JIT flags are never emitted without OPcache flags.

        Example:
            ```python
            argv = ["php", *optimizer.get_optimized_parameters(enable_jit=False), "bin/console"]
            ```
        """
        parameters: list[str] = []
        if enable_opcache and self._opcache_supported:
            parameters.extend(self.get_opcache_parameters())
            if enable_jit and self._jit_supported:
                parameters.extend(self.get_jit_parameters(jit_buffer_size))
        return parameters

    def get_opcache_parameters(self) -> list[str]:
        """Return the OPcache ``-d`` flags, or an empty list when unsupported.

        Example:
            ```python
            flags = optimizer.get_opcache_parameters()
            ```
        """
        if not self._opcache_supported:
            return []
        return _as_flags(
            [
                "opcache.enable_cli=1",
                f"opcache.max_accelerated_files={DEFAULT_OPCACHE_MAX_FILES}",
                f"opcache.memory_consumption={DEFAULT_OPCACHE_MEMORY}",
                f"opcache.interned_strings_buffer={DEFAULT_OPCACHE_INTERNED_STRINGS_BUFFER}",
                "opcache.fast_shutdown=1",
                "opcache.validate_timestamps=0",
            ]
        )

    def get_jit_parameters(self, buffer_size: str = DEFAULT_JIT_BUFFER_SIZE) -> list[str]:
        """Return the tracing JIT ``-d`` flags, or an empty list when unsupported.

        `buffer_size` is inserted as given, e.g. ``"100M"``.

        Example:
            ```python
            flags = optimizer.get_jit_parameters("200M")
            ```
        """
        if not self._jit_supported or not self._opcache_supported:
            return []
        return _as_flags(
            [
                "opcache.jit=tracing",
                f"opcache.jit_buffer_size={buffer_size}",
                "opcache.jit_hot_loop=64",
                "opcache.jit_hot_func=127",
                "opcache.jit_hot_return=127",
                "opcache.jit_hot_side_exit=127",
            ]
        )

    def get_status(self) -> StatusReport:
        """Return detected support, the PHP version, and reasons for missing features.

        Example:
            ```python
            report = optimizer.get_status()
            print(report.reasons.get("jit", "JIT ready"))
            ```
        """
        reasons: dict[str, str] = {}
        if not self._opcache_supported:
            reasons["opcache"] = self._opcache_unsupported_reason()
        if not self._jit_supported:
            reasons["jit"] = self._jit_unsupported_reason()
        return StatusReport(
            opcache=self._opcache_supported,
            jit=self._jit_supported,
            php_version=self._probe.version(),
            reasons=reasons,
        )

    def _opcache_unsupported_reason(self) -> str:
        """Explain why OPcache is unavailable, re-querying the runtime.

        Example:
            ```python
            reason = optimizer._opcache_unsupported_reason()
            ```
        """
        if not self._probe.extension_loaded(OPCACHE_EXTENSION):
            return "OPcache extension not loaded"
        return UNKNOWN_REASON

    def _jit_unsupported_reason(self) -> str:
        """Explain why the JIT is unavailable, mirroring `_detect_jit_support`.

        Example:
            ```python
            reason = optimizer._jit_unsupported_reason()
            ```
        """
        if self._probe.version_id() < JIT_MIN_VERSION_ID:
            return f"PHP version {self._probe.version()} is below 8.0"
        if not self._detect_opcache_support():
            return "JIT requires OPcache to be enabled"
        if self._probe.ini_get(JIT_INI_KEY) is None:
            return "opcache.jit configuration not available"
        if self._probe.defined(JIT_AVAILABLE_CONSTANT) and not php_truthy(
            self._probe.constant(JIT_AVAILABLE_CONSTANT)
        ):
            return "JIT not available at compile time"
        return UNKNOWN_REASON


def _binary_probe(settings: OptimizerSettings) -> PhpBinaryProbe:
    """Build the probe for the PHP binary named in `settings`.

    Example:
        ```python
        probe = _binary_probe(OptimizerSettings(php_binary="php"))
        ```
    """
    return PhpBinaryProbe(
        php_binary=settings.php_binary,
        timeout_seconds=settings.probe_timeout_seconds,
    )


def _as_flags(settings: list[str]) -> list[str]:
    """Interleave ``-d`` markers with ``key=value`` settings.

    Example:
        ```python
        assert _as_flags(["a=1"]) == ["-d", "a=1"]
        ```
    """
    flags: list[str] = []
    for setting in settings:
        flags.extend([DEFINE_FLAG, setting])
    return flags
