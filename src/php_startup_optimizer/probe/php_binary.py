from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from .types import RuntimeSnapshot

log = logging.getLogger("php_startup_optimizer")

PROBED_CONSTANTS = ("ZEND_JIT_AVAILABLE",)

_PROBE_SCRIPT = """
$constants = [];
foreach (json_decode('__NAMES__', true) as $name) {
    if (defined($name)) {
        $constants[$name] = constant($name);
    }
}
echo json_encode([
    'version' => PHP_VERSION,
    'version_id' => PHP_VERSION_ID,
    'extensions' => get_loaded_extensions(),
    'ini' => (object) ini_get_all(null, false),
    'constants' => (object) $constants,
], JSON_PARTIAL_OUTPUT_ON_ERROR);
"""


def build_probe_script(constant_names: tuple[str, ...] = PROBED_CONSTANTS) -> str:
    """Return the PHP source passed to ``php -r`` to capture a runtime snapshot.

    Example:
        ```python
        script = build_probe_script(("ZEND_JIT_AVAILABLE",))
        ```
    """
    names = json.dumps(list(constant_names)).replace("\\", "\\\\").replace("'", "\\'")
    return _PROBE_SCRIPT.replace("__NAMES__", names)


def parse_probe_output(raw: str) -> RuntimeSnapshot:
    """Build a snapshot from the probe script's JSON output.

    Raises ValueError when the output is not a JSON object.

    Example:
        ```python
        snap = parse_probe_output('{"version": "8.3.4", "version_id": 80304}')
        ```
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("PHP probe output must be a JSON object")
    ini_raw = data.get("ini") or {}
    constants_raw = data.get("constants") or {}
    if not isinstance(ini_raw, dict) or not isinstance(constants_raw, dict):
        raise ValueError("PHP probe output has malformed 'ini' or 'constants'")
    return RuntimeSnapshot(
        version=str(data.get("version", "")),
        version_id=int(data.get("version_id", 0) or 0),
        extensions=frozenset(str(ext).lower() for ext in data.get("extensions") or []),
        ini={str(key): "" if value is None else str(value) for key, value in ini_raw.items()},
        constants=dict(constants_raw),
    )


class PhpBinaryProbe:
    """Query capability facts from a PHP interpreter binary.

    The binary is run once, on first use, and the snapshot is kept until
    ``refresh()``. A binary that cannot be run yields an empty snapshot, so
    every capability reads as unsupported.

    Example:
        ```python
        probe = PhpBinaryProbe(php_binary="/usr/bin/php8.3", timeout_seconds=5)
        ```
    """

    def __init__(self, *, php_binary: str = "php", timeout_seconds: int = 10) -> None:
        """Store the binary location; nothing is executed yet.

        Example:
            ```python
            probe = PhpBinaryProbe(php_binary="php")
            ```
        """
        cleaned = php_binary.strip()
        if not cleaned:
            raise ValueError("PhpBinaryProbe requires a non-empty 'php_binary'")
        self._php_binary = cleaned
        self._timeout_seconds = max(1, int(timeout_seconds))
        self._snapshot: RuntimeSnapshot | None = None

    @property
    def php_binary(self) -> str:
        """Return the configured PHP binary path or command name.

        Example:
            ```python
            binary = probe.php_binary
            ```
        """
        return self._php_binary

    def snapshot(self) -> RuntimeSnapshot:
        """Return the cached snapshot, probing the binary on first call.

        Example:
            ```python
            snap = probe.snapshot()
            ```
        """
        if self._snapshot is None:
            self._snapshot = self._capture()
        return self._snapshot

    def refresh(self) -> RuntimeSnapshot:
        """Discard the cached snapshot and probe the binary again.

        Example:
            ```python
            snap = probe.refresh()
            ```
        """
        self._snapshot = None
        return self.snapshot()

    def extension_loaded(self, name: str) -> bool:
        """Return whether the extension is loaded (case-insensitive, like PHP).

        Example:
            ```python
            loaded = probe.extension_loaded("Zend OPcache")
            ```
        """
        return name.lower() in self.snapshot().extensions

    def ini_get(self, key: str) -> str | None:
        """Return an ini value, or None when the setting is not registered.

        Example:
            ```python
            mode = probe.ini_get("opcache.jit")
            ```
        """
        return self.snapshot().ini.get(key)

    def defined(self, name: str) -> bool:
        """Return whether a probed constant is defined in the runtime.

        Example:
            ```python
            present = probe.defined("ZEND_JIT_AVAILABLE")
            ```
        """
        return name in self.snapshot().constants

    def constant(self, name: str) -> Any:
        """Return a probed constant's value, or None when undefined.

        Example:
            ```python
            value = probe.constant("ZEND_JIT_AVAILABLE")
            ```
        """
        return self.snapshot().constants.get(name)

    def version(self) -> str:
        """Return ``PHP_VERSION`` as reported by the binary.

        Example:
            ```python
            text = probe.version()
            ```
        """
        return self.snapshot().version

    def version_id(self) -> int:
        """Return ``PHP_VERSION_ID`` as reported by the binary.

        Example:
            ```python
            number = probe.version_id()
            ```
        """
        return self.snapshot().version_id

    def _capture(self) -> RuntimeSnapshot:
        """Run the probe script and parse its output.

        Example:
            ```python
            snap = probe._capture()
            ```
        """
        cmd = [self._php_binary, "-d", "display_errors=stderr", "-r", build_probe_script()]
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self._timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            log.warning("PHP probe timed out after %ss: %s", self._timeout_seconds, self._php_binary)
            return RuntimeSnapshot()
        except OSError as exc:
            log.warning("Could not run PHP binary %s: %s", self._php_binary, exc)
            return RuntimeSnapshot()

        if completed.returncode != 0:
            log.warning(
                "PHP probe failed (exit %d): %s",
                completed.returncode,
                completed.stderr.strip()[:200],
            )
            return RuntimeSnapshot()
        try:
            snapshot = parse_probe_output(completed.stdout.strip())
        except (ValueError, TypeError) as exc:
            log.warning("PHP probe returned unreadable output from %s: %s", self._php_binary, exc)
            return RuntimeSnapshot()
        log.debug(
            "Probed PHP %s at %s (%d extensions)",
            snapshot.version,
            self._php_binary,
            len(snapshot.extensions),
        )
        return snapshot
