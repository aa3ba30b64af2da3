from .optimizer import (
    DEFAULT_JIT_BUFFER_SIZE,
    DEFAULT_OPCACHE_INTERNED_STRINGS_BUFFER,
    DEFAULT_OPCACHE_MAX_FILES,
    DEFAULT_OPCACHE_MEMORY,
    PhpOptimizer,
    StatusReport,
)
from .probe import PhpBinaryProbe, StaticProbe
from .settings import OptimizerSettings, load_settings

__all__ = [
    "DEFAULT_JIT_BUFFER_SIZE",
    "DEFAULT_OPCACHE_INTERNED_STRINGS_BUFFER",
    "DEFAULT_OPCACHE_MAX_FILES",
    "DEFAULT_OPCACHE_MEMORY",
    "OptimizerSettings",
    "PhpBinaryProbe",
    "PhpOptimizer",
    "StaticProbe",
    "StatusReport",
    "load_settings",
]
