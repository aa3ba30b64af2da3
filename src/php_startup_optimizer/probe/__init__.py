from .php_binary import PhpBinaryProbe
from .static import StaticProbe
from .types import (
    ConfigReader,
    ConstantReader,
    ExtensionChecker,
    RuntimeProbe,
    RuntimeSnapshot,
    VersionReader,
)

__all__ = [
    "ConfigReader",
    "ConstantReader",
    "ExtensionChecker",
    "PhpBinaryProbe",
    "RuntimeProbe",
    "RuntimeSnapshot",
    "StaticProbe",
    "VersionReader",
]
