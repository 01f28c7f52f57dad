"""
Override Trust Core Module

Configuration and the exception hierarchy shared by every subsystem.
"""

from .config import Config, GitConfig, GpgConfig, OverrideConfig
from .exceptions import (
    CommandError,
    ConfigurationError,
    KeyImportError,
    OverrideDocumentError,
    OverrideTrustError,
    RootAnchorError,
    SigningError,
)

__all__ = [
    "Config",
    "GitConfig",
    "GpgConfig",
    "OverrideConfig",
    "CommandError",
    "ConfigurationError",
    "KeyImportError",
    "OverrideDocumentError",
    "OverrideTrustError",
    "RootAnchorError",
    "SigningError",
]
