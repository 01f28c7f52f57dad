"""
Override Trust - Signed Risk Overrides

Records justified, signed waivers for risk findings, anchored to the
repository's root commit and verifiable against a set of trusted signers.
Cryptography is delegated to GnuPG and history queries to git.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Override Trust Team"

from .core.config import Config
from .core.exceptions import (
    ConfigurationError,
    OverrideTrustError,
    RootAnchorError,
)
from .override import Override, OverrideFacts, gather_facts

__all__ = [
    "Config",
    "ConfigurationError",
    "OverrideTrustError",
    "RootAnchorError",
    "Override",
    "OverrideFacts",
    "gather_facts",
]
