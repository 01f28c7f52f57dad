"""
Override Trust Configuration Management

Centralized configuration for the signing tool, the version-control tool
and override storage.
"""

import copy
import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import yaml

from .exceptions import ConfigurationError, OverrideTrustError

logger = logging.getLogger(__name__)

# gpg ownertrust values accepted by --import-ownertrust
OWNERTRUST_LEVELS = {
    2: "undefined",
    3: "never",
    4: "marginal",
    5: "full",
    6: "ultimate",
}

ENV_PREFIX = "OVERRIDE_TRUST_"

# Keyring holding trusted override signers, relative to the override directory
DEFAULT_TRUST_STORE = ".keyring"


@dataclass
class GpgConfig:
    """Signing tool configuration."""
    path: Optional[str] = field(default_factory=lambda: shutil.which("gpg"))
    homedir: Optional[str] = None
    trust_homedir: Optional[str] = None
    trust_level: int = 6
    local_user: Optional[str] = None
    timeout_seconds: float = 30.0


@dataclass
class GitConfig:
    """Version-control tool configuration."""
    path: str = "git"
    timeout_seconds: float = 30.0


@dataclass
class OverrideConfig:
    """Override storage and trusted key locations."""
    pubkey_dir: Optional[str] = None
    repo_dir: str = field(default_factory=lambda: os.getcwd())
    overrides_dir: str = ".overrides"
    override_suffixes: List[str] = field(default_factory=lambda: [".asc"])
    key_suffixes: List[str] = field(
        default_factory=lambda: [".asc", ".gpg", ".pub", ".key"]
    )
    import_keys: bool = True
    import_concurrency: int = 4

    @property
    def overrides_path(self) -> Path:
        """Directory holding persisted signed overrides."""
        return Path(self.repo_dir) / self.overrides_dir


@dataclass
class Config:
    """
    Main configuration class for Override Trust.

    Aggregates all subsystem configurations.
    """
    gpg: GpgConfig = field(default_factory=GpgConfig)
    git: GitConfig = field(default_factory=GitConfig)
    override: OverrideConfig = field(default_factory=OverrideConfig)

    # Operational settings
    log_level: str = "INFO"

    @property
    def trust_store_path(self) -> Path:
        """
        Keyring that holds the trusted override signers.

        Kept apart from the signing keyring so that only keys imported from
        the trusted key directory ever vouch for an override.
        """
        if self.gpg.trust_homedir:
            return Path(self.gpg.trust_homedir)
        return self.override.overrides_path / DEFAULT_TRUST_STORE

    @classmethod
    def from_file(cls, config_path: str) -> "Config":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to configuration YAML file

        Returns:
            Populated Config object
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """
        Create configuration from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Populated Config object
        """
        config = cls()

        if "gpg" in data:
            config.gpg = GpgConfig(**data["gpg"])
        if "git" in data:
            config.git = GitConfig(**data["git"])
        if "override" in data:
            config.override = OverrideConfig(**data["override"])

        if "log_level" in data:
            config.log_level = data["log_level"]

        return config

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional[Dict[str, Any]] = None,
    ) -> "Config":
        """
        Create configuration from environment variables layered over ``base``.

        Recognised variables: ``LOG_LEVEL``, ``OVERRIDE_TRUST_GPG_PATH``,
        ``OVERRIDE_TRUST_GPG_HOMEDIR``, ``OVERRIDE_TRUST_TRUST_HOMEDIR``,
        ``OVERRIDE_TRUST_GIT_PATH``,
        ``OVERRIDE_TRUST_PUBKEY_DIR``, ``OVERRIDE_TRUST_REPO_DIR`` and
        ``OVERRIDE_TRUST_OVERRIDES_DIR``.
        """
        env = os.environ if environ is None else environ
        overlay: Dict[str, Any] = {}

        mapping = {
            "GPG_PATH": ("gpg", "path"),
            "GPG_HOMEDIR": ("gpg", "homedir"),
            "TRUST_HOMEDIR": ("gpg", "trust_homedir"),
            "GIT_PATH": ("git", "path"),
            "PUBKEY_DIR": ("override", "pubkey_dir"),
            "REPO_DIR": ("override", "repo_dir"),
            "OVERRIDES_DIR": ("override", "overrides_dir"),
        }
        for suffix, (section, key) in mapping.items():
            value = env.get(ENV_PREFIX + suffix)
            if value:
                overlay.setdefault(section, {})[key] = value

        if env.get("LOG_LEVEL"):
            overlay["log_level"] = env["LOG_LEVEL"]

        return cls.from_dict(deep_merge(base or {}, overlay))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "gpg": {
                "path": self.gpg.path,
                "homedir": self.gpg.homedir,
                "trust_homedir": self.gpg.trust_homedir,
                "trust_level": self.gpg.trust_level,
                "local_user": self.gpg.local_user,
                "timeout_seconds": self.gpg.timeout_seconds,
            },
            "git": {
                "path": self.git.path,
                "timeout_seconds": self.git.timeout_seconds,
            },
            "override": {
                "pubkey_dir": self.override.pubkey_dir,
                "repo_dir": self.override.repo_dir,
                "overrides_dir": self.override.overrides_dir,
                "override_suffixes": list(self.override.override_suffixes),
                "key_suffixes": list(self.override.key_suffixes),
                "import_keys": self.override.import_keys,
                "import_concurrency": self.override.import_concurrency,
            },
            "log_level": self.log_level,
        }

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not Path(self.override.repo_dir).is_dir():
            errors.append(f"Repository directory does not exist: {self.override.repo_dir}")

        if self.override.pubkey_dir and not Path(self.override.pubkey_dir).is_dir():
            errors.append(
                f"Trusted public key directory does not exist: {self.override.pubkey_dir}"
            )

        if self.gpg.trust_level not in OWNERTRUST_LEVELS:
            errors.append(
                f"GPG trust level must be one of {sorted(OWNERTRUST_LEVELS)}"
            )

        if self.gpg.timeout_seconds <= 0 or self.git.timeout_seconds <= 0:
            errors.append("Command timeouts must be positive")

        if self.override.import_concurrency < 1:
            errors.append("Import concurrency must be at least 1")

        return errors


def deep_merge(base: Dict[str, Any], extra: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``extra`` into a copy of ``base``; ``extra`` wins."""
    merged = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


async def load_config_file(
    config_path: str,
    run_cmd: Optional[Callable[..., Awaitable[Any]]] = None,
) -> Dict[str, Any]:
    """
    Load a configuration file into a dictionary.

    An executable path is run and its stdout parsed as JSON; any other path
    is read as YAML (a superset of JSON).

    Raises:
        FileNotFoundError: ``config_path`` does not exist.
        ConfigurationError: The content is not a mapping or cannot be parsed.
        CommandError: The executable could not be run.
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        if os.access(path, os.X_OK):
            if run_cmd is None:
                from ..external import run_cmd
            result = await run_cmd([str(path)])
            data = json.loads(result.stdout)
        else:
            with open(path) as f:
                data = yaml.safe_load(f)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot parse config file {config_path}: {e}",
            setting="config",
            value=str(config_path),
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} is not a mapping",
            setting="config",
            value=str(config_path),
        )
    return data


async def load_optional_config(
    config_path: Optional[str],
    run_cmd: Optional[Callable[..., Awaitable[Any]]] = None,
) -> Dict[str, Any]:
    """
    Load an optional configuration overlay.

    Same formats as load_config_file, but a missing or broken overlay is
    logged and yields ``{}``.
    """
    if not config_path:
        return {}

    try:
        return await load_config_file(config_path, run_cmd=run_cmd)
    except (OSError, OverrideTrustError) as e:
        logger.warning(f"Ignoring optional config {config_path}: {e}")
        return {}
