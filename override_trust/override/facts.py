"""
Facts Assembler

Collects the trust store contents and the repository's persisted overrides
into an OverrideFacts snapshot. Missing tools or overrides degrade to empty
facts; only configuration errors escape.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

from ..core.config import Config
from ..core.exceptions import CommandError, ConfigurationError
from ..external import RunCmd, run_cmd as default_run_cmd
from ..gpg import GnuPG, TrustedPubKey
from .document import load_override_documents
from .models import KeyImportFailure, OverrideFacts, SignedOverrideDocument
from .trust_store import TrustStoreImporter, open_trust_store

logger = logging.getLogger(__name__)


def dedupe_keys(keys: List[TrustedPubKey]) -> List[TrustedPubKey]:
    seen = set()
    unique = []
    for key in keys:
        if key.fingerprint in seen:
            continue
        seen.add(key.fingerprint)
        unique.append(key)
    return unique


async def read_trust_store(
    gpg: GnuPG,
    key_dir: Optional[Path],
    import_keys: bool,
    key_suffixes: List[str],
    concurrency: int,
) -> Tuple[List[TrustedPubKey], List[KeyImportFailure]]:
    """
    Optionally import ``key_dir``, then list the keys that vouch for overrides.

    After an import only the keys it imported and trusted are reported.
    Without one, keys in the store count only when their ownertrust is full
    or ultimate.
    """
    if not gpg.configured:
        logger.debug("gpg is not configured, reporting no trusted keys")
        return [], []

    imported: Optional[Set[str]] = None
    failures: List[KeyImportFailure] = []
    if key_dir is not None and import_keys:
        importer = TrustStoreImporter(gpg, key_suffixes=key_suffixes, concurrency=concurrency)
        report = await importer.import_all(key_dir)
        imported = set(report.imported)
        failures = report.failures
        for failure in failures:
            logger.warning(f"Untrusted key file {failure.path}: {failure.error}")

    try:
        keys = await gpg.list_public_keys()
    except CommandError as e:
        logger.debug(f"Unable to list gpg public keys: {e}")
        return [], failures

    if imported is not None:
        keys = [k for k in keys if k.fingerprint in imported]
    else:
        keys = [k for k in keys if k.trusted]
    return dedupe_keys(keys), failures


async def scan_overrides(overrides_dir: Path, suffixes: List[str]) -> List[SignedOverrideDocument]:
    return await asyncio.to_thread(load_override_documents, overrides_dir, suffixes)


async def gather_facts(
    config: Config,
    gpg: Optional[GnuPG] = None,
    run_cmd: RunCmd = default_run_cmd,
) -> OverrideFacts:
    """
    Gather override facts for the reporting layer.

    Args:
        config: Loaded configuration.
        gpg: Trust store handle; opened on the configured trust-store
            keyring when omitted.
        run_cmd: Command runner used when ``gpg`` is opened here.

    Raises:
        ConfigurationError: The configured key directory does not exist.
    """
    settings = config.override

    key_dir = None
    if settings.pubkey_dir:
        key_dir = Path(settings.pubkey_dir)
        if not key_dir.is_dir():
            raise ConfigurationError(
                f"Trusted public key directory not found: {key_dir}",
                setting="override.pubkey_dir",
                value=settings.pubkey_dir,
            )

    gpg = gpg or open_trust_store(config, run_cmd=run_cmd)

    (trusted_keys, import_failures), repo_overrides = await asyncio.gather(
        read_trust_store(
            gpg,
            key_dir,
            settings.import_keys,
            list(settings.key_suffixes),
            settings.import_concurrency,
        ),
        scan_overrides(settings.overrides_path, list(settings.override_suffixes)),
    )

    return OverrideFacts(
        trusted_pub_keys_dir=settings.pubkey_dir or "",
        trusted_pub_keys=trusted_keys,
        repo_overrides=repo_overrides,
        import_failures=import_failures,
    )
