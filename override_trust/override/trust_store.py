"""
Trust Store Importer

Loads every public key file in a directory into the gpg trust store. Each
key takes two gpg invocations, import then owner-trust assignment, since an
imported key carries no trust of its own. Keys are independent, so they are
processed concurrently; one bad key never stops the batch.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..core.config import Config
from ..core.exceptions import CommandError, ConfigurationError, KeyImportError
from ..external import RunCmd, run_cmd as default_run_cmd
from ..gpg import GnuPG
from .models import ImportReport, KeyImportFailure

logger = logging.getLogger(__name__)

DEFAULT_KEY_SUFFIXES = (".asc", ".gpg", ".pub", ".key")


def find_key_files(key_dir: Path, suffixes: Iterable[str] = DEFAULT_KEY_SUFFIXES) -> List[Path]:
    """Key files directly inside ``key_dir``, sorted by name."""
    wanted = {s.lower() for s in suffixes}
    return sorted(
        p for p in key_dir.iterdir()
        if p.is_file() and p.suffix.lower() in wanted
    )


class TrustStoreImporter:
    """Imports and trusts public keys into the store behind a GnuPG handle."""

    def __init__(
        self,
        gpg: GnuPG,
        key_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
        concurrency: int = 4,
    ):
        self.gpg = gpg
        self.key_suffixes = tuple(key_suffixes)
        self.concurrency = max(1, concurrency)

    async def import_key(self, key_path: Path) -> str:
        """
        Import and trust a single key file.

        Returns:
            Fingerprint of the imported key.

        Raises:
            KeyImportError: Either gpg step failed.
        """
        try:
            fingerprint = await self.gpg.import_key(str(key_path))
        except CommandError as e:
            raise KeyImportError(
                f"Failed to import {key_path.name}: {e.message}",
                key_path=str(key_path),
                stage="import",
            ) from e

        try:
            await self.gpg.assign_trust(fingerprint)
        except CommandError as e:
            raise KeyImportError(
                f"Failed to trust {key_path.name} ({fingerprint}): {e.message}",
                key_path=str(key_path),
                stage="trust",
            ) from e

        logger.debug(f"Imported and trusted {fingerprint} from {key_path.name}")
        return fingerprint

    async def import_all(self, key_dir: Path) -> ImportReport:
        """
        Import every key file in ``key_dir``.

        Raises:
            ConfigurationError: ``key_dir`` is not a directory.
        """
        key_dir = Path(key_dir)
        if not key_dir.is_dir():
            raise ConfigurationError(
                f"Trusted public key directory not found: {key_dir}",
                setting="override.pubkey_dir",
                value=str(key_dir),
            )

        key_files = find_key_files(key_dir, self.key_suffixes)
        report = ImportReport(key_dir=str(key_dir))

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded_import(path: Path) -> str:
            async with semaphore:
                return await self.import_key(path)

        results = await asyncio.gather(
            *(bounded_import(path) for path in key_files),
            return_exceptions=True,
        )

        for path, result in zip(key_files, results):
            if isinstance(result, KeyImportError):
                logger.warning(f"Key import failed: {result.message}")
                report.failures.append(
                    KeyImportFailure(path=str(path), error=result.message, stage=result.stage)
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                report.imported.append(result)

        logger.info(
            f"Imported {len(report.imported)} of {len(key_files)} public keys from {key_dir}"
        )
        return report


async def import_public_keys(
    key_dir: Path,
    gpg: GnuPG,
    key_suffixes: Optional[Sequence[str]] = None,
    concurrency: int = 4,
) -> ImportReport:
    """Convenience wrapper around TrustStoreImporter.import_all."""
    importer = TrustStoreImporter(
        gpg,
        key_suffixes=key_suffixes or DEFAULT_KEY_SUFFIXES,
        concurrency=concurrency,
    )
    return await importer.import_all(key_dir)


def open_trust_store(config: Config, run_cmd: RunCmd = default_run_cmd) -> GnuPG:
    """
    GnuPG handle on the dedicated trust-store keyring.

    The keyring directory is created owner-only, with a ``.gitignore`` so it
    never ends up committed next to the overrides.
    """
    homedir = config.trust_store_path
    gpg = GnuPG.from_config(config.gpg, run_cmd=run_cmd, homedir=str(homedir))
    if gpg.configured and not homedir.is_dir():
        homedir.mkdir(mode=0o700, parents=True)
        (homedir / ".gitignore").write_text("*\n")
        logger.info(f"Created trust store keyring at {homedir}")
    return gpg
