"""
Override Trust CLI

Command-line interface for composing, signing and inspecting risk overrides.
"""

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .core.config import ENV_PREFIX, Config, deep_merge, load_config_file, load_optional_config
from .core.exceptions import OverrideTrustError, SigningError
from .external import RunCmd, run_cmd as default_run_cmd
from .gpg import GnuPG
from .override import (
    GitRepository,
    RootAnchorResolver,
    classify_override,
    compose_override,
    gather_facts,
    import_public_keys,
    open_trust_store,
    resolve_identity,
    sign_document,
    write_override,
)

logger = logging.getLogger(__name__)

_DAYS = re.compile(r"^(\d+)d$")


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def parse_expiry(value: str, now: Optional[datetime] = None) -> int:
    """
    Expiry as epoch milliseconds.

    Accepts a number of days (``30d``) or an ISO-8601 date/datetime; naive
    values are taken as UTC.
    """
    now = now or datetime.now(timezone.utc)
    match = _DAYS.match(value.strip())
    if match:
        expires = now + timedelta(days=int(match.group(1)))
    else:
        try:
            expires = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise argparse.ArgumentTypeError(
                f"Invalid expiry '{value}': use e.g. 30d or 2025-12-31"
            )
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
    return int(expires.timestamp() * 1000)


async def load_config(args: argparse.Namespace, run_cmd: RunCmd = default_run_cmd) -> Config:
    """
    Load configuration.

    Layers, lowest first: the optional overlay named by
    ``OVERRIDE_TRUST_CONFIG``, the ``--config`` file, environment variables
    and command-line flags. Only the overlay may be missing or broken.
    """
    data = await load_optional_config(os.environ.get(ENV_PREFIX + "CONFIG"), run_cmd=run_cmd)
    if args.config:
        data = deep_merge(data, await load_config_file(args.config, run_cmd=run_cmd))

    config = Config.from_env(base=data)
    if args.pubkey_dir:
        config.override.pubkey_dir = args.pubkey_dir
    if args.dir:
        config.override.repo_dir = args.dir
    return config


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="override-trust",
        description="Signed, repository-anchored risk overrides",
    )

    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file, or an executable printing JSON",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from configuration)",
    )
    parser.add_argument(
        "--pubkey-dir",
        dest="pubkey_dir",
        help="Directory of trusted public keys",
    )
    parser.add_argument(
        "--dir",
        help="Repository directory (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("facts", help="Print override facts as JSON")
    subparsers.add_parser("identity", help="Show the local signing identity")
    subparsers.add_parser("root-sha", help="Show the repository anchor")

    import_parser = subparsers.add_parser(
        "import-keys",
        help="Import trusted public keys into the trust store",
    )
    import_parser.add_argument(
        "--key-dir",
        dest="key_dir",
        help="Key directory (default: --pubkey-dir)",
    )

    create_parser = subparsers.add_parser("create", help="Create a signed override")
    create_parser.add_argument(
        "--credit",
        type=int,
        required=True,
        help="Score adjustment, may be negative",
    )
    create_parser.add_argument(
        "--expires",
        type=parse_expiry,
        required=True,
        help="Expiry as days (30d) or ISO date",
    )
    create_parser.add_argument(
        "--justification",
        required=True,
        help="Why the risk is waived",
    )
    create_parser.add_argument(
        "--output",
        help="File name inside the override directory",
    )
    create_parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print the signed override instead of writing it",
    )

    verify_parser = subparsers.add_parser("verify", help="Classify persisted overrides")
    verify_parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )

    subparsers.add_parser("version", help="Show version")

    return parser


async def cmd_facts(args: argparse.Namespace, config: Config, run_cmd: RunCmd) -> int:
    """Print the facts payload."""
    facts = await gather_facts(config, run_cmd=run_cmd)
    print(json.dumps(facts.to_payload(), indent=2))
    return 0


async def cmd_identity(args: argparse.Namespace, config: Config, run_cmd: RunCmd) -> int:
    identity = await resolve_identity(GnuPG.from_config(config.gpg, run_cmd=run_cmd))
    if not identity:
        print("No gpg signing identity available", file=sys.stderr)
        return 1
    print(identity)
    return 0


async def cmd_root_sha(args: argparse.Namespace, config: Config, run_cmd: RunCmd) -> int:
    repo = GitRepository.from_config(config.git, config.override.repo_dir, run_cmd=run_cmd)
    print(await repo.root_sha())
    return 0


async def cmd_import_keys(args: argparse.Namespace, config: Config, run_cmd: RunCmd) -> int:
    """Import the trusted key directory and report failures."""
    key_dir = args.key_dir or config.override.pubkey_dir
    if not key_dir:
        print("No key directory given. Use --key-dir or --pubkey-dir", file=sys.stderr)
        return 1

    report = await import_public_keys(
        Path(key_dir),
        open_trust_store(config, run_cmd=run_cmd),
        key_suffixes=config.override.key_suffixes,
        concurrency=config.override.import_concurrency,
    )

    print(f"Imported {len(report.imported)} key(s) from {report.key_dir}")
    for fingerprint in report.imported:
        print(f"  - {fingerprint}")
    if report.failures:
        print(f"\nFailures: {len(report.failures)}")
        for failure in report.failures:
            print(f"  - {failure.path}: {failure.error}")
    return 0 if report.ok else 1


async def cmd_create(args: argparse.Namespace, config: Config, run_cmd: RunCmd) -> int:
    """Compose, sign and persist an override."""
    gpg = GnuPG.from_config(config.gpg, run_cmd=run_cmd)
    anchor = RootAnchorResolver(
        GitRepository.from_config(config.git, config.override.repo_dir, run_cmd=run_cmd)
    )

    override = await compose_override(
        args.credit,
        args.expires,
        args.justification,
        gpg,
        anchor,
    )
    if not override.signed_by:
        raise SigningError("No gpg signing identity available")

    signed = await sign_document(override, gpg)
    if not signed:
        raise SigningError("gpg did not produce a signature", signer=override.signed_by)

    if args.stdout:
        print(signed)
        return 0

    path = write_override(signed, config.override.overrides_path, name=args.output)
    print(f"Override signed by {override.signed_by} written to {path}")
    return 0


async def cmd_verify(args: argparse.Namespace, config: Config, run_cmd: RunCmd) -> int:
    """Classify every persisted override against the trust store."""
    trust_store = open_trust_store(config, run_cmd=run_cmd)
    anchor = RootAnchorResolver(
        GitRepository.from_config(config.git, config.override.repo_dir, run_cmd=run_cmd)
    )

    facts = await gather_facts(config, gpg=trust_store)
    root_sha = await anchor.root_sha()

    verdicts = await asyncio.gather(
        *(classify_override(doc, root_sha, trust_store) for doc in facts.repo_overrides)
    )

    if args.json:
        print(json.dumps([v.to_dict() for v in verdicts], indent=2))
        return 0

    print(f"Repository anchor: {root_sha}")
    print(f"Overrides: {len(verdicts)}")
    for verdict in verdicts:
        line = f"  - {verdict.document.path}: {verdict.state.value}"
        if verdict.reason:
            line += f" ({verdict.reason})"
        print(line)
    return 0


def cmd_version(args: argparse.Namespace, config: Config) -> int:
    print(f"override-trust {__version__}")
    return 0


async def async_main(
    args: argparse.Namespace,
    config: Config,
    run_cmd: RunCmd = default_run_cmd,
) -> int:
    """Async main entry point."""
    try:
        if args.command == "facts":
            return await cmd_facts(args, config, run_cmd)
        elif args.command == "identity":
            return await cmd_identity(args, config, run_cmd)
        elif args.command == "root-sha":
            return await cmd_root_sha(args, config, run_cmd)
        elif args.command == "import-keys":
            return await cmd_import_keys(args, config, run_cmd)
        elif args.command == "create":
            return await cmd_create(args, config, run_cmd)
        elif args.command == "verify":
            return await cmd_verify(args, config, run_cmd)
        elif args.command == "version":
            return cmd_version(args, config)
    except OverrideTrustError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print("No command specified. Use --help for usage.")
    return 1


def main(argv: Optional[list] = None, run_cmd: RunCmd = default_run_cmd) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Load config
    try:
        config = asyncio.run(load_config(args, run_cmd=run_cmd))
    except Exception as e:
        print(f"Failed to load config: {e}", file=sys.stderr)
        return 1

    # Setup logging
    log_level = "DEBUG" if args.verbose else (args.log_level or config.log_level)
    setup_logging(log_level)

    return asyncio.run(async_main(args, config, run_cmd=run_cmd))


if __name__ == "__main__":
    sys.exit(main())
