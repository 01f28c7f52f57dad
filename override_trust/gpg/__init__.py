"""
Override Trust - GnuPG Adapter

Narrow interface over the gpg command line. All cryptography happens in
gpg; this module only builds invocations and parses the machine-readable
``--with-colons`` and ``--status-fd`` output.

Operations:
- list local secret identities
- clearsign a text stream
- import a public key file
- assign owner trust to an imported key
- list the public keys in the trust store
- verify a clearsigned document
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.config import GpgConfig
from ..core.exceptions import CommandFailedError, CommandNotFoundError, KeyImportError
from ..external import CommandResult, RunCmd, run_cmd as default_run_cmd

logger = logging.getLogger(__name__)

# Field positions in --with-colons records (0-based)
FIELD_VALIDITY = 1
FIELD_KEY_ID = 4
FIELD_OWNERTRUST = 8
FIELD_USER_ID = 9

STATUS_PREFIX = "[GNUPG:] "

# Ownertrust flags (full, ultimate) that let a key vouch for signatures
TRUSTED_OWNERTRUST = ("f", "u")

_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")


def _unescape(value: str) -> str:
    return _ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)


def parse_colon_records(output: str) -> List[List[str]]:
    """
    Split gpg ``--with-colons`` output into records.

    Each record is a list of fields; the first field is the record type
    (``pub``, ``sec``, ``uid``, ``fpr``...). Escaped octets such as ``\\x3a``
    are decoded.
    """
    records = []
    for line in output.splitlines():
        line = line.strip()
        if not line or ":" not in line:
            continue
        records.append([_unescape(f) for f in line.split(":")])
    return records


def first_uid(output: str) -> str:
    """Return the user id of the first ``uid`` record, or ``""``."""
    for record in parse_colon_records(output):
        if record[0] == "uid" and len(record) > FIELD_USER_ID:
            return record[FIELD_USER_ID]
    return ""


@dataclass(frozen=True)
class TrustedPubKey:
    """A public key present in the local trust store."""
    fingerprint: str
    key_id: str = ""
    uid: str = ""
    validity: str = ""
    ownertrust: str = ""

    @property
    def trusted(self) -> bool:
        return self.ownertrust in TRUSTED_OWNERTRUST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "keyId": self.key_id,
            "uid": self.uid,
            "validity": self.validity,
            "ownertrust": self.ownertrust,
        }


def parse_public_keys(output: str) -> List[TrustedPubKey]:
    """
    Parse a key listing into TrustedPubKey entries, one per primary key.

    Subkey fingerprints are ignored; the first user id of each key is used.
    """
    keys: List[TrustedPubKey] = []
    current: Optional[Dict[str, str]] = None
    in_subkey = False

    def flush() -> None:
        if current and current.get("fingerprint"):
            keys.append(TrustedPubKey(**current))

    for record in parse_colon_records(output):
        kind = record[0]
        if kind == "pub":
            flush()
            current = {
                "fingerprint": "",
                "key_id": record[FIELD_KEY_ID] if len(record) > FIELD_KEY_ID else "",
                "uid": "",
                "validity": record[FIELD_VALIDITY] if len(record) > FIELD_VALIDITY else "",
                "ownertrust": record[FIELD_OWNERTRUST] if len(record) > FIELD_OWNERTRUST else "",
            }
            in_subkey = False
        elif current is None:
            continue
        elif kind == "sub":
            in_subkey = True
        elif kind == "fpr" and not in_subkey and not current["fingerprint"]:
            current["fingerprint"] = record[FIELD_USER_ID]
        elif kind == "uid" and not current["uid"]:
            current["uid"] = record[FIELD_USER_ID]

    flush()
    return keys


@dataclass
class SignatureCheck:
    """Outcome of verifying a clearsigned document."""
    valid: bool
    fingerprint: str = ""
    signer: str = ""
    trust: str = ""
    error: Optional[str] = None
    status: List[str] = field(default_factory=list)

    @property
    def trusted(self) -> bool:
        """Good signature from a key the trust store vouches for."""
        return self.valid and self.trust in ("FULLY", "ULTIMATE")


def parse_verify_status(status_output: str) -> SignatureCheck:
    """Interpret ``--status-fd`` lines from a verify run."""
    lines = [
        line[len(STATUS_PREFIX):]
        for line in status_output.splitlines()
        if line.startswith(STATUS_PREFIX)
    ]

    good = bad = False
    fingerprint = signer = trust = ""
    error = None

    for line in lines:
        keyword, _, rest = line.partition(" ")
        if keyword == "GOODSIG":
            good = True
            signer = rest.partition(" ")[2]
        elif keyword == "VALIDSIG":
            fingerprint = rest.split(" ")[0]
        elif keyword in ("BADSIG", "EXPSIG", "EXPKEYSIG", "REVKEYSIG"):
            bad = True
            error = keyword
        elif keyword in ("ERRSIG", "NO_PUBKEY", "NODATA"):
            error = error or keyword
        elif keyword.startswith("TRUST_"):
            trust = keyword[len("TRUST_"):]

    return SignatureCheck(
        valid=good and bool(fingerprint) and not bad,
        fingerprint=fingerprint,
        signer=signer,
        trust=trust,
        error=error,
        status=lines,
    )


class GnuPG:
    """
    Adapter over the gpg executable.

    The optional ``homedir`` selects the keyring, and with it the trust
    store, that every operation reads or modifies.
    """

    def __init__(
        self,
        path: Optional[str],
        homedir: Optional[str] = None,
        run_cmd: RunCmd = default_run_cmd,
        timeout: Optional[float] = None,
        trust_level: int = 6,
        local_user: Optional[str] = None,
    ):
        self.path = path
        self.homedir = homedir
        self.timeout = timeout
        self.trust_level = trust_level
        self.local_user = local_user
        self._run_cmd = run_cmd

    @classmethod
    def from_config(
        cls,
        config: GpgConfig,
        run_cmd: RunCmd = default_run_cmd,
        homedir: Optional[str] = None,
    ) -> "GnuPG":
        """Build from configuration; ``homedir`` replaces the signing keyring."""
        return cls(
            path=config.path,
            homedir=homedir if homedir is not None else config.homedir,
            run_cmd=run_cmd,
            timeout=config.timeout_seconds,
            trust_level=config.trust_level,
            local_user=config.local_user,
        )

    @property
    def configured(self) -> bool:
        return bool(self.path)

    def _argv(self, *args: str) -> List[str]:
        argv = [self.path, "--batch", "--no-tty"]
        if self.homedir:
            argv.extend(["--homedir", self.homedir])
        argv.extend(args)
        return argv

    async def _run(self, *args: str, input: Optional[str] = None) -> CommandResult:
        if not self.configured:
            raise CommandNotFoundError("No gpg executable configured", argv=list(args))
        return await self._run_cmd(self._argv(*args), input=input, timeout=self.timeout)

    async def list_secret_identities(self) -> str:
        """Raw colon-delimited listing of local secret keys."""
        result = await self._run("--list-secret-keys", "--with-colons")
        return result.stdout

    async def clearsign(self, text: str) -> str:
        """Clearsign ``text`` and return the armored output verbatim."""
        args = ["--clearsign"]
        if self.local_user:
            args.extend(["--local-user", self.local_user])
        result = await self._run(*args, input=text)
        return result.stdout

    async def import_key(self, key_path: str) -> str:
        """
        Import a public key file.

        Returns:
            Fingerprint of the imported primary key.

        Raises:
            CommandError: gpg could not be run or rejected the file.
            KeyImportError: The import output named no key.
        """
        result = await self._run(
            "--import",
            "--import-options", "import-show",
            "--with-colons",
            str(key_path),
        )
        keys = parse_public_keys(result.stdout)
        if not keys:
            raise KeyImportError(
                f"No public key found in {key_path}",
                key_path=str(key_path),
                stage="import",
            )
        return keys[0].fingerprint

    async def assign_trust(self, fingerprint: str) -> None:
        """Set the owner trust of an imported key to the configured level."""
        await self._run("--import-ownertrust", input=f"{fingerprint}:{self.trust_level}:\n")

    async def list_public_keys(self) -> List[TrustedPubKey]:
        result = await self._run("--list-keys", "--with-colons")
        return parse_public_keys(result.stdout)

    async def verify(self, document: str) -> SignatureCheck:
        """Verify a clearsigned document against the trust store."""
        try:
            result = await self._run("--status-fd", "1", "--verify", input=document)
        except CommandFailedError as e:
            check = parse_verify_status(e.stdout)
            check.valid = False
            check.error = check.error or e.message
            return check
        return parse_verify_status(result.stdout)


__all__ = [
    "GnuPG",
    "SignatureCheck",
    "TRUSTED_OWNERTRUST",
    "TrustedPubKey",
    "first_uid",
    "parse_colon_records",
    "parse_public_keys",
    "parse_verify_status",
]
