"""
Override Trust - Test Configuration

Repo root discovery and a fake command runner standing in for gpg and git,
so tests never touch a real keyring or repository.
"""

import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest


def discover_repo_root() -> Path:
    """
    Discover the repository root.

    Priority:
    1. OVERRIDE_TRUST_REPO_ROOT environment variable
    2. Path traversal from conftest.py location
    """
    env_root = os.environ.get("OVERRIDE_TRUST_REPO_ROOT")
    if env_root:
        root = Path(env_root)
        if root.is_dir() and (root / "pyproject.toml").is_file():
            return root

    current = Path(__file__).resolve().parent
    for _ in range(10):
        if (current / "pyproject.toml").is_file():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent

    raise RuntimeError(
        "Could not discover repo root. Set OVERRIDE_TRUST_REPO_ROOT environment variable "
        "or ensure tests are run from within the repository."
    )


REPO_ROOT = discover_repo_root()

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from override_trust.core.exceptions import CommandFailedError, CommandNotFoundError  # noqa: E402
from override_trust.external import CommandResult  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"

GPG_ID_RAW = "uid:u::::14122::41ECEBA211::Some User <some.user@company.com>::::::::::0:"
GPG_ID = "Some User <some.user@company.com>"
ROOT_SHA = "a1b2c3d4e5f60718293a"

SECRET_KEYS_OUTPUT = "\n".join([
    "sec:u:4096:1:E73869E02AE60B1C:1615000000:::u:::scESC:::+:::23::0:",
    "fpr:::::::::6A8AD0CFB783B10FE198CF61E73869E02AE60B1C:",
    "grp:::::::::9323654C065DA99813D377011A1:",
    GPG_ID_RAW,
    "ssb:u:4096:1:0A1B2C3D4E5F6071:1615000000::::::e:::+:::23:",
    "",
])

# key file name -> (fingerprint, key id, user id)
FIXTURE_KEYS: Dict[str, Tuple[str, str, str]] = {
    "trusted_user.asc": (
        "B0C1D2E3F405162738495A6BC348A9E00AE60B1C",
        "C348A9E00AE60B1C",
        "Trusted User <trusted.user@corp.com>",
    ),
    "security_team.asc": (
        "9F8E7D6C5B4A39281716054F3E2D1C0B0A090807",
        "3E2D1C0B0A090807",
        "Security Team <security@corp.com>",
    ),
}

SIGNED_OUTPUT = """
-----BEGIN PGP SIGNED MESSAGE-----
Hash: SHA256

{ "test": "data" }
-----BEGIN PGP SIGNATURE-----

eQIcBAEBCAAdFiEEYorQz7eDsQ/hmM9h5zhp4CrmDB4FAmBEFHAACgkQ5zhp4Crm
dpVD0hfMB1rG4n8HtvVOyoju0S62eRShON5u1bDyJsuIoB34fOGTyb7hVEEsjHZq
nVfN9h4UoywyzONofymnOKdgxxVjbhuttkBztAujaolkeR8Uhp0XsNuBj3ARqKMM
gopUr20+jOVMJiFRKq+AnHZ2rZ78BCPCcFv4xqImai0gAz/1K+nv4yPP80Al6KO+
/11FVdBN381FaEGG5xeBgKThFyGBriSDbmP4EHpYersNa40/2wo=
-----END PGP SIGNATURE-----"""

OWNERTRUST_CHARS = {2: "q", 3: "n", 4: "m", 5: "f", 6: "u"}


def clearsign_envelope(message: str) -> str:
    """Wrap ``message`` the way gpg --clearsign does, with a dummy signature."""
    escaped = "\n".join(
        "- " + line if line.startswith("-") else line
        for line in message.splitlines()
    )
    return (
        "-----BEGIN PGP SIGNED MESSAGE-----\n"
        "Hash: SHA256\n"
        "\n"
        f"{escaped}\n"
        "-----BEGIN PGP SIGNATURE-----\n"
        "\n"
        "iQIzBAEBCAAdFiEEaorQz7eDsQ/hmM9h5zhp4CrmDB4FAmBEFHAACgkQ5zhp4Crm\n"
        "=u3Xk\n"
        "-----END PGP SIGNATURE-----\n"
    )


class FakeCommandRunner:
    """
    In-memory stand-in for gpg and git.

    Keeps a keyring so repeated imports behave like gpg: merged, not
    duplicated. ``fail`` maps an operation name (``list-secret``,
    ``clearsign``, ``import:<file>``, ``ownertrust``, ``list-keys``,
    ``verify``, ``git``) to the exception it should raise.
    """

    def __init__(
        self,
        secret_keys: str = SECRET_KEYS_OUTPUT,
        root_sha_output: str = ROOT_SHA + "\n",
        clearsign_output: Optional[str] = None,
        key_files: Optional[Dict[str, Tuple[str, str, str]]] = None,
        verify_signer: Optional[str] = "Trusted User <trusted.user@corp.com>",
        verify_trust: str = "ULTIMATE",
        fail: Optional[Dict[str, Exception]] = None,
    ):
        self.secret_keys = secret_keys
        self.root_sha_output = root_sha_output
        self.clearsign_output = clearsign_output
        self.key_files = FIXTURE_KEYS if key_files is None else key_files
        self.verify_signer = verify_signer
        self.verify_trust = verify_trust
        self.fail = fail or {}
        self.calls: List[Tuple[List[str], Optional[str]]] = []
        self.keyring: Dict[str, Dict[str, str]] = {}

    @property
    def operations(self) -> List[str]:
        return [self._operation(argv) for argv, _ in self.calls]

    def _operation(self, argv: Sequence[str]) -> str:
        if Path(argv[0]).name == "git":
            return "git"
        args = list(argv)
        if "--list-secret-keys" in args:
            return "list-secret"
        if "--clearsign" in args:
            return "clearsign"
        if "--import" in args:
            return f"import:{Path(args[-1]).name}"
        if "--import-ownertrust" in args:
            return "ownertrust"
        if "--list-keys" in args:
            return "list-keys"
        if "--verify" in args:
            return "verify"
        return "unknown"

    async def __call__(
        self,
        argv: Sequence[str],
        *,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> CommandResult:
        argv = [str(a) for a in argv]
        self.calls.append((argv, input))
        operation = self._operation(argv)

        if operation in self.fail:
            raise self.fail[operation]

        handler = {
            "git": self._git,
            "list-secret": self._list_secret,
            "clearsign": self._clearsign,
            "ownertrust": self._ownertrust,
            "list-keys": self._list_keys,
            "verify": self._verify,
        }.get(operation)
        if operation.startswith("import:"):
            handler = self._import

        if handler is None:
            raise CommandNotFoundError(f"Unexpected command {argv}", argv=argv)
        return handler(argv, input)

    def _result(self, argv, stdout, stderr=""):
        return CommandResult(argv=argv, returncode=0, stdout=stdout, stderr=stderr)

    def _git(self, argv, input):
        return self._result(argv, self.root_sha_output)

    def _list_secret(self, argv, input):
        return self._result(argv, self.secret_keys)

    def _clearsign(self, argv, input):
        output = self.clearsign_output
        if output is None:
            output = clearsign_envelope(input or "")
        return self._result(argv, output)

    def _import(self, argv, input):
        name = Path(argv[-1]).name
        if name not in self.key_files:
            raise CommandFailedError(
                "gpg exited with status 2",
                argv=argv,
                returncode=2,
                stderr="gpg: no valid OpenPGP data found.",
            )
        fingerprint, key_id, uid = self.key_files[name]
        entry = self.keyring.setdefault(
            fingerprint, {"key_id": key_id, "uid": uid, "ownertrust": "-"}
        )
        stdout = "\n".join([
            f"pub:-:4096:1:{key_id}:1615000000:::{entry['ownertrust']}:::scESC::::::23::0:",
            f"fpr:::::::::{fingerprint}:",
            f"uid:-::::1615000000::41ECEBA211::{uid}::::::::::0:",
            "",
        ])
        stderr = f'gpg: key {key_id}: public key "{uid}" imported'
        return self._result(argv, stdout, stderr)

    def _ownertrust(self, argv, input):
        fingerprint, level = (input or "").strip().split(":")[:2]
        if fingerprint in self.keyring:
            self.keyring[fingerprint]["ownertrust"] = OWNERTRUST_CHARS.get(int(level), "-")
        return self._result(argv, "", "gpg: inserting ownertrust of 6")

    def _list_keys(self, argv, input):
        lines = ["tru::1:1615000000:0:3:1:5"]
        for fingerprint, entry in self.keyring.items():
            lines.extend([
                f"pub:{entry['ownertrust']}:4096:1:{entry['key_id']}:1615000000:::{entry['ownertrust']}:::scESC::::::23::0:",
                f"fpr:::::::::{fingerprint}:",
                f"uid:{entry['ownertrust']}::::1615000000::41ECEBA211::{entry['uid']}::::::::::0:",
                "sub:u:4096:1:0123456789ABCDEF:1615000000::::::e:::::23:",
                "fpr:::::::::00112233445566778899AABB0123456789ABCDEF:",
            ])
        return self._result(argv, "\n".join(lines) + "\n")

    def _verify(self, argv, input):
        if not self.verify_signer:
            raise CommandFailedError(
                "gpg exited with status 1",
                argv=argv,
                returncode=1,
                stdout="[GNUPG:] NEWSIG\n[GNUPG:] BADSIG C348A9E00AE60B1C Unknown\n",
            )
        stdout = "\n".join([
            "[GNUPG:] NEWSIG",
            "[GNUPG:] KEY_CONSIDERED B0C1D2E3F405162738495A6BC348A9E00AE60B1C 0",
            f"[GNUPG:] GOODSIG C348A9E00AE60B1C {self.verify_signer}",
            "[GNUPG:] VALIDSIG B0C1D2E3F405162738495A6BC348A9E00AE60B1C 2021-03-07 1615000000 0 4 0 1 8 01 B0C1D2E3F405162738495A6BC348A9E00AE60B1C",
            f"[GNUPG:] TRUST_{self.verify_trust} 0 pgp",
            "",
        ])
        return self._result(argv, stdout)


@pytest.fixture(scope="session")
def repo_root() -> Path:
    """Fixture providing the repository root path."""
    return REPO_ROOT


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture(scope="session")
def keys_dir(fixtures_dir: Path) -> Path:
    """Directory with two importable key files and one unrelated file."""
    return fixtures_dir / "gpg_keys"


@pytest.fixture(scope="session")
def fixture_repo(fixtures_dir: Path) -> Path:
    """Repository directory holding one persisted override."""
    return fixtures_dir / "repo"


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def gpg(fake_runner):
    from override_trust.gpg import GnuPG

    return GnuPG("gpg", homedir="/tmp/override-trust-test-keyring", run_cmd=fake_runner)


@pytest.fixture
def git_repo(fake_runner):
    from override_trust.override import GitRepository

    return GitRepository("git", repo_dir="/tmp/repo", run_cmd=fake_runner)
