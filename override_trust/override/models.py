"""
Override Trust - Data Model

Override records, their signed representation, and the facts payload
handed to the reporting layer.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import jsonschema

from ..core.exceptions import OverrideDocumentError
from ..gpg import TrustedPubKey

OVERRIDE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["credit", "exp", "justification", "rootSHA", "signedBy"],
    "properties": {
        "credit": {"type": "integer"},
        "exp": {"type": "integer"},
        "justification": {"type": "string"},
        "rootSHA": {"type": "string", "minLength": 1},
        "signedBy": {"type": "string"},
    },
}


class OverrideState(Enum):
    """
    Classification of a persisted override.

    Earlier lifecycle stages are carried by type: an Override is composed,
    the clearsigned text is signed, a SignedOverrideDocument is persisted.
    """
    ACTIVE = "active"
    EXPIRED = "expired"
    ANCHOR_MISMATCHED = "anchor_mismatched"
    UNTRUSTED = "untrusted"


def canonical_json(data: Any) -> str:
    """Stable JSON text: sorted keys, compact separators."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class Override:
    """
    A signed waiver for a risk finding.

    ``exp`` is epoch milliseconds. ``root_sha`` binds the override to one
    repository; ``signed_by`` records who composed it and is not itself
    verified.
    """
    credit: int
    exp: int
    justification: str
    root_sha: str
    signed_by: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credit": self.credit,
            "exp": self.exp,
            "justification": self.justification,
            "rootSHA": self.root_sha,
            "signedBy": self.signed_by,
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Override":
        """
        Build an Override from its wire form.

        Raises:
            OverrideDocumentError: ``data`` does not match the override schema.
        """
        try:
            jsonschema.validate(data, OVERRIDE_SCHEMA)
        except jsonschema.ValidationError as e:
            raise OverrideDocumentError(
                f"Invalid override payload: {e.message}",
                violations=[e.message],
            )

        return cls(
            credit=data["credit"],
            exp=data["exp"],
            justification=data["justification"],
            root_sha=data["rootSHA"],
            signed_by=data["signedBy"],
        )

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.exp


@dataclass
class SignedOverrideDocument:
    """A clearsigned override as found on disk."""
    raw: str
    message: str
    signature: str
    hash_algorithm: Optional[str] = None
    path: Optional[str] = None
    override: Optional[Override] = None

    @property
    def digest(self) -> str:
        """SHA-256 of the signed text, stable across copies of the same file."""
        return hashlib.sha256(self.raw.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "digest": self.digest,
            "hash": self.hash_algorithm,
            "override": self.override.to_dict() if self.override else None,
            "signature": self.signature,
            "raw": self.raw,
        }


@dataclass
class KeyImportFailure:
    """A key file that could not be imported or trusted."""
    path: str
    error: str
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "error": self.error, "stage": self.stage}


@dataclass
class ImportReport:
    """Outcome of importing a directory of public keys."""
    key_dir: str
    imported: List[str] = field(default_factory=list)
    failures: List[KeyImportFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class OverrideFacts:
    """Snapshot of trust store and repository overrides for reporting."""
    trusted_pub_keys_dir: str = ""
    trusted_pub_keys: List[TrustedPubKey] = field(default_factory=list)
    repo_overrides: List[SignedOverrideDocument] = field(default_factory=list)
    # Diagnostics only, not part of the payload
    import_failures: List[KeyImportFailure] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "override": {
                "trustedPubKeysDir": self.trusted_pub_keys_dir,
                "trustedPubKeys": [k.to_dict() for k in self.trusted_pub_keys],
                "repoOverrides": [d.to_dict() for d in self.repo_overrides],
            }
        }
