"""
Override Trust - Override Module

Signed risk overrides: composition, signing, repository anchoring, trusted
key import and fact gathering.
"""

from .anchor import GitRepository, RootAnchorResolver
from .composer import compose_override, resolve_identity, sign_document
from .document import (
    load_override_documents,
    parse_signed_document,
    write_override,
)
from .facts import gather_facts
from .models import (
    ImportReport,
    KeyImportFailure,
    Override,
    OverrideFacts,
    OverrideState,
    SignedOverrideDocument,
)
from .trust_store import TrustStoreImporter, import_public_keys, open_trust_store
from .verification import OverrideVerdict, classify_override

__all__ = [
    "GitRepository",
    "RootAnchorResolver",
    "compose_override",
    "resolve_identity",
    "sign_document",
    "load_override_documents",
    "parse_signed_document",
    "write_override",
    "gather_facts",
    "ImportReport",
    "KeyImportFailure",
    "Override",
    "OverrideFacts",
    "OverrideState",
    "SignedOverrideDocument",
    "TrustStoreImporter",
    "import_public_keys",
    "open_trust_store",
    "OverrideVerdict",
    "classify_override",
]
