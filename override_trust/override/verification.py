"""
Override classification.

A persisted override becomes ACTIVE only when its signature verifies
against a trusted key, it has not expired, and its anchor matches the live
repository.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.exceptions import CommandError
from ..gpg import GnuPG, SignatureCheck
from .models import OverrideState, SignedOverrideDocument

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class OverrideVerdict:
    """Classification of one persisted override."""
    document: SignedOverrideDocument
    state: OverrideState
    check: Optional[SignatureCheck] = None
    reason: str = ""

    @property
    def active(self) -> bool:
        return self.state == OverrideState.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.document.path,
            "state": self.state.value,
            "reason": self.reason,
            "signer": self.check.signer if self.check else "",
            "fingerprint": self.check.fingerprint if self.check else "",
        }


async def classify_override(
    document: SignedOverrideDocument,
    root_sha: str,
    gpg: GnuPG,
    current_ms: Optional[int] = None,
) -> OverrideVerdict:
    """Verify ``document`` and place it in its terminal lifecycle state."""
    try:
        check = await gpg.verify(document.raw)
    except CommandError as e:
        logger.debug(f"Unable to verify {document.path}: {e}")
        return OverrideVerdict(document, OverrideState.UNTRUSTED, reason=f"verification unavailable: {e.message}")

    if not check.trusted:
        reason = check.error or f"signature trust {check.trust or 'unknown'}"
        return OverrideVerdict(document, OverrideState.UNTRUSTED, check, reason)

    override = document.override
    if override is None:
        return OverrideVerdict(document, OverrideState.UNTRUSTED, check, "message is not an override")

    current_ms = now_ms() if current_ms is None else current_ms
    if override.is_expired(current_ms):
        return OverrideVerdict(document, OverrideState.EXPIRED, check, f"expired at {override.exp}")

    if override.root_sha != root_sha:
        return OverrideVerdict(
            document,
            OverrideState.ANCHOR_MISMATCHED,
            check,
            f"anchored to {override.root_sha}, repository is {root_sha}",
        )

    return OverrideVerdict(document, OverrideState.ACTIVE, check)
