"""
Override composition and signing.

Identity resolution and signing are best-effort and return ``""`` when gpg
is unusable. Root anchor resolution is not, and its errors propagate out of
``compose_override``.
"""

import logging
from typing import Any, Mapping, Union

from ..core.exceptions import CommandError
from ..gpg import GnuPG, first_uid
from .anchor import GitRepository, RootAnchorResolver
from .models import Override, canonical_json

logger = logging.getLogger(__name__)

Signable = Union[Override, Mapping[str, Any], str]


async def resolve_identity(gpg: GnuPG) -> str:
    """
    Identity of the first local secret key, e.g. ``"Some User <some.user@company.com>"``.

    Returns ``""`` when gpg is not configured, fails to run, or lists no
    user ids.
    """
    if not gpg.configured:
        logger.debug("gpg is not configured, no signing identity available")
        return ""

    try:
        output = await gpg.list_secret_identities()
    except (CommandError, OSError) as e:
        logger.debug(f"Unable to list gpg secret keys: {e}")
        return ""

    identity = first_uid(output)
    if not identity:
        logger.debug("gpg lists no secret key with a user id")
    return identity


def serialize_document(document: Signable) -> str:
    if isinstance(document, str):
        return document
    if isinstance(document, Override):
        return document.to_json()
    return canonical_json(dict(document))


async def sign_document(document: Signable, gpg: GnuPG) -> str:
    """
    Clearsign ``document`` and return gpg's output verbatim.

    Returns ``""`` when signing is not possible.
    """
    if not gpg.configured:
        logger.debug("gpg is not configured, cannot sign")
        return ""

    try:
        return await gpg.clearsign(serialize_document(document))
    except (CommandError, OSError) as e:
        logger.debug(f"gpg clearsign failed: {e}")
        return ""


async def compose_override(
    credit: int,
    exp: int,
    justification: str,
    gpg: GnuPG,
    repo: Union[GitRepository, RootAnchorResolver],
) -> Override:
    """
    Build an unsigned Override for the local signer and repository.

    Raises:
        RootAnchorError: The repository root commit could not be resolved.
    """
    signed_by = await resolve_identity(gpg)
    root_sha = await repo.root_sha()

    return Override(
        credit=credit,
        exp=exp,
        justification=justification,
        root_sha=root_sha,
        signed_by=signed_by,
    )
