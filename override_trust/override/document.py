"""
Signed override documents on disk.

A document is an OpenPGP clearsigned message whose body is the canonical
JSON of an Override. The empty string means signing failed and is never a
document.
"""

import json
import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional

from ..core.exceptions import OverrideDocumentError
from .models import Override, SignedOverrideDocument

logger = logging.getLogger(__name__)

BEGIN_MESSAGE = "-----BEGIN PGP SIGNED MESSAGE-----"
BEGIN_SIGNATURE = "-----BEGIN PGP SIGNATURE-----"
END_SIGNATURE = "-----END PGP SIGNATURE-----"

DEFAULT_SUFFIX = ".asc"


def parse_signed_document(text: str, path: Optional[str] = None) -> SignedOverrideDocument:
    """
    Split a clearsigned override into its message and signature.

    The message is dash-unescaped. ``override`` is left ``None`` when the
    message is not a valid override payload.

    Raises:
        OverrideDocumentError: ``text`` is empty or not a clearsigned envelope.
    """
    if not text or not text.strip():
        raise OverrideDocumentError("Empty override document", path=path)

    lines = text.strip().splitlines()
    try:
        start = lines.index(BEGIN_MESSAGE)
        sig_start = lines.index(BEGIN_SIGNATURE, start + 1)
        sig_end = lines.index(END_SIGNATURE, sig_start + 1)
    except ValueError:
        raise OverrideDocumentError("Not a clearsigned document", path=path)

    # Armor headers run until the first blank line
    hash_algorithm = None
    body_start = start + 1
    while body_start < sig_start and lines[body_start].strip():
        key, _, value = lines[body_start].partition(":")
        if key.strip().lower() == "hash":
            hash_algorithm = value.strip()
        body_start += 1

    message_lines = [
        line[2:] if line.startswith("- ") else line
        for line in lines[body_start + 1:sig_start]
    ]
    message = "\n".join(message_lines)
    signature = "\n".join(lines[sig_start:sig_end + 1])

    if not message.strip():
        raise OverrideDocumentError("Signed document has an empty message", path=path)
    if sig_end - sig_start < 2:
        raise OverrideDocumentError("Signed document has an empty signature", path=path)

    override = None
    try:
        override = Override.from_dict(json.loads(message))
    except (ValueError, TypeError, OverrideDocumentError) as e:
        logger.debug(f"Signed document {path or '<text>'} is not an override payload: {e}")

    return SignedOverrideDocument(
        raw=text,
        message=message,
        signature=signature,
        hash_algorithm=hash_algorithm,
        path=path,
        override=override,
    )


def find_override_files(overrides_dir: Path, suffixes: Iterable[str] = (DEFAULT_SUFFIX,)) -> List[Path]:
    wanted = {s.lower() for s in suffixes}
    return sorted(
        p for p in overrides_dir.iterdir()
        if p.is_file() and p.suffix.lower() in wanted
    )


def load_override_documents(
    overrides_dir: Path,
    suffixes: Iterable[str] = (DEFAULT_SUFFIX,),
) -> List[SignedOverrideDocument]:
    """
    Parse every override file in ``overrides_dir``.

    A missing directory yields an empty list; unparseable files are skipped.
    """
    overrides_dir = Path(overrides_dir)
    if not overrides_dir.is_dir():
        logger.debug(f"No override directory at {overrides_dir}")
        return []

    documents = []
    for path in find_override_files(overrides_dir, suffixes):
        try:
            documents.append(parse_signed_document(path.read_text(), path=str(path)))
        except OverrideDocumentError as e:
            logger.warning(f"Skipping override file {path}: {e.message}")
    return documents


def write_override(
    signed_text: str,
    overrides_dir: Path,
    name: Optional[str] = None,
) -> Path:
    """
    Persist a signed override into ``overrides_dir``.

    Raises:
        OverrideDocumentError: ``signed_text`` is not a clearsigned document.
    """
    parse_signed_document(signed_text)

    overrides_dir = Path(overrides_dir)
    overrides_dir.mkdir(parents=True, exist_ok=True)

    filename = name or f"override-{int(time.time() * 1000)}{DEFAULT_SUFFIX}"
    path = overrides_dir / filename
    try:
        with open(path, "x") as f:
            f.write(signed_text if signed_text.endswith("\n") else signed_text + "\n")
    except FileExistsError as e:
        raise OverrideDocumentError(f"Override file already exists: {path}", path=str(path)) from e

    logger.info(f"Override written to {path}")
    return path
