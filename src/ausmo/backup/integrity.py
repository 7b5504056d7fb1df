"""Integrity utility: canonical serialization and content checksums."""

import hashlib
import json
from typing import Any, Mapping

from ausmo.errors import IntegrityError


def canonical_json(document: Any) -> bytes:
    """Serialize deterministically so equal documents hash equally."""
    return json.dumps(
        document,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def compute_checksum(payload: bytes) -> str:
    """SHA-256 hex digest of a serialized payload."""
    return hashlib.sha256(payload).hexdigest()


def checksum_document(document: Any) -> str:
    return compute_checksum(canonical_json(document))


def verify_checksum(payload: bytes, expected: str) -> None:
    """Raise ``IntegrityError`` when ``payload`` does not hash to ``expected``."""
    actual = compute_checksum(payload)
    if actual != expected:
        raise IntegrityError(
            "Snapshot checksum mismatch", expected=expected, actual=actual
        )


def verify_structure(document: Any) -> None:
    """Sanity-check the shape of a deserialized snapshot document."""
    if not isinstance(document, Mapping):
        raise IntegrityError("Snapshot is not a JSON object")
    for key in ("timestamp", "version", "data"):
        if key not in document:
            raise IntegrityError(f"Snapshot is missing required field '{key}'")
    if not isinstance(document["data"], Mapping):
        raise IntegrityError("Snapshot 'data' must be an object")
