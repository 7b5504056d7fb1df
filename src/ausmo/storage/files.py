"""Blob persistence for snapshot files."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from ausmo.errors import PersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobFileStore(Protocol):
    """Byte-oriented file persistence addressed by relative path."""

    def write(self, path: str, data: bytes) -> str:
        ...

    def read(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...


class LocalFileStore:
    """Stores blobs under a root directory on the local filesystem.

    Writes go to a temporary file in the target directory and are moved
    into place with ``os.replace`` so a crash never leaves a partial blob.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise PersistenceError(f"Path escapes store root: {path}", path=path)
        return target

    def write(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=target.suffix)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write {path}: {exc}", path=path) from exc
        logger.debug("Wrote %d bytes to %s", len(data), target)
        return str(target)

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise PersistenceError(f"Failed to read {path}: {exc}", path=path) from exc

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug("Delete skipped, %s does not exist", path)
        except OSError as exc:
            raise PersistenceError(f"Failed to delete {path}: {exc}", path=path) from exc

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
