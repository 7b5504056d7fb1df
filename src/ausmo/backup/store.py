"""Backup store: named snapshot blobs on local storage with optional upload."""

import logging
import re
from typing import Optional

from ausmo.storage import BlobFileStore, RemoteUploader, UnconfiguredUploader

from .config import BACKUP_NAMESPACE

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class BackupStore:
    """Persists snapshots under ``<namespace>/<name>.json``."""

    def __init__(
        self,
        file_store: BlobFileStore,
        uploader: Optional[RemoteUploader] = None,
        namespace: str = BACKUP_NAMESPACE,
    ):
        self.file_store = file_store
        self.uploader = uploader or UnconfiguredUploader()
        self.namespace = namespace

    def path_for(self, name: str) -> str:
        if not _NAME_PATTERN.match(name) or name.startswith("."):
            raise ValueError(f"Invalid backup name: {name!r}")
        return f"{self.namespace}/{name}.json"

    def save(self, name: str, data: bytes) -> str:
        path = self.file_store.write(self.path_for(name), data)
        logger.debug("Saved backup %s (%d bytes) to %s", name, len(data), path)
        return path

    def load(self, name: str) -> bytes:
        return self.file_store.read(self.path_for(name))

    def delete(self, name: str) -> None:
        self.file_store.delete(self.path_for(name))

    def exists(self, name: str) -> bool:
        return self.file_store.exists(self.path_for(name))

    def upload_remote(self, name: str, data: bytes) -> str:
        """Upload a snapshot; raises ``UploadError`` on any provider failure."""
        reference = self.uploader.upload(f"{name}.json", data)
        logger.info("Uploaded backup %s to %s", name, reference)
        return reference
