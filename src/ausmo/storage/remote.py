"""Remote upload targets for snapshot blobs.

No cloud SDK ships with this package. Providers without an integration
fail explicitly with ``UploadError`` rather than pretending to succeed.
"""

from __future__ import annotations

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from ausmo.errors import UploadError

logger = logging.getLogger(__name__)


class CloudProvider(str, Enum):
    """Cloud providers a user can pick for remote backups."""

    ICLOUD = "icloud"
    GOOGLE_DRIVE = "google_drive"
    DROPBOX = "dropbox"
    ONEDRIVE = "onedrive"


@runtime_checkable
class RemoteUploader(Protocol):
    """Uploads a named blob and returns a provider reference."""

    def upload(self, name: str, data: bytes) -> str:
        ...


class UnconfiguredUploader:
    """Used when remote backups are enabled but no provider is wired in."""

    def upload(self, name: str, data: bytes) -> str:
        raise UploadError("No remote backup provider configured")


class ProviderUploader:
    """Placeholder for a cloud provider without an SDK integration."""

    def __init__(self, provider: CloudProvider) -> None:
        self.provider = provider

    def upload(self, name: str, data: bytes) -> str:
        raise UploadError(
            f"{self.provider.value} upload not implemented",
            provider=self.provider.value,
        )


class SyncFolderUploader:
    """Copies blobs into a folder kept in sync by the OS (e.g. a mounted drive)."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory).expanduser()

    def upload(self, name: str, data: bytes) -> str:
        target = self.directory / Path(name).name
        tmp = target.with_suffix(target.suffix + ".part")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            shutil.move(str(tmp), str(target))
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise UploadError(f"Failed to copy {name} to {self.directory}: {exc}", provider="sync_folder") from exc
        logger.info("Uploaded %s (%d bytes) to sync folder", name, len(data))
        return target.as_uri()
