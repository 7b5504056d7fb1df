"""Persistence collaborators: key/value records, snapshot blobs, remote uploads."""

from .files import BlobFileStore, LocalFileStore
from .kv import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore
from .models import Base, KeyValueRecord
from .remote import (
    CloudProvider,
    ProviderUploader,
    RemoteUploader,
    SyncFolderUploader,
    UnconfiguredUploader,
)

__all__ = [
    # Files
    "BlobFileStore",
    "LocalFileStore",
    # Key/value
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
    # Models
    "Base",
    "KeyValueRecord",
    # Remote
    "CloudProvider",
    "ProviderUploader",
    "RemoteUploader",
    "SyncFolderUploader",
    "UnconfiguredUploader",
]
