"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src/ to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from ausmo.backup import (  # noqa: E402
    BackupLedger,
    BackupOrchestrator,
    BackupStore,
    DataDomain,
    RecoveryEngineConfig,
    RecoveryPlanEngine,
    SnapshotCapture,
)
from ausmo.observability import RecordingSink  # noqa: E402
from ausmo.security import EncryptionEngine  # noqa: E402
from ausmo.storage import InMemoryKeyValueStore, LocalFileStore  # noqa: E402


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeDataProvider:
    """Domain collectors with canned payloads; domains in ``failing`` raise."""

    def __init__(self):
        self.failing: set = set()
        self.payloads = {
            DataDomain.USERS: {"profiles": [{"id": "u1", "name": "Sam"}]},
            DataDomain.COMMUNICATION: {"pages": [{"id": "p1", "buttons": ["hello", "more"]}]},
            DataDomain.PROGRESS: {"sessions": 12, "goals": ["greetings"]},
            DataDomain.SETTINGS: {"voice": "default", "grid": 4},
        }

    def _collect(self, domain):
        if domain in self.failing:
            raise RuntimeError(f"{domain.value} unavailable")
        return self.payloads[domain]

    def collect_user_data(self):
        return self._collect(DataDomain.USERS)

    def collect_communication_data(self):
        return self._collect(DataDomain.COMMUNICATION)

    def collect_progress_data(self):
        return self._collect(DataDomain.PROGRESS)

    def collect_settings_data(self):
        return self._collect(DataDomain.SETTINGS)


class RecordingHooks:
    """Recovery hooks that record every call in order."""

    def __init__(self):
        self.calls: list = []

    def restore_domain(self, domain, payload):
        self.calls.append(("restore", domain.value, payload))

    def clear_cache(self):
        self.calls.append(("clear_cache",))

    def restart_services(self):
        self.calls.append(("restart_services",))

    def notify_users(self, message):
        self.calls.append(("notify", message))


class FailingUploader:
    def upload(self, name, data):
        from ausmo.errors import UploadError

        raise UploadError("network unreachable", provider="test")


class MemoryUploader:
    def __init__(self):
        self.objects: dict = {}

    def upload(self, name, data):
        self.objects[name] = data
        return f"memory://{name}"


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def provider():
    return FakeDataProvider()


@pytest.fixture
def hooks():
    return RecordingHooks()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_orchestrator(tmp_path, kv_store, provider, hooks, sink, clock):
    """Build an initialized orchestrator without background threads."""
    created = []

    def factory(uploader=None, **kwargs):
        encryption = EncryptionEngine(kv_store)
        orchestrator = BackupOrchestrator(
            capture=SnapshotCapture.from_provider(provider, clock=clock),
            store=BackupStore(LocalFileStore(tmp_path / "files"), uploader or MemoryUploader()),
            ledger=BackupLedger(kv_store),
            kv_store=kv_store,
            encryption=encryption,
            recovery=RecoveryPlanEngine(
                hooks=hooks,
                observability=sink,
                config=RecoveryEngineConfig(retry_backoff_scale=0.001),
            ),
            observability=sink,
            clock=clock,
            start_background_tasks=False,
            **kwargs,
        )
        orchestrator.initialize()
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        orchestrator.cleanup()
