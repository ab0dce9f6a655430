"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from deletion_guard.app import Services, build_services
from deletion_guard.cli.config import Config
from deletion_guard.deletion.audit import AuditLogService, AuditStorage
from deletion_guard.storage.artifacts import LocalArtifactStorage
from deletion_guard.storage.documents import MemoryDocumentStore
from tests.fixtures.events import FakeClock, RecordingNotifier, seed_data


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at NOW, advanced explicitly by tests."""
    return FakeClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    """In-memory document store seeded with two events."""
    return MemoryDocumentStore(seed_data())


@pytest.fixture
def artifacts(tmp_path: Path) -> LocalArtifactStorage:
    return LocalArtifactStorage(tmp_path / "backups")


@pytest.fixture
def audit_storage(tmp_path: Path) -> AuditStorage:
    return AuditStorage(storage_dir=str(tmp_path / "audit-logs"))


@pytest.fixture
def audit(audit_storage: AuditStorage, clock: FakeClock) -> AuditLogService:
    return AuditLogService(audit_storage, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(storage_path=str(tmp_path))


@pytest.fixture
def services(
    config: Config,
    store: MemoryDocumentStore,
    artifacts: LocalArtifactStorage,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> Services:
    """All services wired over the in-memory store and a fake clock."""
    return build_services(config, store=store, artifacts=artifacts, notifier=notifier, clock=clock)
