"""Tests for BackupWriter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import yaml

from deletion_guard.deletion.backup import BackupWriter, backup_id_for, serialize_artifact
from deletion_guard.errors import BackupError
from deletion_guard.models.backup_artifact import BackupArtifact
from deletion_guard.registry import REGISTRY_VERSION
from deletion_guard.storage.artifacts import LocalArtifactStorage
from deletion_guard.storage.documents import MemoryDocumentStore
from tests.fixtures.events import EVENT_ID, EXPECTED_COUNTS, NOW, FakeClock, seed_data
from tests.fixtures.stores import FailingDocumentStore


class TestBackupWriter:
    """Test suite for BackupWriter."""

    def test_backup_id_uses_millisecond_timestamp(self) -> None:
        """Test the backup id format."""
        assert backup_id_for("evt-1", NOW) == f"event_evt-1_backup_{int(NOW.timestamp() * 1000)}"

    @pytest.mark.asyncio
    async def test_collect_gathers_all_references(self, store: MemoryDocumentStore, clock: FakeClock) -> None:
        """Test the artifact holds the root and every referencing record."""
        writer = BackupWriter(store, AsyncMock(), clock=clock)

        artifact = await writer.collect(EVENT_ID)

        assert artifact.root_document["name"] == "Tech Summit 2025"
        assert artifact.record_counts() == EXPECTED_COUNTS
        assert artifact.registry_version == REGISTRY_VERSION
        assert artifact.created_at == NOW
        assert {u["id"] for u in artifact.collections["users"]} == {"user-1", "user-2"}
        assert "resources" not in artifact.collections

    @pytest.mark.asyncio
    async def test_write_stores_readable_artifact(
        self, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test the stored bytes parse back into the same artifact."""
        writer = BackupWriter(store, artifacts, clock=clock)

        artifact = await writer.write(EVENT_ID)

        data = await artifacts.load(artifact.backup_id)
        assert artifact.size_bytes == len(data)
        parsed = BackupArtifact.from_dict(yaml.safe_load(data))
        assert parsed.target_id == EVENT_ID
        assert parsed.record_counts() == EXPECTED_COUNTS
        assert parsed.collections["registrations"][0]["event"] == EVENT_ID

    @pytest.mark.asyncio
    async def test_write_never_overwrites(
        self, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test two backups in the same millisecond get distinct ids."""
        writer = BackupWriter(store, artifacts, clock=clock)

        first = await writer.write(EVENT_ID)
        second = await writer.write(EVENT_ID)

        assert second.backup_id == f"{first.backup_id}_1"
        assert len(await artifacts.list()) == 2

    @pytest.mark.asyncio
    async def test_missing_event(self, clock: FakeClock) -> None:
        """Test backing up a missing event fails."""
        writer = BackupWriter(MemoryDocumentStore(), AsyncMock(), clock=clock)

        with pytest.raises(BackupError, match="not found"):
            await writer.write(EVENT_ID)

    @pytest.mark.asyncio
    async def test_read_failure(self, clock: FakeClock) -> None:
        """Test a collection read failure aborts the backup."""
        store = FailingDocumentStore(seed_data(), fail_collections={"abstracts"})
        storage = AsyncMock()
        writer = BackupWriter(store, storage, clock=clock)

        with pytest.raises(BackupError) as exc_info:
            await writer.write(EVENT_ID)

        assert exc_info.value.collection == "abstracts"
        storage.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_storage_failure(self, store: MemoryDocumentStore, clock: FakeClock) -> None:
        """Test a storage failure surfaces as BackupError."""
        storage = AsyncMock()
        storage.exists.return_value = False
        storage.save.side_effect = OSError("bucket unavailable")
        writer = BackupWriter(store, storage, clock=clock)

        with pytest.raises(BackupError, match="bucket unavailable"):
            await writer.write(EVENT_ID)

    def test_serialize_keeps_header_first(self) -> None:
        """Test the metadata header is written before the body."""
        artifact = BackupArtifact(
            backup_id="b",
            target_id="e",
            target_name="Ünïcode Summit",
            created_at=NOW,
            root_collection="events",
            root_document={"id": "e"},
        )

        text = serialize_artifact(artifact).decode("utf-8")

        assert text.startswith("metadata:")
        assert "Ünïcode Summit" in text
