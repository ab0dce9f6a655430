"""Tests for RecoveryService."""

from __future__ import annotations

import pytest

from deletion_guard.deletion.backup import BackupWriter
from deletion_guard.deletion.cascade import CascadeDeletionEngine
from deletion_guard.deletion.recovery import RecoveryService
from deletion_guard.errors import BackupReadError, DeletionGuardError, NotFoundError, PartialFailureError
from deletion_guard.models.backup_artifact import BackupArtifact
from deletion_guard.storage.artifacts import LocalArtifactStorage
from deletion_guard.storage.documents import MemoryDocumentStore
from tests.fixtures.events import EVENT_ID, EXPECTED_COUNTS, NOW, OTHER_EVENT_ID, FakeClock, seed_data
from tests.fixtures.stores import FailingDocumentStore


async def backup_and_delete(store, artifacts, clock, target_id: str = EVENT_ID) -> BackupArtifact:
    artifact = await BackupWriter(store, artifacts, clock=clock).write(target_id)
    await CascadeDeletionEngine(store, clock=clock).run(target_id)
    return artifact


@pytest.fixture
def recovery(store: MemoryDocumentStore, artifacts: LocalArtifactStorage) -> RecoveryService:
    return RecoveryService(store, artifacts)


class TestResolveAndRead:
    """Test suite for locating and reading artifacts."""

    @pytest.mark.asyncio
    async def test_partial_id(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test a unique substring resolves to the full id."""
        artifact = await BackupWriter(store, artifacts, clock=clock).write(EVENT_ID)

        assert await recovery.resolve_id("evt-1_backup") == artifact.backup_id

    @pytest.mark.asyncio
    async def test_ambiguous_id(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test a substring matching several artifacts is rejected."""
        writer = BackupWriter(store, artifacts, clock=clock)
        await writer.write(EVENT_ID)
        await writer.write(OTHER_EVENT_ID)

        with pytest.raises(DeletionGuardError, match="ambiguous") as exc_info:
            await recovery.resolve_id("backup")

        assert len(exc_info.value.details["matches"]) == 2

    @pytest.mark.asyncio
    async def test_unknown_id(self, recovery: RecoveryService) -> None:
        """Test an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await recovery.read("nothing")

    @pytest.mark.asyncio
    async def test_corrupt_artifact(self, recovery: RecoveryService, artifacts: LocalArtifactStorage) -> None:
        """Test an unparseable artifact raises BackupReadError."""
        await artifacts.save("broken", b"collections: {}\n")

        with pytest.raises(BackupReadError):
            await recovery.read("broken")

    @pytest.mark.asyncio
    async def test_list_backups_newest_first(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test listing order and that unreadable artifacts are skipped."""
        writer = BackupWriter(store, artifacts, clock=clock)
        older = await writer.write(EVENT_ID)
        clock.advance(minutes=5)
        newer = await writer.write(OTHER_EVENT_ID)
        await artifacts.save("garbage", b"not: [valid")

        summaries = await recovery.list_backups()

        assert [s.backup_id for s in summaries] == [newer.backup_id, older.backup_id]
        assert summaries[1].record_counts == EXPECTED_COUNTS
        assert summaries[1].total_records == sum(EXPECTED_COUNTS.values())

    @pytest.mark.asyncio
    async def test_details(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test details list the event and each collection with a sample."""
        artifact = await BackupWriter(store, artifacts, clock=clock).write(EVENT_ID)

        details = await recovery.details(artifact.backup_id)

        assert details.collections[0].collection == "events"
        by_name = {c.collection: c for c in details.collections}
        assert by_name["registrations"].record_count == 3
        assert by_name["registrations"].sample_record["id"] == "reg-1"
        assert details.summary.created_at == NOW
        assert details.format_version == "1.0"


class TestRestore:
    """Test suite for restoring artifacts."""

    @pytest.mark.asyncio
    async def test_restore_after_deletion(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test every deleted record comes back."""
        artifact = await backup_and_delete(store, artifacts, clock)

        result = await recovery.restore(artifact.backup_id)

        assert result.has_errors is False
        assert result.collection_counts == EXPECTED_COUNTS
        assert result.records_restored == sum(EXPECTED_COUNTS.values())
        assert await store.count("events", {"id": EVENT_ID}) == 1
        assert await store.count("registrations", {"event": EVENT_ID}) == 3
        user = await store.find_one("users", {"id": "user-1"})
        assert user["active_event"] == EVENT_ID

    @pytest.mark.asyncio
    async def test_restore_is_idempotent(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test a second restore skips everything."""
        artifact = await backup_and_delete(store, artifacts, clock)
        await recovery.restore(artifact.backup_id)

        result = await recovery.restore(artifact.backup_id)

        assert result.records_restored == 0
        assert result.records_skipped == sum(EXPECTED_COUNTS.values())
        assert await store.count("registrations", {"event": EVENT_ID}) == 3

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test a dry run only counts."""
        artifact = await backup_and_delete(store, artifacts, clock)

        result = await recovery.restore(artifact.backup_id, dry_run=True)

        assert result.dry_run is True
        assert result.records_restored == sum(EXPECTED_COUNTS.values())
        assert await store.count("events", {"id": EVENT_ID}) == 0
        assert "active_event" not in await store.find_one("users", {"id": "user-1"})

    @pytest.mark.asyncio
    async def test_restore_selected_collections(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test only the requested collections are restored."""
        artifact = await backup_and_delete(store, artifacts, clock)

        result = await recovery.restore(artifact.backup_id, collections=["registrations", "not_in_backup"])

        assert result.collection_counts == {"registrations": 3}
        assert await store.count("events", {"id": EVENT_ID}) == 0

    @pytest.mark.asyncio
    async def test_restore_under_new_id(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test references are rewritten to the new event id."""
        artifact = await BackupWriter(store, artifacts, clock=clock).write(EVENT_ID)
        await store.delete_many("registrations", {"event": EVENT_ID})
        await store.delete_many("event_templates", {})

        result = await recovery.restore(artifact.backup_id, new_target_id="evt-copy")

        assert result.target_id == "evt-copy"
        copy_event = await store.find_one("events", {"id": "evt-copy"})
        assert copy_event["name"] == "Tech Summit 2025"
        assert await store.count("registrations", {"event": "evt-copy"}) == 3
        template = await store.find_one("event_templates", {"id": "tpl-1"})
        assert template["base_event"] == "evt-copy"
        assert (await store.find_one("users", {"id": "user-1"}))["active_event"] == "evt-copy"
        assert await store.count("events", {"id": EVENT_ID}) == 1

    @pytest.mark.asyncio
    async def test_overwrite_existing(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test skip_existing=False replaces current records."""
        artifact = await BackupWriter(store, artifacts, clock=clock).write(EVENT_ID)
        await store.update_many("registrations", {"id": "reg-1"}, set_fields={"name": "Changed"})

        await recovery.restore(artifact.backup_id, collections=["registrations"], skip_existing=False)

        assert (await store.find_one("registrations", {"id": "reg-1"}))["name"] == "Asha"

    @pytest.mark.asyncio
    async def test_deleted_users_are_not_recreated(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test reference restore skips users that no longer exist."""
        artifact = await backup_and_delete(store, artifacts, clock)
        await store.delete_many("users", {"id": "user-2"})

        result = await recovery.restore(artifact.backup_id, collections=["users"])

        assert result.collection_counts == {"users": 1}
        assert await store.find_one("users", {"id": "user-2"}) is None

    @pytest.mark.asyncio
    async def test_collection_failure_is_reported(
        self, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test a failing collection is listed and the rest still restore."""
        source = MemoryDocumentStore(seed_data())
        artifact = await backup_and_delete(source, artifacts, clock)
        target = FailingDocumentStore(fail_collections={"payments"})
        recovery = RecoveryService(target, artifacts)

        result = await recovery.restore(artifact.backup_id)

        assert [e.collection for e in result.errors] == ["payments"]
        assert await target.count("registrations", {"event": EVENT_ID}) == 3
        with pytest.raises(PartialFailureError):
            result.raise_for_errors()

    @pytest.mark.asyncio
    async def test_delete_backup(
        self, recovery: RecoveryService, store: MemoryDocumentStore, artifacts: LocalArtifactStorage, clock: FakeClock
    ) -> None:
        """Test deleting removes the artifact and returns its summary."""
        artifact = await BackupWriter(store, artifacts, clock=clock).write(EVENT_ID)

        summary = await recovery.delete(artifact.backup_id)

        assert summary.backup_id == artifact.backup_id
        assert await artifacts.list() == []
