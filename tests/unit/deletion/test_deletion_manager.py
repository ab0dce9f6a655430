"""Tests for DeletionManager."""

from __future__ import annotations

import pytest

from deletion_guard.app import Services
from deletion_guard.deletion.backup import BackupWriter
from deletion_guard.deletion.cascade import CascadeDeletionEngine
from deletion_guard.deletion.manager import DeletionManager
from deletion_guard.deletion.requests import REQUESTS_COLLECTION
from deletion_guard.errors import AuthorizationError, BackupError, ConflictError, ExecutionError, NotFoundError
from deletion_guard.models.audit_entry import AuditAction
from deletion_guard.models.deletion_request import RequestStatus
from deletion_guard.storage.documents import MemoryDocumentStore
from tests.fixtures.events import EVENT_ID, EXPECTED_COUNTS, FakeClock, create_actor, seed_data
from tests.fixtures.stores import FailingDocumentStore


@pytest.fixture
def manager(services: Services) -> DeletionManager:
    return services.manager


class TestPreview:
    """Test suite for deletion previews."""

    @pytest.mark.asyncio
    async def test_preview_changes_nothing(
        self, manager: DeletionManager, store: MemoryDocumentStore
    ) -> None:
        """Test preview reports counts and checks without deleting."""
        preview = await manager.preview(EVENT_ID)

        assert preview.target_name == "Tech Summit 2025"
        assert preview.statistics.dry_run is True
        assert preview.statistics.record_counts == EXPECTED_COUNTS
        assert preview.security_checks.has_active_dependents is True
        assert preview.active_request is None
        assert await store.count("events", {"id": EVENT_ID}) == 1

    @pytest.mark.asyncio
    async def test_preview_shows_active_request(self, manager: DeletionManager, services: Services) -> None:
        """Test a pending request is included."""
        request = await services.requests.schedule(EVENT_ID, create_actor(), grace_hours=1)

        preview = await manager.preview(EVENT_ID)

        assert preview.active_request.request_id == request.request_id

    @pytest.mark.asyncio
    async def test_preview_missing_event(self, manager: DeletionManager) -> None:
        """Test previewing an unknown event fails."""
        with pytest.raises(NotFoundError):
            await manager.preview("missing")


class TestForceDelete:
    """Test suite for immediate deletion."""

    @pytest.mark.asyncio
    async def test_force_delete(self, manager: DeletionManager, services: Services, store: MemoryDocumentStore) -> None:
        """Test the event is deleted now, with one audit entry and no request."""
        result = await manager.force_delete(EVENT_ID, create_actor())

        assert result.statistics.record_counts == EXPECTED_COUNTS
        assert result.backup_id is not None
        assert await store.count("events", {"id": EVENT_ID}) == 0
        assert await store.count(REQUESTS_COLLECTION) == 0

        entries = services.audit.storage.query(target_id=EVENT_ID)
        assert [e.action for e in entries] == [AuditAction.FORCE_DELETED]
        assert entries[0].metadata["completion_status"] == "SUCCESS"

    @pytest.mark.asyncio
    async def test_force_delete_skip_backup(self, manager: DeletionManager, services: Services) -> None:
        """Test no artifact is written when skipped."""
        result = await manager.force_delete(EVENT_ID, create_actor(), skip_backup=True)

        assert result.backup_id is None
        assert await services.artifacts.list() == []

    @pytest.mark.asyncio
    async def test_role_required(self, manager: DeletionManager, store: MemoryDocumentStore) -> None:
        """Test non-admin actors are refused."""
        with pytest.raises(AuthorizationError):
            await manager.force_delete(EVENT_ID, create_actor(role="organizer"))

        assert await store.count("events", {"id": EVENT_ID}) == 1

    @pytest.mark.asyncio
    async def test_conflict_with_scheduled_request(self, manager: DeletionManager, services: Services) -> None:
        """Test a pending scheduled deletion blocks force deletion."""
        await services.requests.schedule(EVENT_ID, create_actor(), grace_hours=1)

        with pytest.raises(ConflictError):
            await manager.force_delete(EVENT_ID, create_actor())

    @pytest.mark.asyncio
    async def test_terminal_request_does_not_block(self, manager: DeletionManager, services: Services) -> None:
        """Test a cancelled request leaves the event deletable."""
        request = await services.requests.schedule(EVENT_ID, create_actor(), grace_hours=1)
        await services.requests.cancel(request.request_id, create_actor())

        result = await manager.force_delete(EVENT_ID, create_actor())

        assert result.statistics.total_records == sum(EXPECTED_COUNTS.values())
        assert (await services.requests.get(request.request_id)).status == RequestStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_missing_event(self, manager: DeletionManager) -> None:
        """Test force deleting an unknown event fails."""
        with pytest.raises(NotFoundError):
            await manager.force_delete("missing", create_actor())

    @pytest.mark.asyncio
    async def test_backup_failure_deletes_nothing(self, services: Services, clock: FakeClock) -> None:
        """Test a failed backup aborts before the cascade."""
        store = FailingDocumentStore(seed_data(), fail_collections={"abstracts"}, fail_operations={"find"})
        backups = BackupWriter(store, services.artifacts, clock=clock)
        manager = DeletionManager(
            store, services.requests, services.checker, backups, CascadeDeletionEngine(store, clock=clock), services.audit
        )

        with pytest.raises(BackupError):
            await manager.force_delete(EVENT_ID, create_actor())

        assert await store.count("registrations", {"event": EVENT_ID}) == 3
        assert services.audit.storage.query(target_id=EVENT_ID) == []

    @pytest.mark.asyncio
    async def test_cascade_failure_audited_once(self, services: Services, clock: FakeClock) -> None:
        """Test a partial deletion still produces exactly one audit entry."""
        store = FailingDocumentStore(seed_data(), fail_collections={"payments"}, fail_operations={"delete_many"})
        manager = DeletionManager(
            store,
            services.requests,
            services.checker,
            services.backups,
            CascadeDeletionEngine(store, clock=clock),
            services.audit,
        )

        with pytest.raises(ExecutionError):
            await manager.force_delete(EVENT_ID, create_actor(), skip_backup=True)

        entries = services.audit.storage.query(target_id=EVENT_ID)
        assert len(entries) == 1
        assert entries[0].metadata["completion_status"] == "FAILED"
        assert entries[0].details["statistics"]["record_counts"] == {"registrations": 3}


class TestDeletionStatus:
    """Test suite for status lookups."""

    @pytest.mark.asyncio
    async def test_status_is_audited(self, manager: DeletionManager, services: Services) -> None:
        """Test every lookup leaves an access entry."""
        request = await services.requests.schedule(EVENT_ID, create_actor(), grace_hours=1)

        found = await manager.deletion_status(EVENT_ID, create_actor())

        assert found.request_id == request.request_id
        access = [
            e for e in services.audit.storage.query(target_id=EVENT_ID) if e.action == AuditAction.STATUS_ACCESSED
        ]
        assert access[0].details["has_scheduled_deletion"] is True

    @pytest.mark.asyncio
    async def test_status_without_request(self, manager: DeletionManager, services: Services) -> None:
        """Test lookups for events without requests return None."""
        assert await manager.deletion_status(EVENT_ID, create_actor()) is None
