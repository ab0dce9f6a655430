"""Integration tests for the event-deletion CLI."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest
import yaml
from typer.testing import CliRunner

from deletion_guard.cli.main import app
from tests.fixtures.events import EVENT_ID, OTHER_EVENT_ID, seed_data

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's config file and environment out of CLI runs."""
    monkeypatch.setattr("deletion_guard.cli.config.DEFAULT_CONFIG_FILE", tmp_path / "missing.yaml")
    for name in ("EVENT_DELETION_STORAGE_PATH", "EVENT_DELETION_ARTIFACT_BACKEND", "EVENT_DELETION_DEFAULT_GRACE_HOURS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def storage_path(tmp_path: Path) -> Path:
    """Storage directory seeded with event data files."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    for collection, documents in seed_data().items():
        (data_dir / f"{collection}.yaml").write_text(yaml.safe_dump(documents, sort_keys=False))
    return tmp_path


def invoke(runner: CliRunner, storage_path: Path, args: List[str], input: Optional[str] = None):
    return runner.invoke(app, ["--storage-path", str(storage_path), *args], input=input)


def load_collection(storage_path: Path, collection: str) -> list:
    path = storage_path / "data" / f"{collection}.yaml"
    if not path.exists():
        return []
    return yaml.safe_load(path.read_text()) or []


def only_request_id(storage_path: Path) -> str:
    requests = load_collection(storage_path, "deletion_requests")
    assert len(requests) == 1
    return requests[0]["id"]


class TestDeletionCommands:
    """Test suite for the deletion command group."""

    def test_preview(self, runner: CliRunner, storage_path: Path) -> None:
        """Test preview shows counts and leaves data alone."""
        result = invoke(runner, storage_path, ["deletion", "preview", EVENT_ID])

        assert result.exit_code == 0
        assert "DRY RUN" in result.stdout
        assert "Total records: 10" in result.stdout
        assert len(load_collection(storage_path, "events")) == 2

    def test_preview_unknown_event(self, runner: CliRunner, storage_path: Path) -> None:
        """Test previewing a missing event exits with an error."""
        result = invoke(runner, storage_path, ["deletion", "preview", "missing"])

        assert result.exit_code == 1
        assert "Event not found" in result.stdout

    def test_schedule_and_cancel(self, runner: CliRunner, storage_path: Path) -> None:
        """Test the schedule, status, cancel cycle."""
        result = invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID, "--grace-hours", "2"])
        assert result.exit_code == 0
        assert "scheduled" in result.stdout
        request_id = only_request_id(storage_path)

        status = invoke(runner, storage_path, ["deletion", "status", EVENT_ID])
        assert status.exit_code == 0
        assert request_id in status.stdout
        assert "Remaining" in status.stdout

        cancel = invoke(runner, storage_path, ["deletion", "cancel", request_id, "--reason", "wrong event"])
        assert cancel.exit_code == 0
        assert "cancelled" in cancel.stdout
        assert load_collection(storage_path, "deletion_requests")[0]["status"] == "cancelled"

        again = invoke(runner, storage_path, ["deletion", "cancel", request_id])
        assert again.exit_code == 1

    def test_schedule_conflict(self, runner: CliRunner, storage_path: Path) -> None:
        """Test a second schedule for the same event fails."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])

        result = invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])

        assert result.exit_code == 1
        assert "already has an active deletion request" in result.stdout

    def test_schedule_rejects_bad_grace_period(self, runner: CliRunner, storage_path: Path) -> None:
        """Test grace periods outside the allowed range are refused."""
        result = invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID, "--grace-hours", "500"])

        assert result.exit_code == 1
        assert "grace_hours" in result.stdout
        assert load_collection(storage_path, "deletion_requests") == []

    def test_list_and_status_filter(self, runner: CliRunner, storage_path: Path) -> None:
        """Test listing requests and rejecting unknown statuses."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])
        invoke(runner, storage_path, ["deletion", "schedule", OTHER_EVENT_ID])

        result = invoke(runner, storage_path, ["deletion", "list", "--status", "scheduled"])
        assert result.exit_code == 0
        assert "Deletion Requests" in result.stdout

        bad = invoke(runner, storage_path, ["deletion", "list", "--status", "paused"])
        assert bad.exit_code == 1
        assert "Invalid status" in bad.stdout

    def test_force_process(self, runner: CliRunner, storage_path: Path) -> None:
        """Test a scheduled request can be executed immediately."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID, "--grace-hours", "24"])
        request_id = only_request_id(storage_path)

        result = invoke(runner, storage_path, ["deletion", "force-process", request_id])

        assert result.exit_code == 0
        assert "completed" in result.stdout
        assert [e["id"] for e in load_collection(storage_path, "events")] == [OTHER_EVENT_ID]
        assert len(list((storage_path / "backups").glob("*.yaml"))) == 1

    def test_force_delete(self, runner: CliRunner, storage_path: Path) -> None:
        """Test immediate deletion by an admin."""
        result = invoke(runner, storage_path, ["deletion", "force-delete", EVENT_ID, "--yes"])

        assert result.exit_code == 0
        assert "deleted: 10 records" in result.stdout
        assert load_collection(storage_path, "deletion_requests") == []

    def test_force_delete_requires_admin(self, runner: CliRunner, storage_path: Path) -> None:
        """Test non-admin roles are refused."""
        result = invoke(
            runner, storage_path, ["deletion", "force-delete", EVENT_ID, "--yes", "--actor-role", "organizer"]
        )

        assert result.exit_code == 1
        assert "may not force-delete" in result.stdout
        assert len(load_collection(storage_path, "events")) == 2

    def test_force_delete_declined(self, runner: CliRunner, storage_path: Path) -> None:
        """Test answering no to the confirmation keeps the event."""
        result = invoke(runner, storage_path, ["deletion", "force-delete", EVENT_ID], input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.stdout
        assert len(load_collection(storage_path, "events")) == 2

    def test_mark_failed_requires_executing(self, runner: CliRunner, storage_path: Path) -> None:
        """Test only stuck requests can be marked failed."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])
        request_id = only_request_id(storage_path)

        result = invoke(runner, storage_path, ["deletion", "mark-failed", request_id, "--reason", "stuck"])

        assert result.exit_code == 1


class TestBackupCommands:
    """Test suite for the backup command group."""

    @pytest.fixture
    def backup_id(self, runner: CliRunner, storage_path: Path) -> str:
        """Force-delete the event so one backup exists."""
        invoke(runner, storage_path, ["deletion", "force-delete", EVENT_ID, "--yes"])
        return next((storage_path / "backups").glob("*.yaml")).stem

    def test_list(self, runner: CliRunner, storage_path: Path, backup_id: str) -> None:
        """Test backups are listed."""
        result = invoke(runner, storage_path, ["backup", "list"])

        assert result.exit_code == 0
        assert "Total: 1 backup(s)" in result.stdout

    def test_list_empty(self, runner: CliRunner, storage_path: Path) -> None:
        """Test listing with no backups."""
        result = invoke(runner, storage_path, ["backup", "list"])

        assert result.exit_code == 0
        assert "No backups found" in result.stdout

    def test_details(self, runner: CliRunner, storage_path: Path, backup_id: str) -> None:
        """Test per-collection details."""
        result = invoke(runner, storage_path, ["backup", "details", backup_id])

        assert result.exit_code == 0
        assert "registrations" in result.stdout
        assert "Total records: 10" in result.stdout

    def test_restore_dry_run_then_restore(self, runner: CliRunner, storage_path: Path, backup_id: str) -> None:
        """Test a dry run writes nothing and a restore brings the event back."""
        dry = invoke(runner, storage_path, ["backup", "restore", backup_id, "--dry-run"])
        assert dry.exit_code == 0
        assert "[DRY RUN]" in dry.stdout
        assert [e["id"] for e in load_collection(storage_path, "events")] == [OTHER_EVENT_ID]

        result = invoke(runner, storage_path, ["backup", "restore", "evt-1_backup"])
        assert result.exit_code == 0
        assert "Records restored: 10" in result.stdout
        assert "Restore complete" in result.stdout
        assert {e["id"] for e in load_collection(storage_path, "events")} == {EVENT_ID, OTHER_EVENT_ID}

    def test_restore_unknown_backup(self, runner: CliRunner, storage_path: Path) -> None:
        """Test restoring a missing backup fails."""
        result = invoke(runner, storage_path, ["backup", "restore", "nothing"])

        assert result.exit_code == 1
        assert "Backup not found" in result.stdout

    def test_delete(self, runner: CliRunner, storage_path: Path, backup_id: str) -> None:
        """Test deleting a backup removes the artifact."""
        result = invoke(runner, storage_path, ["backup", "delete", backup_id, "--yes"])

        assert result.exit_code == 0
        assert "Deleted backup" in result.stdout
        assert list((storage_path / "backups").glob("*.yaml")) == []


class TestAuditAndWorkerCommands:
    """Test suite for the audit and worker command groups."""

    def test_audit_trail(self, runner: CliRunner, storage_path: Path) -> None:
        """Test the trail lists recorded actions."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])

        result = invoke(runner, storage_path, ["audit", "trail", EVENT_ID])

        assert result.exit_code == 0
        assert "Audit Trail" in result.stdout
        assert "scheduled" in result.stdout

    def test_audit_summary(self, runner: CliRunner, storage_path: Path) -> None:
        """Test the summary totals activity."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])

        result = invoke(runner, storage_path, ["audit", "summary", "--days", "7"])

        assert result.exit_code == 0
        assert "Total activities: 2" in result.stdout

    def test_audit_alerts(self, runner: CliRunner, storage_path: Path) -> None:
        """Test alerts appear once an actor crosses the threshold."""
        quiet = invoke(runner, storage_path, ["audit", "alerts"])
        assert quiet.exit_code == 0
        assert "No suspicious deletion activity" in quiet.stdout

        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])
        invoke(runner, storage_path, ["deletion", "schedule", OTHER_EVENT_ID])

        result = invoke(runner, storage_path, ["audit", "alerts", "--threshold", "2"])
        assert result.exit_code == 0
        assert "MULTIPLE_DELETIONS" in result.stdout
        assert "operator@localhost" in result.stdout

    def test_worker_run_once(self, runner: CliRunner, storage_path: Path) -> None:
        """Test a single executor tick."""
        invoke(runner, storage_path, ["deletion", "schedule", EVENT_ID])

        result = invoke(runner, storage_path, ["worker", "run", "--once"])

        assert result.exit_code == 0
        assert "Processed 0 deletion(s)" in result.stdout

    def test_version(self, runner: CliRunner) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "event-deletion-guard version" in result.stdout
