"""Tests for notification dispatch."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from deletion_guard.deletion.audit import AuditLogService
from deletion_guard.deletion.notifications import LoggingNotifier, NotificationKind, notify_best_effort
from deletion_guard.models.audit_entry import AuditAction, AuditCategory
from deletion_guard.models.deletion_request import DeletionRequest, TargetSnapshot
from tests.fixtures.events import EVENT_ID, NOW, FailingNotifier, FakeClock, RecordingNotifier, create_actor


@pytest.fixture
def request_() -> DeletionRequest:
    return DeletionRequest(
        request_id="req-1",
        target_id=EVENT_ID,
        target=TargetSnapshot(name="Tech Summit"),
        scheduled_at=NOW,
        grace_hours=1,
        initiator=create_actor(),
    )


class TestNotifyBestEffort:
    """Test suite for notify_best_effort."""

    @pytest.mark.asyncio
    async def test_success(self, request_: DeletionRequest, audit: AuditLogService) -> None:
        """Test a delivered notification returns True."""
        notifier = RecordingNotifier()

        assert await notify_best_effort(notifier, NotificationKind.SCHEDULED, request_, audit) is True
        assert notifier.sent == [(NotificationKind.SCHEDULED, "req-1")]

    @pytest.mark.asyncio
    async def test_failure_is_audited_not_raised(self, request_: DeletionRequest, audit: AuditLogService) -> None:
        """Test a failing notifier is audited and reported as False."""
        delivered = await notify_best_effort(FailingNotifier(), NotificationKind.COMPLETED, request_, audit)

        assert delivered is False
        entries = audit.storage.query(target_id=EVENT_ID)
        assert entries[0].action == AuditAction.NOTIFICATION_FAILED
        assert entries[0].category == AuditCategory.NOTIFICATION
        assert entries[0].details["error"]["message"] == "smtp unavailable"
        assert entries[0].actor is None


class TestLoggingNotifier:
    """Test suite for LoggingNotifier."""

    @pytest.mark.asyncio
    async def test_final_warning_logged_as_error(
        self, request_: DeletionRequest, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test the 5 minute reminder is logged at ERROR level."""
        with caplog.at_level(logging.INFO, logger="deletion_guard.deletion.notifications"):
            await LoggingNotifier().notify(NotificationKind.REMINDER_5MIN, request_)

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "FINAL WARNING" in record.getMessage()
        assert "req-1" in record.getMessage()

    @pytest.mark.asyncio
    async def test_remaining_time_uses_injected_clock(
        self, request_: DeletionRequest, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test the remaining time is measured against the notifier's clock."""
        notifier = LoggingNotifier(clock=FakeClock(NOW + timedelta(minutes=20)))

        with caplog.at_level(logging.INFO, logger="deletion_guard.deletion.notifications"):
            await notifier.notify(NotificationKind.SCHEDULED, request_)

        assert "executes in 40m 0s" in caplog.records[-1].getMessage()
