"""Notification dispatch for deletion lifecycle events.

Delivery is best effort: a failing notifier is logged and audited but never
aborts the transition that triggered it.
"""

from __future__ import annotations

import logging
from enum import Enum
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from ..models.deletion_request import DeletionRequest
from ..utils.timeutil import utc_now

if TYPE_CHECKING:
    from .audit import AuditLogService

logger = logging.getLogger(__name__)


class NotificationKind(Enum):
    SCHEDULED = "scheduled"
    REMINDER_30MIN = "reminder_30min"
    REMINDER_5MIN = "reminder_5min"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@runtime_checkable
class Notifier(Protocol):
    """Delivers a lifecycle notification about a deletion request."""

    async def notify(self, kind: NotificationKind, request: DeletionRequest) -> None: ...


class LoggingNotifier:
    """Notifier that writes each notification to the log."""

    LEVELS = {
        NotificationKind.SCHEDULED: logging.WARNING,
        NotificationKind.REMINDER_30MIN: logging.WARNING,
        NotificationKind.REMINDER_5MIN: logging.ERROR,
        NotificationKind.COMPLETED: logging.WARNING,
        NotificationKind.FAILED: logging.ERROR,
        NotificationKind.CANCELLED: logging.INFO,
    }

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    async def notify(self, kind: NotificationKind, request: DeletionRequest) -> None:
        remaining = request.remaining_time_formatted(self._clock())
        messages = {
            NotificationKind.SCHEDULED: f"Deletion of '{request.target.name}' scheduled, executes in {remaining}",
            NotificationKind.REMINDER_30MIN: f"'{request.target.name}' will be permanently deleted in {remaining}",
            NotificationKind.REMINDER_5MIN: f"FINAL WARNING: '{request.target.name}' will be deleted in {remaining}",
            NotificationKind.COMPLETED: f"'{request.target.name}' was permanently deleted",
            NotificationKind.FAILED: f"Deletion of '{request.target.name}' failed, manual cleanup required",
            NotificationKind.CANCELLED: f"Deletion of '{request.target.name}' was cancelled",
        }
        logger.log(self.LEVELS[kind], "[NOTIFY %s] %s (request %s)", kind.value, messages[kind], request.request_id)


async def notify_best_effort(
    notifier: Notifier,
    kind: NotificationKind,
    request: DeletionRequest,
    audit: "AuditLogService",
) -> bool:
    """Send a notification, auditing instead of raising on failure.

    Returns:
        True if the notifier accepted the notification
    """
    try:
        await notifier.notify(kind, request)
    except Exception as e:
        logger.error("Notification %s failed for request %s: %s", kind.value, request.request_id, e)
        await audit.log_notification_failed(request, kind.value, e)
        return False
    return True
