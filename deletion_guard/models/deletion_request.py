"""Deletion request model.

Represents one scheduled deletion of a target event, from scheduling through
cancellation or execution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import InvalidStateError
from ..utils.timeutil import format_duration, parse_datetime, to_iso
from .actor import Actor
from .deletion_statistics import DeletionStatistics
from .security_check import SecurityCheckResult


class RequestStatus(Enum):
    """Deletion request status with state transitions."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RequestStatus.CANCELLED, RequestStatus.COMPLETED, RequestStatus.FAILED})

ACTIVE_STATUSES = frozenset({RequestStatus.SCHEDULED, RequestStatus.EXECUTING})

ALLOWED_TRANSITIONS: Dict[RequestStatus, frozenset] = {
    RequestStatus.SCHEDULED: frozenset({RequestStatus.CANCELLED, RequestStatus.EXECUTING}),
    RequestStatus.EXECUTING: frozenset({RequestStatus.COMPLETED, RequestStatus.FAILED}),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.FAILED: frozenset(),
}


@dataclass
class TargetSnapshot:
    """Target metadata cached at schedule time.

    Kept on the request so it can still be displayed after the target and
    its dependents are gone.
    """

    name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    dependent_count: int = 0
    venue: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "start_date": to_iso(self.start_date),
            "end_date": to_iso(self.end_date),
            "dependent_count": self.dependent_count,
            "venue": dict(self.venue),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetSnapshot":
        return cls(
            name=data.get("name") or "Unknown Event",
            start_date=parse_datetime(data.get("start_date")),
            end_date=parse_datetime(data.get("end_date")),
            dependent_count=data.get("dependent_count", 0),
            venue=dict(data.get("venue") or {}),
            description=data.get("description"),
        )


@dataclass
class NotificationFlags:
    """Which notifications were already dispatched for a request."""

    scheduled: bool = False
    reminder_30min: bool = False
    reminder_5min: bool = False
    completed: bool = False
    failed: bool = False
    cancelled: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "scheduled": self.scheduled,
            "reminder_30min": self.reminder_30min,
            "reminder_5min": self.reminder_5min,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NotificationFlags":
        data = data or {}
        return cls(**{key: bool(data.get(key, False)) for key in cls().to_dict()})


@dataclass
class DeletionRequest:
    """Deletion request entity.

    State transitions:
        scheduled → cancelled
        scheduled → executing → completed
        scheduled → executing → failed

    Terminal requests (cancelled, completed, failed) are never modified again
    except by retention cleanup, which removes them entirely.

    Attributes:
        request_id: Unique identifier for the request
        target_id: Identifier of the event to delete
        target: Cached target metadata
        scheduled_at: When deletion was scheduled
        grace_hours: Grace period length in hours
        execute_at: scheduled_at + grace_hours
        status: Current status
        initiator: Who scheduled the deletion
        cancelled_by: Who cancelled it (optional)
        cancellation_reason: Why it was cancelled (optional)
        cancelled_at: When it was cancelled (optional)
        execution_started_at: When the executor picked it up (optional)
        execution_completed_at: When the cascade finished (optional)
        execution_failed_at: When execution failed (optional)
        execution_error: Captured failure details (optional)
        statistics: Cascade statistics, partial on failure (optional)
        security_checks: Risk flags computed at schedule time (optional)
        notifications: Notification-sent flags
        skip_backup: Operator opted out of the pre-deletion backup
        backup_id: Artifact written before deletion (optional)
        is_deleted: Soft-delete flag hiding the request from queries
    """

    request_id: str
    target_id: str
    target: TargetSnapshot
    scheduled_at: datetime
    grace_hours: float
    initiator: Actor
    status: RequestStatus = RequestStatus.SCHEDULED
    execute_at: Optional[datetime] = None
    cancelled_by: Optional[Actor] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    execution_started_at: Optional[datetime] = None
    execution_completed_at: Optional[datetime] = None
    execution_failed_at: Optional[datetime] = None
    execution_error: Optional[Dict[str, Any]] = None
    statistics: Optional[DeletionStatistics] = None
    security_checks: Optional[SecurityCheckResult] = None
    notifications: NotificationFlags = field(default_factory=NotificationFlags)
    skip_backup: bool = False
    backup_id: Optional[str] = None
    is_deleted: bool = False

    def __post_init__(self) -> None:
        """Derive execute_at from the grace period."""
        if self.execute_at is None:
            self.execute_at = self.scheduled_at + timedelta(hours=self.grace_hours)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_expired(self, now: datetime) -> bool:
        """Check whether the grace period has elapsed."""
        return now >= self.execute_at

    def can_be_cancelled(self, now: datetime) -> bool:
        return self.status == RequestStatus.SCHEDULED and not self.is_expired(now)

    def remaining_time(self, now: datetime) -> timedelta:
        """Time left until execution, never negative."""
        return max(timedelta(0), self.execute_at - now)

    def remaining_time_formatted(self, now: datetime) -> str:
        return format_duration(self.remaining_time(now))

    def transition_to(self, new_status: RequestStatus) -> None:
        """Move to a new status, enforcing the allowed transitions.

        Raises:
            InvalidStateError: If the transition is not allowed
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateError(
                self.request_id,
                self.status.value,
                f"move to '{new_status.value}'",
            )
        self.status = new_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert request to a document for the request store."""
        return {
            "id": self.request_id,
            "target_id": self.target_id,
            "target": self.target.to_dict(),
            "scheduled_at": to_iso(self.scheduled_at),
            "grace_hours": self.grace_hours,
            "execute_at": to_iso(self.execute_at),
            "status": self.status.value,
            "initiator": self.initiator.to_dict(),
            "cancelled_by": self.cancelled_by.to_dict() if self.cancelled_by else None,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": to_iso(self.cancelled_at),
            "execution_started_at": to_iso(self.execution_started_at),
            "execution_completed_at": to_iso(self.execution_completed_at),
            "execution_failed_at": to_iso(self.execution_failed_at),
            "execution_error": self.execution_error,
            "statistics": self.statistics.to_dict() if self.statistics else None,
            "security_checks": self.security_checks.to_dict() if self.security_checks else None,
            "notifications": self.notifications.to_dict(),
            "skip_backup": self.skip_backup,
            "backup_id": self.backup_id,
            "is_deleted": self.is_deleted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeletionRequest":
        """Create request from a stored document."""
        initiator = Actor.from_dict(data.get("initiator")) or Actor(id="unknown")
        return cls(
            request_id=data["id"],
            target_id=data["target_id"],
            target=TargetSnapshot.from_dict(data.get("target") or {}),
            scheduled_at=parse_datetime(data["scheduled_at"]),
            grace_hours=float(data["grace_hours"]),
            execute_at=parse_datetime(data.get("execute_at")),
            status=RequestStatus(data.get("status", "scheduled")),
            initiator=initiator,
            cancelled_by=Actor.from_dict(data.get("cancelled_by")),
            cancellation_reason=data.get("cancellation_reason"),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
            execution_started_at=parse_datetime(data.get("execution_started_at")),
            execution_completed_at=parse_datetime(data.get("execution_completed_at")),
            execution_failed_at=parse_datetime(data.get("execution_failed_at")),
            execution_error=data.get("execution_error"),
            statistics=DeletionStatistics.from_dict(data.get("statistics")),
            security_checks=SecurityCheckResult.from_dict(data.get("security_checks")),
            notifications=NotificationFlags.from_dict(data.get("notifications")),
            skip_backup=data.get("skip_backup", False),
            backup_id=data.get("backup_id"),
            is_deleted=data.get("is_deleted", False),
        )
