"""Audit entry model for the append-only deletion trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.timeutil import parse_datetime, to_iso
from .actor import Actor


class AuditAction(Enum):
    """Kinds of lifecycle transitions recorded in the trail."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    FORCE_DELETED = "force-deleted"
    STATUS_ACCESSED = "status-accessed"
    SECURITY_CHECKED = "security-checked"
    NOTIFICATION_FAILED = "notification-failed"


class AuditSeverity(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditCategory(Enum):
    SECURITY = "SECURITY"
    ACCESS = "ACCESS"
    NOTIFICATION = "NOTIFICATION"


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one lifecycle transition.

    Details carry enough context (actor, target snapshot, timing, statistics,
    security flags) to reconstruct what happened without consulting mutable
    application state.

    Attributes:
        entry_id: Unique identifier for the entry
        action: Transition kind
        target_id: Event the transition concerns
        timestamp: When the entry was created (UTC)
        severity: LOW, MEDIUM, HIGH or CRITICAL
        category: SECURITY, ACCESS or NOTIFICATION
        actor: Who caused the transition (optional for system actions)
        details: Structured forensic payload
        metadata: Cross-references such as the request id
    """

    entry_id: str
    action: AuditAction
    target_id: str
    timestamp: datetime
    severity: AuditSeverity
    category: AuditCategory
    actor: Optional[Actor] = None
    details: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def actor_key(self) -> str:
        """Identity used to group entries by actor."""
        if self.actor is None:
            return "system"
        if self.actor.email and self.actor.email != "Unknown":
            return self.actor.email
        return self.actor.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "action": self.action.value,
            "target_id": self.target_id,
            "timestamp": to_iso(self.timestamp),
            "severity": self.severity.value,
            "category": self.category.value,
            "actor": self.actor.to_dict() if self.actor else None,
            "details": self.details,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            entry_id=data["entry_id"],
            action=AuditAction(data["action"]),
            target_id=str(data["target_id"]),
            timestamp=parse_datetime(data["timestamp"]),
            severity=AuditSeverity(data["severity"]),
            category=AuditCategory(data["category"]),
            actor=Actor.from_dict(data.get("actor")),
            details=data.get("details") or {},
            metadata=data.get("metadata") or {},
        )
