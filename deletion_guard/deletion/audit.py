"""Audit trail for deletion lifecycle transitions.

Entries are stored as YAML files organized by year/month, one file per entry,
and mirrored to the logging stream at a severity-appropriate level.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from ..errors import AuditWriteError
from ..models.actor import Actor
from ..models.audit_entry import AuditAction, AuditCategory, AuditEntry, AuditSeverity
from ..models.deletion_request import DeletionRequest
from ..models.deletion_statistics import DeletionStatistics
from ..models.security_check import SecurityCheckResult
from ..utils.timeutil import ensure_utc, to_iso, utc_now

logger = logging.getLogger(__name__)

SEVERITY_LOG_LEVELS = {
    AuditSeverity.CRITICAL: logging.ERROR,
    AuditSeverity.HIGH: logging.WARNING,
    AuditSeverity.MEDIUM: logging.INFO,
    AuditSeverity.LOW: logging.DEBUG,
}

# Actions counted by suspicious-activity detection
DESTRUCTIVE_ACTIONS = frozenset({AuditAction.SCHEDULED, AuditAction.FORCE_DELETED})


class AuditStorage:
    """Audit entry storage and retrieval.

    Storage structure:
        <storage_dir>/
            2025/
                11/
                    audit-20251104T101500123456-<entry_id>.yaml

    Files are created exclusively and never rewritten.

    Attributes:
        storage_dir: Base directory for audit entries
    """

    def __init__(self, storage_dir: Optional[str] = None) -> None:
        """Initialize audit storage.

        Args:
            storage_dir: Base directory for audit entries (default: ~/.event-deletion/audit-logs)
        """
        if storage_dir is None:
            storage_dir = str(Path.home() / ".event-deletion" / "audit-logs")

        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def write(self, entry: AuditEntry) -> Path:
        """Persist one entry.

        Args:
            entry: Entry to write

        Returns:
            Path of the written file

        Raises:
            FileExistsError: If an entry with the same id was already written
            OSError: If the file cannot be written
        """
        timestamp = ensure_utc(entry.timestamp)
        year_month_dir = self.storage_dir / str(timestamp.year) / f"{timestamp.month:02d}"
        year_month_dir.mkdir(parents=True, exist_ok=True)

        audit_data = {
            "metadata": {
                "version": "1.0",
                "log_type": "event_deletion",
            },
            "entry": entry.to_dict(),
        }

        audit_file = year_month_dir / f"audit-{timestamp.strftime('%Y%m%dT%H%M%S%f')}-{entry.entry_id}.yaml"
        with open(audit_file, "x") as f:
            yaml.safe_dump(audit_data, f, default_flow_style=False, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())
        return audit_file

    def query(self, since: Optional[datetime] = None, target_id: Optional[str] = None) -> List[AuditEntry]:
        """Load entries, oldest first.

        Args:
            since: Only entries at or after this time, None for all
            target_id: Only entries for this target, None for all

        Returns:
            Matching entries; unreadable files are skipped with a warning
        """
        results = []

        for year_dir in sorted(self.storage_dir.glob("*")):
            if not year_dir.is_dir():
                continue
            if since and year_dir.name.isdigit() and int(year_dir.name) < since.year:
                continue

            for month_dir in sorted(year_dir.glob("*")):
                if not month_dir.is_dir():
                    continue

                for audit_file in sorted(month_dir.glob("audit-*.yaml")):
                    try:
                        with open(audit_file, "r") as f:
                            audit_data = yaml.safe_load(f)
                        entry = AuditEntry.from_dict(audit_data["entry"])
                    except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
                        logger.warning("Skipping unreadable audit file %s: %s", audit_file, e)
                        continue

                    if since and entry.timestamp < since:
                        continue
                    if target_id is not None and entry.target_id != target_id:
                        continue
                    results.append(entry)

        results.sort(key=lambda e: e.timestamp)
        return results


@dataclass
class SuspiciousActivityAlert:
    """Actor who scheduled or forced several deletions in a short window."""

    actor: str
    count: int
    timeframe_hours: int
    targets: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    alert_type: str = "MULTIPLE_DELETIONS"
    severity: str = "HIGH"


class AuditLogService:
    """Writes and queries the deletion audit trail.

    Every helper builds one entry and hands it to ``create_audit_log``; a
    failed write is logged at CRITICAL and raised as ``AuditWriteError`` so the
    caller's operation fails instead of continuing unaudited.
    """

    def __init__(self, storage: AuditStorage, clock: Callable[[], datetime] = utc_now) -> None:
        self.storage = storage
        self._clock = clock

    async def create_audit_log(self, entry: AuditEntry) -> AuditEntry:
        """Persist an entry and mirror it to the log."""
        try:
            await asyncio.to_thread(self.storage.write, entry)
        except Exception as e:
            logger.critical(
                "Audit logging failed for %s on %s: %s",
                entry.action.value,
                entry.target_id,
                e,
            )
            raise AuditWriteError(entry.action.value, entry.target_id, str(e)) from e

        target_name = entry.details.get("target_name", entry.target_id)
        logger.log(
            SEVERITY_LOG_LEVELS[entry.severity],
            "[AUDIT] %s - Event: %s - Actor: %s - Severity: %s",
            entry.action.value,
            target_name,
            entry.actor_key,
            entry.severity.value,
        )
        return entry

    def _entry(
        self,
        action: AuditAction,
        target_id: str,
        severity: AuditSeverity,
        actor: Optional[Actor],
        details: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
        category: AuditCategory = AuditCategory.SECURITY,
    ) -> AuditEntry:
        return AuditEntry(
            entry_id=uuid.uuid4().hex,
            action=action,
            target_id=target_id,
            timestamp=self._clock(),
            severity=severity,
            category=category,
            actor=actor,
            details=details,
            metadata=metadata or {},
        )

    async def log_security_checked(
        self,
        target_id: str,
        target_name: str,
        checks: SecurityCheckResult,
        actor: Actor,
    ) -> AuditEntry:
        severity = AuditSeverity(checks.risk_level)
        entry = self._entry(
            AuditAction.SECURITY_CHECKED,
            target_id,
            severity,
            actor,
            {
                "target_name": target_name,
                "security_checks": checks.to_dict(),
                "risk_level": checks.risk_level,
            },
        )
        return await self.create_audit_log(entry)

    async def log_deletion_scheduled(self, request: DeletionRequest) -> AuditEntry:
        entry = self._entry(
            AuditAction.SCHEDULED,
            request.target_id,
            AuditSeverity.HIGH,
            request.initiator,
            {
                "target_name": request.target.name,
                "dependent_count": request.target.dependent_count,
                "scheduled_at": to_iso(request.scheduled_at),
                "execute_at": to_iso(request.execute_at),
                "grace_hours": request.grace_hours,
                "skip_backup": request.skip_backup,
                "security_checks": request.security_checks.to_dict() if request.security_checks else None,
            },
            {
                "request_id": request.request_id,
                "venue": request.target.venue,
                "date_range": {
                    "start": to_iso(request.target.start_date),
                    "end": to_iso(request.target.end_date),
                },
            },
        )
        return await self.create_audit_log(entry)

    async def log_deletion_cancelled(self, request: DeletionRequest, remaining: timedelta) -> AuditEntry:
        entry = self._entry(
            AuditAction.CANCELLED,
            request.target_id,
            AuditSeverity.MEDIUM,
            request.cancelled_by,
            {
                "target_name": request.target.name,
                "originally_scheduled_at": to_iso(request.scheduled_at),
                "original_execute_at": to_iso(request.execute_at),
                "cancelled_at": to_iso(request.cancelled_at),
                "remaining_seconds_at_cancellation": int(remaining.total_seconds()),
                "reason": request.cancellation_reason,
                "original_initiator": request.initiator.to_dict(),
            },
            {"request_id": request.request_id, "grace_hours": request.grace_hours},
        )
        return await self.create_audit_log(entry)

    async def log_deletion_started(self, request: DeletionRequest) -> AuditEntry:
        entry = self._entry(
            AuditAction.STARTED,
            request.target_id,
            AuditSeverity.CRITICAL,
            request.initiator,
            {
                "target_name": request.target.name,
                "scheduled_at": to_iso(request.scheduled_at),
                "execute_at": to_iso(request.execute_at),
                "execution_started_at": to_iso(request.execution_started_at),
                "grace_period_expired": True,
                "dependent_count": request.target.dependent_count,
            },
            {"request_id": request.request_id},
        )
        return await self.create_audit_log(entry)

    async def log_deletion_completed(self, request: DeletionRequest, statistics: DeletionStatistics) -> AuditEntry:
        entry = self._entry(
            AuditAction.COMPLETED,
            request.target_id,
            AuditSeverity.CRITICAL,
            request.initiator,
            {
                "target_name": request.target.name,
                "execution_started_at": to_iso(request.execution_started_at),
                "execution_completed_at": to_iso(request.execution_completed_at),
                "statistics": statistics.to_dict(),
                "irreversible": True,
            },
            {
                "request_id": request.request_id,
                "completion_status": "SUCCESS",
                "backup_created": request.backup_id is not None,
                "backup_id": request.backup_id,
            },
        )
        return await self.create_audit_log(entry)

    async def log_deletion_failed(self, request: DeletionRequest, error: BaseException) -> AuditEntry:
        entry = self._entry(
            AuditAction.FAILED,
            request.target_id,
            AuditSeverity.CRITICAL,
            request.initiator,
            {
                "target_name": request.target.name,
                "execution_started_at": to_iso(request.execution_started_at),
                "execution_failed_at": to_iso(request.execution_failed_at),
                "error": {"message": str(error), "type": type(error).__name__},
                "statistics": request.statistics.to_dict() if request.statistics else None,
                "partial_deletion": True,
                "data_integrity_risk": True,
            },
            {
                "request_id": request.request_id,
                "completion_status": "FAILED",
                "requires_manual_cleanup": True,
                "backup_id": request.backup_id,
            },
        )
        return await self.create_audit_log(entry)

    async def log_force_deletion(
        self,
        target_id: str,
        target_name: str,
        actor: Actor,
        statistics: DeletionStatistics,
        backup_id: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> AuditEntry:
        details: Dict[str, Any] = {
            "target_name": target_name,
            "bypass_security_lockdown": True,
            "no_grace_period": True,
            "statistics": statistics.to_dict(),
            "irreversible": True,
        }
        if error is not None:
            details["error"] = {"message": str(error), "type": type(error).__name__}
            details["partial_deletion"] = True
        entry = self._entry(
            AuditAction.FORCE_DELETED,
            target_id,
            AuditSeverity.CRITICAL,
            actor,
            details,
            {
                "admin_override": True,
                "completion_status": "FAILED" if error is not None else "SUCCESS",
                "immediate_execution": True,
                "backup_id": backup_id,
            },
        )
        return await self.create_audit_log(entry)

    async def log_status_access(self, target_id: str, accessed_by: Actor, has_scheduled_deletion: bool) -> AuditEntry:
        entry = self._entry(
            AuditAction.STATUS_ACCESSED,
            target_id,
            AuditSeverity.LOW,
            accessed_by,
            {"has_scheduled_deletion": has_scheduled_deletion},
            category=AuditCategory.ACCESS,
        )
        return await self.create_audit_log(entry)

    async def log_notification_failed(self, request: DeletionRequest, kind: str, error: BaseException) -> AuditEntry:
        entry = self._entry(
            AuditAction.NOTIFICATION_FAILED,
            request.target_id,
            AuditSeverity.MEDIUM,
            None,
            {
                "target_name": request.target.name,
                "notification": kind,
                "error": {"message": str(error), "type": type(error).__name__},
            },
            {"request_id": request.request_id},
            category=AuditCategory.NOTIFICATION,
        )
        return await self.create_audit_log(entry)

    async def audit_trail(self, target_id: str, limit: int = 50) -> List[AuditEntry]:
        """Entries for one target, newest first."""
        entries = await asyncio.to_thread(self.storage.query, None, target_id)
        entries.reverse()
        return entries[:limit]

    async def summary(self, timeframe_days: int = 30) -> Dict[str, Any]:
        """Counts per action over the last ``timeframe_days`` days.

        Returns:
            Dictionary with the timeframe, per-action counts (with last
            occurrence and severities), and the total activity count
        """
        since = self._clock() - timedelta(days=timeframe_days)
        entries = await asyncio.to_thread(self.storage.query, since, None)

        actions: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            stats = actions.setdefault(
                entry.action.value,
                {"count": 0, "last_occurrence": None, "severities": defaultdict(int)},
            )
            stats["count"] += 1
            stats["last_occurrence"] = entry.timestamp
            stats["severities"][entry.severity.value] += 1

        ordered = sorted(actions.items(), key=lambda item: item[1]["last_occurrence"], reverse=True)
        return {
            "timeframe_days": timeframe_days,
            "actions": {name: {**stats, "severities": dict(stats["severities"])} for name, stats in ordered},
            "total": sum(stats["count"] for stats in actions.values()),
        }

    async def detect_suspicious_activity(
        self,
        timeframe_hours: int = 24,
        threshold: int = 3,
    ) -> List[SuspiciousActivityAlert]:
        """Actors with ``threshold`` or more schedule/force-delete actions in the window."""
        since = self._clock() - timedelta(hours=timeframe_hours)
        entries = await asyncio.to_thread(self.storage.query, since, None)

        by_actor: Dict[str, List[AuditEntry]] = defaultdict(list)
        for entry in entries:
            if entry.action in DESTRUCTIVE_ACTIONS:
                by_actor[entry.actor_key].append(entry)

        alerts = []
        for actor, actor_entries in sorted(by_actor.items()):
            if len(actor_entries) < threshold:
                continue
            alerts.append(
                SuspiciousActivityAlert(
                    actor=actor,
                    count=len(actor_entries),
                    timeframe_hours=timeframe_hours,
                    targets=[e.details.get("target_name", e.target_id) for e in actor_entries],
                    actions=[e.action.value for e in actor_entries],
                )
            )
            logger.warning("Suspicious deletion activity: %s performed %d deletions", actor, len(actor_entries))
        return alerts
