"""Event deletion lifecycle.

This module schedules event deletions behind a grace period, executes them
with a pre-deletion backup and a registry-driven cascade, and restores events
from their backups. Every transition is written to the audit trail.

Classes:
    DeletionRequestStore: Scheduling, cancellation and request state
    GracePeriodExecutor: Background execution of due requests
    CascadeDeletionEngine: Multi-collection deletion
    BackupWriter: Pre-deletion backup artifacts
    RecoveryService: Backup listing, inspection and restore
    DeletionManager: Preview, force deletion and status lookups
    SecurityChecker: Schedule-time risk evaluation
    AuditLogService: Audit trail writes and queries
"""

from __future__ import annotations

__all__ = [
    "DeletionRequestStore",
    "GracePeriodExecutor",
    "CascadeDeletionEngine",
    "BackupWriter",
    "RecoveryService",
    "DeletionManager",
    "SecurityChecker",
    "AuditLogService",
]
