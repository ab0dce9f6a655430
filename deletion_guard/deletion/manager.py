"""Operator-facing deletion actions outside the scheduled flow.

Preview (dry run), immediate force deletion and deletion-status lookups.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import AuthorizationError, ConflictError, ExecutionError, NotFoundError
from ..models.actor import Actor
from ..models.deletion_request import DeletionRequest, RequestStatus
from ..models.deletion_statistics import DeletionStatistics
from ..models.security_check import SecurityCheckResult
from ..registry import PRIMARY_KEY, ROOT_COLLECTION
from ..storage.documents import DocumentStore
from .audit import AuditLogService
from .backup import BackupWriter
from .cascade import CascadeDeletionEngine
from .requests import DeletionRequestStore
from .safety import SecurityChecker

logger = logging.getLogger(__name__)

DEFAULT_FORCE_DELETE_ROLES = ("admin",)


@dataclass
class DeletionPreview:
    """What a deletion of the target would remove, without removing it."""

    target_id: str
    target_name: str
    security_checks: SecurityCheckResult
    statistics: DeletionStatistics
    active_request: Optional[DeletionRequest] = None


@dataclass
class ForceDeletionResult:
    target_id: str
    target_name: str
    statistics: DeletionStatistics
    backup_id: Optional[str] = None


class DeletionManager:
    """Deletion manager orchestrator.

    Coordinates previews and immediate deletions with the same security
    checker, backup writer and cascade engine the scheduled flow uses.

    Attributes:
        store: Document store holding events
        requests: Request store, used for conflict checks and status lookups
        checker: Security checker
        backups: Backup writer
        cascade: Cascade deletion engine
        audit: Audit log service
        force_delete_roles: Actor roles allowed to force-delete
    """

    def __init__(
        self,
        store: DocumentStore,
        requests: DeletionRequestStore,
        checker: SecurityChecker,
        backups: BackupWriter,
        cascade: CascadeDeletionEngine,
        audit: AuditLogService,
        force_delete_roles: Sequence[str] = DEFAULT_FORCE_DELETE_ROLES,
    ) -> None:
        self.store = store
        self.requests = requests
        self.checker = checker
        self.backups = backups
        self.cascade = cascade
        self.audit = audit
        self.force_delete_roles = tuple(force_delete_roles)

    async def _load_target(self, target_id: str) -> dict:
        target = await self.store.find_one(ROOT_COLLECTION, {PRIMARY_KEY: target_id})
        if target is None:
            raise NotFoundError("Event", target_id)
        return target

    async def preview(self, target_id: str) -> DeletionPreview:
        """Preview a deletion without modifying anything.

        Args:
            target_id: Event to preview

        Returns:
            DeletionPreview with security checks and dry-run counts

        Raises:
            NotFoundError: If the event does not exist
        """
        target = await self._load_target(target_id)
        checks = await self.checker.check(target_id, target)
        statistics = await self.cascade.run(target_id, dry_run=True)
        active = await self.requests.find_active_for_target(target_id)

        return DeletionPreview(
            target_id=target_id,
            target_name=target.get("name") or "unknown",
            security_checks=checks,
            statistics=statistics,
            active_request=active,
        )

    async def force_delete(self, target_id: str, actor: Actor, skip_backup: bool = False) -> ForceDeletionResult:
        """Delete an event immediately, bypassing the grace period.

        Exactly one "force-deleted" audit entry is written, whether the
        cascade succeeds or fails. No deletion request is created.

        Args:
            target_id: Event to delete
            actor: Operator performing the deletion
            skip_backup: Do not write a backup artifact first

        Returns:
            ForceDeletionResult with statistics and the backup id

        Raises:
            AuthorizationError: If the actor's role may not force-delete
            ConflictError: If the event has a non-terminal deletion request
            NotFoundError: If the event does not exist
            BackupError: If the backup cannot be written (nothing is deleted)
            ExecutionError: If the cascade fails part-way
        """
        if actor.role not in self.force_delete_roles:
            raise AuthorizationError(actor.id, actor.role, "force-delete events")

        async with self.requests.scheduling_lock:
            active = await self.requests.find_active_for_target(target_id)
            if active is not None:
                raise ConflictError(target_id, active.request_id, active.status.value)

            target = await self._load_target(target_id)
            target_name = target.get("name") or "unknown"
            logger.warning("FORCE DELETION of event %s (%s) by %s", target_id, target_name, actor.email)

            backup_id = None
            if not skip_backup:
                artifact = await self.backups.write(target_id)
                backup_id = artifact.backup_id

            try:
                statistics = await self.cascade.run(target_id)
            except ExecutionError as e:
                await self.audit.log_force_deletion(
                    target_id,
                    target_name,
                    actor,
                    e.statistics or DeletionStatistics(),
                    backup_id,
                    error=e,
                )
                raise

        await self.audit.log_force_deletion(target_id, target_name, actor, statistics, backup_id)
        return ForceDeletionResult(
            target_id=target_id,
            target_name=target_name,
            statistics=statistics,
            backup_id=backup_id,
        )

    async def deletion_status(self, target_id: str, accessed_by: Actor) -> Optional[DeletionRequest]:
        """Newest deletion request for an event, recording the access."""
        request = await self.requests.find_for_target(target_id)
        has_scheduled = request is not None and request.status == RequestStatus.SCHEDULED
        await self.audit.log_status_access(target_id, accessed_by, has_scheduled)
        return request
