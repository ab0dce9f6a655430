"""Persistent state machine for scheduled event deletions."""

from __future__ import annotations

import asyncio
import logging
import traceback
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..errors import AuditWriteError, ConflictError, InvalidStateError, NotFoundError
from ..models.actor import Actor
from ..models.deletion_request import ACTIVE_STATUSES, DeletionRequest, RequestStatus, TargetSnapshot
from ..models.deletion_statistics import DeletionStatistics
from ..registry import ROOT_COLLECTION
from ..storage.documents import DocumentStore
from ..utils.timeutil import parse_datetime, to_iso, utc_now
from .audit import AuditLogService
from .notifications import NotificationKind, Notifier, notify_best_effort
from .safety import SecurityChecker

logger = logging.getLogger(__name__)

REQUESTS_COLLECTION = "deletion_requests"

DEFAULT_MAX_GRACE_HOURS = 168


class DeletionRequestStore:
    """Schedules, cancels and tracks deletion requests.

    At most one non-terminal request may exist per target. Status changes are
    written with a compare-and-set on the stored status so a request is never
    moved out of a state it has already left.

    Attributes:
        store: Document store holding events and deletion requests
        checker: Security checker run at schedule time
        audit: Audit log service
        notifier: Best-effort notification dispatcher
        max_grace_hours: Upper bound for the grace period
    """

    def __init__(
        self,
        store: DocumentStore,
        checker: SecurityChecker,
        audit: AuditLogService,
        notifier: Notifier,
        max_grace_hours: float = DEFAULT_MAX_GRACE_HOURS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.checker = checker
        self.audit = audit
        self.notifier = notifier
        self.max_grace_hours = max_grace_hours
        self._clock = clock
        self.scheduling_lock = asyncio.Lock()

    def now(self) -> datetime:
        return self._clock()

    async def schedule(
        self,
        target_id: str,
        initiator: Actor,
        grace_hours: float,
        metadata: Optional[Dict[str, Any]] = None,
        skip_backup: bool = False,
    ) -> DeletionRequest:
        """Schedule deletion of an event after a grace period.

        Args:
            target_id: Event to delete
            initiator: Who requested the deletion
            grace_hours: Hours before execution, in (0, max_grace_hours]
            metadata: Overrides for the cached target metadata
            skip_backup: Do not write a backup artifact before deleting

        Returns:
            The persisted "scheduled" request

        Raises:
            ValueError: If grace_hours is out of range
            ConflictError: If the target already has a non-terminal request
            NotFoundError: If the event does not exist
            AuditWriteError: If the audit entries cannot be written (the request is withdrawn)
        """
        if not 0 < grace_hours <= self.max_grace_hours:
            raise ValueError(f"grace_hours must be greater than 0 and at most {self.max_grace_hours}, got {grace_hours}")

        async with self.scheduling_lock:
            existing = await self.find_active_for_target(target_id)
            if existing is not None:
                raise ConflictError(target_id, existing.request_id, existing.status.value)

            target = await self.store.find_one(ROOT_COLLECTION, {"id": target_id})
            if target is None:
                raise NotFoundError("Event", target_id)

            checks = await self.checker.check(target_id, target)
            now = self.now()
            request = DeletionRequest(
                request_id=uuid.uuid4().hex,
                target_id=target_id,
                target=self._snapshot(target, checks.dependent_count, metadata or {}),
                scheduled_at=now,
                grace_hours=grace_hours,
                initiator=initiator,
                security_checks=checks,
                skip_backup=skip_backup,
            )
            await self.store.insert(REQUESTS_COLLECTION, request.to_dict())

            try:
                await self.audit.log_security_checked(target_id, request.target.name, checks, initiator)
                await self.audit.log_deletion_scheduled(request)
            except AuditWriteError:
                await self.store.delete_many(
                    REQUESTS_COLLECTION,
                    {"id": request.request_id, "status": RequestStatus.SCHEDULED.value},
                )
                logger.error("Withdrew deletion request %s for event %s: audit write failed", request.request_id, target_id)
                raise

        logger.warning(
            "Deletion of event %s (%s) scheduled by %s, executes at %s",
            target_id,
            request.target.name,
            initiator.email,
            to_iso(request.execute_at),
        )

        if await notify_best_effort(self.notifier, NotificationKind.SCHEDULED, request, self.audit):
            await self.mark_notification_sent(request, NotificationKind.SCHEDULED)

        return request

    @staticmethod
    def _snapshot(target: Dict[str, Any], dependent_count: Optional[int], overrides: Dict[str, Any]) -> TargetSnapshot:
        data = {
            "name": target.get("name"),
            "start_date": target.get("start_date"),
            "end_date": target.get("end_date"),
            "dependent_count": dependent_count or 0,
            "venue": target.get("venue") or {},
            "description": target.get("description"),
        }
        data.update({key: value for key, value in overrides.items() if key in data})
        return TargetSnapshot.from_dict(data)

    async def cancel(self, request_id: str, actor: Actor, reason: Optional[str] = None) -> DeletionRequest:
        """Cancel a scheduled deletion while its grace period is running.

        Raises:
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not scheduled or its grace period expired
            AuditWriteError: If the cancellation cannot be audited (the request stays scheduled)
        """
        request = await self.require(request_id)
        now = self.now()

        if request.status != RequestStatus.SCHEDULED:
            raise InvalidStateError(request_id, request.status.value, "cancel")
        if request.is_expired(now):
            raise InvalidStateError(request_id, request.status.value, "cancel", "grace period has expired")

        remaining = request.remaining_time(now)
        scheduled = request.to_dict()
        request.transition_to(RequestStatus.CANCELLED)
        request.cancelled_by = actor
        request.cancelled_at = now
        request.cancellation_reason = reason
        await self._save(request, RequestStatus.SCHEDULED, "cancel")

        try:
            await self.audit.log_deletion_cancelled(request, remaining)
        except AuditWriteError:
            await self.store.replace_one(
                REQUESTS_COLLECTION,
                {"id": request_id, "status": RequestStatus.CANCELLED.value},
                scheduled,
            )
            logger.error("Cancellation of deletion request %s reverted: audit write failed", request_id)
            raise

        logger.info("Deletion request %s cancelled by %s", request_id, actor.email)

        if await notify_best_effort(self.notifier, NotificationKind.CANCELLED, request, self.audit):
            await self.mark_notification_sent(request, NotificationKind.CANCELLED)
        return request

    async def get(self, request_id: str) -> Optional[DeletionRequest]:
        document = await self.store.find_one(REQUESTS_COLLECTION, {"id": request_id})
        return DeletionRequest.from_dict(document) if document else None

    async def require(self, request_id: str) -> DeletionRequest:
        request = await self.get(request_id)
        if request is None:
            raise NotFoundError("Deletion request", request_id)
        return request

    async def find_for_target(self, target_id: str) -> Optional[DeletionRequest]:
        """Newest request for a target, in any status."""
        documents = await self.store.find(
            REQUESTS_COLLECTION,
            {"target_id": target_id, "is_deleted": {"$ne": True}},
            sort=("scheduled_at", -1),
            limit=1,
        )
        return DeletionRequest.from_dict(documents[0]) if documents else None

    async def find_active_for_target(self, target_id: str) -> Optional[DeletionRequest]:
        document = await self.store.find_one(
            REQUESTS_COLLECTION,
            {
                "target_id": target_id,
                "status": {"$in": [status.value for status in ACTIVE_STATUSES]},
                "is_deleted": {"$ne": True},
            },
        )
        return DeletionRequest.from_dict(document) if document else None

    async def _scheduled(self) -> List[DeletionRequest]:
        documents = await self.store.find(
            REQUESTS_COLLECTION,
            {"status": RequestStatus.SCHEDULED.value, "is_deleted": {"$ne": True}},
        )
        requests = [DeletionRequest.from_dict(document) for document in documents]
        requests.sort(key=lambda r: r.execute_at)
        return requests

    async def find_due(self, now: Optional[datetime] = None) -> List[DeletionRequest]:
        """Scheduled requests whose grace period has elapsed, oldest first."""
        now = now or self.now()
        return [request for request in await self._scheduled() if request.execute_at <= now]

    async def find_upcoming(self, within_minutes: float, now: Optional[datetime] = None) -> List[DeletionRequest]:
        """Scheduled requests executing within the next ``within_minutes`` minutes."""
        now = now or self.now()
        horizon = now + timedelta(minutes=within_minutes)
        return [request for request in await self._scheduled() if now < request.execute_at <= horizon]

    def remaining_time(self, request: DeletionRequest) -> timedelta:
        return request.remaining_time(self.now())

    def remaining_time_formatted(self, request: DeletionRequest) -> str:
        return request.remaining_time_formatted(self.now())

    async def list_requests(self, limit: int = 100, status: Optional[RequestStatus] = None) -> List[DeletionRequest]:
        """Requests newest first, optionally filtered by status."""
        query: Dict[str, Any] = {"is_deleted": {"$ne": True}}
        if status is not None:
            query["status"] = status.value
        documents = await self.store.find(REQUESTS_COLLECTION, query, sort=("scheduled_at", -1), limit=limit)
        return [DeletionRequest.from_dict(document) for document in documents]

    async def _save(self, request: DeletionRequest, expected: RequestStatus, operation: str) -> None:
        """Persist a request only if its stored status is still ``expected``."""
        replaced = await self.store.replace_one(
            REQUESTS_COLLECTION,
            {"id": request.request_id, "status": expected.value},
            request.to_dict(),
        )
        if not replaced:
            current = await self.get(request.request_id)
            if current is None:
                raise NotFoundError("Deletion request", request.request_id)
            raise InvalidStateError(request.request_id, current.status.value, operation, "status changed concurrently")

    async def mark_executing(self, request: DeletionRequest) -> DeletionRequest:
        request.transition_to(RequestStatus.EXECUTING)
        request.execution_started_at = self.now()
        await self._save(request, RequestStatus.SCHEDULED, "start execution of")
        return request

    async def mark_completed(
        self,
        request: DeletionRequest,
        statistics: DeletionStatistics,
        backup_id: Optional[str] = None,
    ) -> DeletionRequest:
        request.transition_to(RequestStatus.COMPLETED)
        request.execution_completed_at = self.now()
        request.statistics = statistics
        if backup_id is not None:
            request.backup_id = backup_id
        await self._save(request, RequestStatus.EXECUTING, "complete")
        return request

    async def mark_failed(
        self,
        request: DeletionRequest,
        error: BaseException,
        statistics: Optional[DeletionStatistics] = None,
        error_details: Optional[Dict[str, Any]] = None,
    ) -> DeletionRequest:
        request.transition_to(RequestStatus.FAILED)
        now = self.now()
        request.execution_failed_at = now
        request.execution_error = {
            "message": str(error),
            "type": type(error).__name__,
            "traceback": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            "timestamp": to_iso(now),
        }
        if error_details:
            request.execution_error.update(error_details)
        if statistics is not None:
            request.statistics = statistics
        await self._save(request, RequestStatus.EXECUTING, "fail")
        return request

    async def mark_notification_sent(self, request: DeletionRequest, kind: NotificationKind) -> None:
        setattr(request.notifications, kind.value, True)
        await self.store.update_many(
            REQUESTS_COLLECTION,
            {"id": request.request_id},
            set_fields={"notifications": request.notifications.to_dict()},
        )

    async def resolve_stuck(self, request_id: str, actor: Actor, reason: str) -> DeletionRequest:
        """Mark a request left in "executing" by a crashed executor as failed.

        Raises:
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not executing
        """
        request = await self.require(request_id)
        if request.status != RequestStatus.EXECUTING:
            raise InvalidStateError(request_id, request.status.value, "resolve")

        error = RuntimeError(f"Marked failed by {actor.email}: {reason}")
        await self.mark_failed(request, error, error_details={"resolved_by": actor.to_dict()})
        logger.warning("Stuck deletion request %s marked failed by %s", request_id, actor.email)
        await self.audit.log_deletion_failed(request, error)
        return request

    async def cleanup_old_records(self, older_than_days: int = 30) -> int:
        """Remove terminal requests that finished more than ``older_than_days`` ago.

        Returns:
            Number of requests removed
        """
        cutoff = self.now() - timedelta(days=older_than_days)
        documents = await self.store.find(
            REQUESTS_COLLECTION,
            {"status": {"$in": [RequestStatus.CANCELLED.value, RequestStatus.COMPLETED.value, RequestStatus.FAILED.value]}},
        )

        expired = []
        for document in documents:
            finished_at = parse_datetime(
                document.get("execution_completed_at")
                or document.get("execution_failed_at")
                or document.get("cancelled_at")
                or document.get("scheduled_at")
            )
            if finished_at is not None and finished_at < cutoff:
                expired.append(document["id"])

        if not expired:
            return 0

        deleted = await self.store.delete_many(REQUESTS_COLLECTION, {"id": {"$in": expired}})
        logger.info("Cleaned up %d deletion requests older than %d days", deleted, older_than_days)
        return deleted
