"""Background executor that runs deletions once their grace period expires."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..errors import AuditWriteError, ExecutionError, InvalidStateError
from ..models.deletion_request import DeletionRequest, RequestStatus
from ..models.deletion_statistics import DeletionStatistics
from ..utils.timeutil import to_iso
from .audit import AuditLogService
from .backup import BackupWriter
from .cascade import CascadeDeletionEngine
from .notifications import NotificationKind, Notifier, notify_best_effort
from .requests import DeletionRequestStore

logger = logging.getLogger(__name__)

REMINDER_30MIN = timedelta(minutes=30)
REMINDER_5MIN = timedelta(minutes=5)
MAX_RECENT_ERRORS = 20


class RepeatingTask:
    """Runs an async callback, then waits ``interval`` seconds, until stopped.

    The callback is awaited before the wait starts, so runs never overlap.
    Exceptions from the callback are logged and the loop continues. The stop
    event is created in ``start`` so it belongs to the loop running the task.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], Awaitable[Any]]) -> None:
        self.name = name
        self.interval = interval
        self.callback = callback
        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def _run(self) -> None:
        stop = self._stop
        while not stop.is_set():
            try:
                await self.callback()
            except Exception:
                logger.critical("Task %s failed", self.name, exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None


@dataclass
class ExecutorState:
    """Mutable executor bookkeeping, owned by one GracePeriodExecutor."""

    processing: Set[str] = field(default_factory=set)
    running: bool = False
    total_processed: int = 0
    total_completed: int = 0
    total_failed: int = 0
    last_run: Optional[datetime] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def record_error(self, request_id: str, error: BaseException, when: datetime) -> None:
        self.errors.append({"request_id": request_id, "error": str(error), "timestamp": to_iso(when)})
        del self.errors[:-MAX_RECENT_ERRORS]


class GracePeriodExecutor:
    """Polls for due deletion requests and executes them.

    Only the designated worker (``worker_index == primary_worker_index``)
    starts the recurring tasks; every other worker stays idle. A request left
    in "executing" by a crash is not resumed automatically.

    Attributes:
        requests: Request store
        backups: Backup writer run before every cascade unless skipped
        cascade: Cascade deletion engine
        audit: Audit log service
        notifier: Best-effort notification dispatcher
        state: Executor bookkeeping
    """

    def __init__(
        self,
        requests: DeletionRequestStore,
        backups: BackupWriter,
        cascade: CascadeDeletionEngine,
        audit: AuditLogService,
        notifier: Notifier,
        poll_interval: float = 60,
        reminder_interval: float = 60,
        cleanup_interval: float = 86400,
        retention_days: int = 30,
        worker_index: int = 1,
        primary_worker_index: int = 1,
    ) -> None:
        self.requests = requests
        self.backups = backups
        self.cascade = cascade
        self.audit = audit
        self.notifier = notifier
        self.retention_days = retention_days
        self.worker_index = worker_index
        self.primary_worker_index = primary_worker_index
        self.state = ExecutorState()
        self._tasks = [
            RepeatingTask("deletion-executor", poll_interval, self.process_due),
            RepeatingTask("deletion-reminders", reminder_interval, self.send_reminders),
            RepeatingTask("deletion-cleanup", cleanup_interval, self.cleanup),
        ]

    @property
    def is_primary(self) -> bool:
        return self.worker_index == self.primary_worker_index

    def start(self) -> bool:
        """Start the recurring tasks on the designated worker.

        Returns:
            True if the tasks were started
        """
        if not self.is_primary:
            logger.info(
                "Worker %s is not the designated executor (primary is %s), not starting",
                self.worker_index,
                self.primary_worker_index,
            )
            return False
        if self.state.running:
            return True

        for task in self._tasks:
            task.start()
        self.state.running = True
        logger.info("Deletion executor started on worker %s", self.worker_index)
        return True

    async def stop(self) -> None:
        for task in self._tasks:
            await task.stop()
        self.state.running = False
        logger.info("Deletion executor stopped")

    async def run_once(self) -> Dict[str, int]:
        """Run one deletion tick and one reminder tick.

        Returns:
            Counts of requests processed and reminders sent
        """
        processed = await self.process_due()
        reminders = await self.send_reminders()
        return {"processed": processed, "reminders": reminders}

    async def process_due(self) -> int:
        """Execute every due request not already being processed.

        Returns:
            Number of requests processed
        """
        now = self.requests.now()
        self.state.last_run = now
        due = await self.requests.find_due(now)
        if due:
            logger.info("Found %d deletion request(s) ready for execution", len(due))

        processed = 0
        for request in due:
            if request.request_id in self.state.processing:
                continue
            try:
                await self.process_request(request)
                processed += 1
            except Exception as e:
                logger.critical("Processing of deletion request %s failed: %s", request.request_id, e, exc_info=True)
                self.state.record_error(request.request_id, e, self.requests.now())
        return processed

    async def process_request(self, request: DeletionRequest) -> Optional[DeletionRequest]:
        """Execute one request.

        The request is re-read first and skipped unless it is still scheduled.

        Returns:
            The final request, or None if it was skipped

        Raises:
            AuditWriteError: If an audit entry cannot be written
        """
        request_id = request.request_id
        self.state.processing.add(request_id)
        try:
            current = await self.requests.get(request_id)
            if current is None or current.status != RequestStatus.SCHEDULED or current.is_deleted:
                logger.info("Deletion request %s is no longer scheduled, skipping", request_id)
                return None
            return await self._execute(current)
        finally:
            self.state.processing.discard(request_id)

    async def _execute(self, request: DeletionRequest) -> Optional[DeletionRequest]:
        try:
            await self.requests.mark_executing(request)
        except InvalidStateError:
            logger.info("Deletion request %s changed state before execution, skipping", request.request_id)
            return None

        self.state.total_processed += 1
        logger.warning("Executing deletion of event %s (%s)", request.target_id, request.target.name)
        await self.audit.log_deletion_started(request)

        statistics: Optional[DeletionStatistics] = None
        try:
            if not request.skip_backup:
                artifact = await self.backups.write(request.target_id)
                request.backup_id = artifact.backup_id
            statistics = await self.cascade.run(request.target_id)
        except AuditWriteError:
            raise
        except Exception as e:
            if isinstance(e, ExecutionError) and e.statistics is not None:
                statistics = e.statistics
            return await self._fail(request, e, statistics)

        await self.requests.mark_completed(request, statistics, request.backup_id)
        self.state.total_completed += 1
        logger.warning(
            "Deletion of event %s completed: %d records removed",
            request.target_id,
            statistics.total_records,
        )
        await self.audit.log_deletion_completed(request, statistics)
        await self._notify(NotificationKind.COMPLETED, request)
        return request

    async def _fail(
        self,
        request: DeletionRequest,
        error: Exception,
        statistics: Optional[DeletionStatistics],
    ) -> DeletionRequest:
        await self.requests.mark_failed(request, error, statistics)
        self.state.total_failed += 1
        self.state.record_error(request.request_id, error, self.requests.now())
        logger.error("Deletion of event %s failed, manual cleanup required: %s", request.target_id, error)
        await self.audit.log_deletion_failed(request, error)
        await self._notify(NotificationKind.FAILED, request)
        return request

    async def _notify(self, kind: NotificationKind, request: DeletionRequest) -> None:
        if await notify_best_effort(self.notifier, kind, request, self.audit):
            await self.requests.mark_notification_sent(request, kind)

    async def force_process(self, request_id: str) -> Optional[DeletionRequest]:
        """Execute a scheduled request immediately, ignoring its execute_at.

        Raises:
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not scheduled
        """
        request = await self.requests.require(request_id)
        if request.status != RequestStatus.SCHEDULED:
            raise InvalidStateError(request_id, request.status.value, "force-process")
        if request_id in self.state.processing:
            raise InvalidStateError(request_id, request.status.value, "force-process", "already being processed")
        logger.warning("Force processing deletion request %s", request_id)
        return await self.process_request(request)

    async def send_reminders(self) -> int:
        """Send 30-minute and 5-minute reminders that have not been sent yet.

        Returns:
            Number of reminders sent
        """
        now = self.requests.now()
        sent = 0
        for request in await self.requests.find_upcoming(REMINDER_30MIN.total_seconds() / 60, now):
            remaining = request.remaining_time(now)
            if remaining <= REMINDER_5MIN:
                kind = NotificationKind.REMINDER_5MIN
                already_sent = request.notifications.reminder_5min
            else:
                kind = NotificationKind.REMINDER_30MIN
                already_sent = request.notifications.reminder_30min
            if already_sent:
                continue
            if await notify_best_effort(self.notifier, kind, request, self.audit):
                await self.requests.mark_notification_sent(request, kind)
                sent += 1
        return sent

    async def cleanup(self) -> int:
        return await self.requests.cleanup_old_records(self.retention_days)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.state.running,
            "is_primary": self.is_primary,
            "worker_index": self.worker_index,
            "processing": len(self.state.processing),
            "total_processed": self.state.total_processed,
            "total_completed": self.state.total_completed,
            "total_failed": self.state.total_failed,
            "last_run": to_iso(self.state.last_run),
            "recent_errors": list(self.state.errors),
        }
