"""Service wiring shared by the CLI and the worker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .cli.config import Config
from .deletion.audit import AuditLogService, AuditStorage
from .deletion.backup import BackupWriter
from .deletion.cascade import CascadeDeletionEngine
from .deletion.executor import GracePeriodExecutor
from .deletion.manager import DeletionManager
from .deletion.notifications import LoggingNotifier, Notifier
from .deletion.recovery import RecoveryService
from .deletion.requests import DeletionRequestStore
from .deletion.safety import SecurityChecker
from .storage.artifacts import ArtifactStorage, LocalArtifactStorage, S3ArtifactStorage
from .storage.documents import DocumentStore, YamlDocumentStore
from .utils.timeutil import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: DocumentStore
    artifacts: ArtifactStorage
    audit: AuditLogService
    checker: SecurityChecker
    requests: DeletionRequestStore
    backups: BackupWriter
    cascade: CascadeDeletionEngine
    executor: GracePeriodExecutor
    recovery: RecoveryService
    manager: DeletionManager


def build_artifact_storage(config: Config) -> ArtifactStorage:
    if config.artifact_backend == "s3":
        return S3ArtifactStorage(
            bucket=config.s3_bucket,
            prefix=config.s3_prefix,
            region=config.aws_region,
            aws_profile=config.aws_profile,
        )
    return LocalArtifactStorage(config.backups_path)


def build_services(
    config: Config,
    store: Optional[DocumentStore] = None,
    artifacts: Optional[ArtifactStorage] = None,
    notifier: Optional[Notifier] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    """Construct every service from configuration.

    Args:
        config: Loaded configuration
        store: Document store (default: YAML files under the storage path)
        artifacts: Artifact storage (default: per ``config.artifact_backend``)
        notifier: Notification dispatcher (default: LoggingNotifier)
        clock: Time source shared by all services

    Returns:
        Services bundle
    """
    store = store if store is not None else YamlDocumentStore(config.documents_path)
    artifacts = artifacts if artifacts is not None else build_artifact_storage(config)
    notifier = notifier if notifier is not None else LoggingNotifier(clock=clock)

    audit = AuditLogService(AuditStorage(str(config.audit_path)), clock=clock)
    checker = SecurityChecker(store, recent_payment_days=config.recent_payment_days, clock=clock)
    requests = DeletionRequestStore(
        store,
        checker,
        audit,
        notifier,
        max_grace_hours=config.max_grace_hours,
        clock=clock,
    )
    backups = BackupWriter(store, artifacts, clock=clock)
    cascade = CascadeDeletionEngine(store, clock=clock)
    executor = GracePeriodExecutor(
        requests,
        backups,
        cascade,
        audit,
        notifier,
        poll_interval=config.poll_interval_seconds,
        reminder_interval=config.reminder_interval_seconds,
        cleanup_interval=config.cleanup_interval_seconds,
        retention_days=config.retention_days,
        worker_index=config.worker_index,
        primary_worker_index=config.primary_worker_index,
    )
    recovery = RecoveryService(store, artifacts)
    manager = DeletionManager(
        store,
        requests,
        checker,
        backups,
        cascade,
        audit,
        force_delete_roles=config.force_delete_roles,
    )
    logger.debug("Services built with storage path %s", config.base_path)

    return Services(
        store=store,
        artifacts=artifacts,
        audit=audit,
        checker=checker,
        requests=requests,
        backups=backups,
        cascade=cascade,
        executor=executor,
        recovery=recovery,
        manager=manager,
    )
