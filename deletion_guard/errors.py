"""Exception hierarchy for deletion scheduling, execution and recovery."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .models.deletion_statistics import DeletionStatistics
    from .models.restore_result import RestoreResult


class DeletionGuardError(Exception):
    """Base exception for all deletion guard errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConflictError(DeletionGuardError):
    """Raised when a target already has a non-terminal deletion request."""

    def __init__(self, target_id: str, request_id: str, status: str):
        super().__init__(
            f"Target {target_id} already has an active deletion request",
            {"target_id": target_id, "request_id": request_id, "status": status},
        )
        self.target_id = target_id
        self.request_id = request_id
        self.status = status


class InvalidStateError(DeletionGuardError):
    """Raised when a request is not in a state that allows the operation."""

    def __init__(self, request_id: str, status: str, operation: str, reason: Optional[str] = None):
        message = f"Cannot {operation} deletion request {request_id} with status '{status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"request_id": request_id, "status": status, "operation": operation})
        self.request_id = request_id
        self.status = status
        self.operation = operation


class NotFoundError(DeletionGuardError):
    """Raised when a deletion request, target or backup artifact does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}", {"kind": kind, "id": identifier})
        self.kind = kind
        self.identifier = identifier


class AuthorizationError(DeletionGuardError):
    """Raised when an actor lacks the role required for an operation."""

    def __init__(self, actor_id: str, role: str, operation: str):
        super().__init__(
            f"Actor {actor_id} with role '{role}' may not {operation}",
            {"actor_id": actor_id, "role": role, "operation": operation},
        )
        self.actor_id = actor_id
        self.role = role
        self.operation = operation


class ExecutionError(DeletionGuardError):
    """Raised when backup or cascade deletion fails after execution started.

    Carries whatever statistics were accumulated before the failure so the
    caller can persist an honest partial result.
    """

    def __init__(
        self,
        message: str,
        statistics: Optional["DeletionStatistics"] = None,
        collection: Optional[str] = None,
    ):
        details: dict[str, Any] = {}
        if collection:
            details["collection"] = collection
        super().__init__(message, details)
        self.statistics = statistics
        self.collection = collection


class BackupError(ExecutionError):
    """Raised when the pre-deletion backup cannot be written."""


class BackupReadError(DeletionGuardError):
    """Raised when a stored backup artifact cannot be read or parsed."""

    def __init__(self, artifact_id: str, reason: str):
        super().__init__(f"Backup {artifact_id} is unreadable: {reason}", {"artifact_id": artifact_id})
        self.artifact_id = artifact_id
        self.reason = reason


class PartialFailureError(DeletionGuardError):
    """Raised when some collections failed during a restore."""

    def __init__(self, result: "RestoreResult"):
        failed = [error.collection for error in result.errors]
        super().__init__(
            f"Restore finished with {len(failed)} failed collection(s)",
            {"collections": failed},
        )
        self.result = result


class AuditWriteError(DeletionGuardError):
    """Raised when an audit entry cannot be persisted."""

    def __init__(self, action: str, target_id: str, reason: str):
        super().__init__(
            f"Audit write failed for {action} on {target_id}: {reason}",
            {"action": action, "target_id": target_id},
        )
        self.action = action
        self.target_id = target_id
