"""Deletion statistics model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.timeutil import parse_datetime, to_iso, utc_now


@dataclass
class DeletionStatistics:
    """Progressive counts gathered while a cascade deletion runs.

    Counts are recorded collection by collection, so an instance captured
    after a mid-cascade failure still describes exactly what was removed.

    Attributes:
        record_counts: Records deleted (or references cleared) per collection
        collections_deleted: Collections that had at least one matching record
        total_collections: Collections visited, including empty ones
        total_records: Sum of all record counts
        started_at: When the cascade started
        ended_at: When the cascade finished or failed
        duration_ms: Elapsed time in milliseconds
        errors: Error descriptions collected during the run
        dry_run: Whether counts describe a preview rather than a deletion
    """

    record_counts: Dict[str, int] = field(default_factory=dict)
    collections_deleted: List[str] = field(default_factory=list)
    total_collections: int = 0
    total_records: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    def start(self, now: Optional[datetime] = None) -> None:
        self.started_at = now or utc_now()

    def record(self, collection: str, count: int) -> None:
        """Accumulate the count for one visited collection."""
        self.total_collections += 1
        if count <= 0:
            return
        self.record_counts[collection] = self.record_counts.get(collection, 0) + count
        if collection not in self.collections_deleted:
            self.collections_deleted.append(collection)
        self.total_records += count

    def add_error(self, message: str, collection: Optional[str] = None) -> None:
        self.errors.append(
            {
                "collection": collection,
                "message": message,
                "timestamp": to_iso(utc_now()),
            }
        )

    def finish(self, now: Optional[datetime] = None) -> None:
        self.ended_at = now or utc_now()
        if self.started_at:
            self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_counts": dict(self.record_counts),
            "collections_deleted": list(self.collections_deleted),
            "total_collections": self.total_collections,
            "total_records": self.total_records,
            "started_at": to_iso(self.started_at),
            "ended_at": to_iso(self.ended_at),
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["DeletionStatistics"]:
        if not data:
            return None
        return cls(
            record_counts=dict(data.get("record_counts") or {}),
            collections_deleted=list(data.get("collections_deleted") or []),
            total_collections=data.get("total_collections", 0),
            total_records=data.get("total_records", 0),
            started_at=parse_datetime(data.get("started_at")),
            ended_at=parse_datetime(data.get("ended_at")),
            duration_ms=data.get("duration_ms"),
            errors=list(data.get("errors") or []),
            dry_run=data.get("dry_run", False),
        )
