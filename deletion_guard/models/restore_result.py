"""Restore result model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import PartialFailureError


@dataclass
class RestoreError:
    """A collection that could not be restored."""

    collection: str
    error: str


@dataclass
class RestoreResult:
    """Outcome of replaying a backup artifact into the document store.

    Attributes:
        backup_id: Artifact that was restored
        target_id: Identity the root document was restored under
        dry_run: Whether nothing was written
        collections_processed: Collections restored without error
        records_restored: Records written (or that would be written)
        records_skipped: Records left untouched because they already existed
        errors: Per-collection failures
    """

    backup_id: str
    target_id: str
    dry_run: bool = False
    collections_processed: int = 0
    records_restored: int = 0
    records_skipped: int = 0
    collection_counts: Dict[str, int] = field(default_factory=dict)
    errors: List[RestoreError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def raise_for_errors(self) -> None:
        """Raise PartialFailureError if any collection failed."""
        if self.errors:
            raise PartialFailureError(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "target_id": self.target_id,
            "dry_run": self.dry_run,
            "collections_processed": self.collections_processed,
            "records_restored": self.records_restored,
            "records_skipped": self.records_skipped,
            "collection_counts": dict(self.collection_counts),
            "errors": [{"collection": e.collection, "error": e.error} for e in self.errors],
        }


@dataclass
class BackupSummary:
    """Listing entry for one stored artifact."""

    backup_id: str
    target_id: str
    target_name: str
    created_at: Any
    size_bytes: int
    record_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_records(self) -> int:
        return sum(self.record_counts.values())


@dataclass
class CollectionDetail:
    collection: str
    record_count: int
    sample_record: Optional[Dict[str, Any]] = None


@dataclass
class BackupDetails:
    """Full per-collection breakdown of one artifact."""

    summary: BackupSummary
    registry_version: str
    format_version: str
    collections: List[CollectionDetail] = field(default_factory=list)
