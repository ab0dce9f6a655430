"""Backup artifact model representing a pre-deletion snapshot of one event."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.timeutil import parse_datetime, to_iso

ARTIFACT_FORMAT_VERSION = "1.0"


@dataclass
class BackupArtifact:
    """Self-describing snapshot of a root document and all its dependents.

    Written once immediately before cascade deletion and never modified. The
    header (metadata) is enough to list and identify the artifact; the body
    holds the root document and one record array per collection.

    Format versions:
    - v1.0: metadata header, root_document, collections
    """

    backup_id: str
    target_id: str
    target_name: str
    created_at: datetime
    root_collection: str
    root_document: Optional[Dict[str, Any]]
    collections: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    registry_version: str = ""
    size_bytes: int = 0
    format_version: str = ARTIFACT_FORMAT_VERSION

    @property
    def collection_names(self) -> List[str]:
        return list(self.collections.keys())

    def record_counts(self) -> Dict[str, int]:
        """Record counts per collection, including the root document."""
        counts = {name: len(records) for name, records in self.collections.items() if records}
        if self.root_document is not None:
            counts[self.root_collection] = 1
        return counts

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.collections.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert artifact to dictionary for serialization."""
        return {
            "metadata": {
                "version": self.format_version,
                "backup_id": self.backup_id,
                "target_id": self.target_id,
                "target_name": self.target_name,
                "created_at": to_iso(self.created_at),
                "registry_version": self.registry_version,
                "root_collection": self.root_collection,
                "collections": self.collection_names,
            },
            "root_document": self.root_document,
            "collections": self.collections,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], size_bytes: int = 0) -> "BackupArtifact":
        """Create artifact from a deserialized dictionary.

        Raises:
            KeyError: If the metadata header is missing required fields
        """
        metadata = data["metadata"]
        return cls(
            backup_id=metadata["backup_id"],
            target_id=str(metadata["target_id"]),
            target_name=metadata.get("target_name", "unknown"),
            created_at=parse_datetime(metadata["created_at"]),
            root_collection=metadata.get("root_collection", "events"),
            root_document=data.get("root_document"),
            collections=data.get("collections") or {},
            registry_version=metadata.get("registry_version", ""),
            size_bytes=size_bytes,
            format_version=metadata.get("version", ARTIFACT_FORMAT_VERSION),
        )
