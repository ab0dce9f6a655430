"""Pre-deletion backup of an event and its dependents."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

import yaml

from ..errors import BackupError
from ..models.backup_artifact import BackupArtifact
from ..registry import PRIMARY_KEY, REGISTRY, REGISTRY_VERSION, ROOT_COLLECTION, CollectionSpec, reference_query
from ..storage.artifacts import ArtifactStorage
from ..storage.documents import DocumentStore
from ..utils.timeutil import format_size, utc_now

logger = logging.getLogger(__name__)


def serialize_artifact(artifact: BackupArtifact) -> bytes:
    return yaml.safe_dump(
        artifact.to_dict(),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    ).encode("utf-8")


def backup_id_for(target_id: str, created_at: datetime) -> str:
    return f"event_{target_id}_backup_{int(created_at.timestamp() * 1000)}"


class BackupWriter:
    """Serializes an event and every registered dependent into one artifact.

    The artifact is durably stored before ``write`` returns; any failure
    raises BackupError so the deletion that requested it is aborted.

    Attributes:
        store: Document store to read from
        artifacts: Artifact storage to write to
        registry: Collections to include
    """

    def __init__(
        self,
        store: DocumentStore,
        artifacts: ArtifactStorage,
        registry: Sequence[CollectionSpec] = REGISTRY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.artifacts = artifacts
        self.registry = registry
        self._clock = clock

    async def collect(self, target_id: str) -> BackupArtifact:
        """Read the event and its dependents into an unsaved artifact."""
        root = await self.store.find_one(ROOT_COLLECTION, {PRIMARY_KEY: target_id})
        if root is None:
            raise BackupError(f"Event {target_id} not found, nothing to back up", collection=ROOT_COLLECTION)

        created_at = self._clock()
        artifact = BackupArtifact(
            backup_id=backup_id_for(target_id, created_at),
            target_id=target_id,
            target_name=root.get("name") or "unknown",
            created_at=created_at,
            root_collection=ROOT_COLLECTION,
            root_document=root,
            registry_version=REGISTRY_VERSION,
        )

        for spec in self.registry:
            try:
                records = await self.store.find(spec.name, reference_query(spec, target_id))
            except Exception as e:
                raise BackupError(f"Failed to read {spec.name} for backup: {e}", collection=spec.name) from e
            if records:
                artifact.collections[spec.name] = records

        return artifact

    async def write(self, target_id: str) -> BackupArtifact:
        """Collect and durably store a backup of an event.

        Args:
            target_id: Event to back up

        Returns:
            The stored artifact, with its size set

        Raises:
            BackupError: If reading or storing fails
        """
        artifact = await self.collect(target_id)

        try:
            base_id = artifact.backup_id
            suffix = 1
            while await self.artifacts.exists(artifact.backup_id):
                artifact.backup_id = f"{base_id}_{suffix}"
                suffix += 1

            data = serialize_artifact(artifact)
            artifact.size_bytes = await self.artifacts.save(artifact.backup_id, data)
        except Exception as e:
            logger.error("Backup of event %s failed: %s", target_id, e)
            raise BackupError(f"Failed to store backup {artifact.backup_id}: {e}") from e

        logger.info(
            "Backup %s written: %d records in %d collections (%s)",
            artifact.backup_id,
            artifact.total_records + 1,
            len(artifact.collections),
            format_size(artifact.size_bytes),
        )
        return artifact
