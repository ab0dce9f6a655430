"""Listing, inspection and restore of backup artifacts."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

import yaml

from ..errors import BackupReadError, DeletionGuardError, NotFoundError
from ..models.backup_artifact import BackupArtifact
from ..models.restore_result import BackupDetails, BackupSummary, CollectionDetail, RestoreError, RestoreResult
from ..registry import PRIMARY_KEY, CollectionSpec, get_spec
from ..storage.artifacts import ArtifactNotFoundError, ArtifactStorage
from ..storage.documents import DocumentStore

logger = logging.getLogger(__name__)


def _summary(artifact: BackupArtifact) -> BackupSummary:
    return BackupSummary(
        backup_id=artifact.backup_id,
        target_id=artifact.target_id,
        target_name=artifact.target_name,
        created_at=artifact.created_at,
        size_bytes=artifact.size_bytes,
        record_counts=artifact.record_counts(),
    )


class RecoveryService:
    """Reads backup artifacts and replays them into the document store.

    Artifacts may be addressed by their full id or by any substring that
    matches exactly one stored artifact.

    Attributes:
        store: Document store to restore into
        artifacts: Artifact storage to read from
    """

    def __init__(self, store: DocumentStore, artifacts: ArtifactStorage) -> None:
        self.store = store
        self.artifacts = artifacts

    async def resolve_id(self, identifier: str) -> str:
        """Map a full or partial artifact id to a stored artifact id.

        Raises:
            NotFoundError: If nothing matches
            DeletionGuardError: If the identifier matches several artifacts
        """
        if await self.artifacts.exists(identifier):
            return identifier

        candidates = sorted(info.artifact_id for info in await self.artifacts.list() if identifier in info.artifact_id)
        if not candidates:
            raise NotFoundError("Backup", identifier)
        if len(candidates) > 1:
            raise DeletionGuardError(
                f"Backup id '{identifier}' is ambiguous, {len(candidates)} backups match",
                {"matches": candidates},
            )
        return candidates[0]

    async def read(self, identifier: str) -> BackupArtifact:
        """Load and parse an artifact.

        Raises:
            NotFoundError: If the artifact does not exist
            BackupReadError: If the artifact cannot be parsed
        """
        artifact_id = await self.resolve_id(identifier)
        try:
            data = await self.artifacts.load(artifact_id)
        except ArtifactNotFoundError as e:
            raise NotFoundError("Backup", artifact_id) from e

        try:
            content = yaml.safe_load(data)
            return BackupArtifact.from_dict(content, size_bytes=len(data))
        except (yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            raise BackupReadError(artifact_id, str(e)) from e

    async def list_backups(self) -> List[BackupSummary]:
        """Summaries of all readable artifacts, newest first."""
        summaries = []
        for info in await self.artifacts.list():
            try:
                artifact = await self.read(info.artifact_id)
            except (BackupReadError, NotFoundError) as e:
                logger.warning("Skipping backup %s: %s", info.artifact_id, e)
                continue
            summaries.append(_summary(artifact))

        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return summaries

    async def details(self, identifier: str) -> BackupDetails:
        """Per-collection breakdown of one artifact with a sample record each."""
        artifact = await self.read(identifier)
        collections = []
        if artifact.root_document is not None:
            collections.append(CollectionDetail(artifact.root_collection, 1, artifact.root_document))
        for name, records in artifact.collections.items():
            collections.append(CollectionDetail(name, len(records), records[0] if records else None))

        return BackupDetails(
            summary=_summary(artifact),
            registry_version=artifact.registry_version,
            format_version=artifact.format_version,
            collections=collections,
        )

    async def restore(
        self,
        identifier: str,
        dry_run: bool = False,
        collections: Optional[Sequence[str]] = None,
        new_target_id: Optional[str] = None,
        skip_existing: bool = True,
    ) -> RestoreResult:
        """Replay an artifact into the document store.

        Args:
            identifier: Full or partial artifact id
            dry_run: Count what would be restored without writing
            collections: Only restore these collections (default: all, including the event)
            new_target_id: Restore the event under a new id and rewrite references to it
            skip_existing: Leave records whose id already exists untouched

        Returns:
            RestoreResult; collections that failed are listed in ``errors``
        """
        artifact = await self.read(identifier)
        target_id = new_target_id or artifact.target_id
        selected = set(collections) if collections else None
        result = RestoreResult(backup_id=artifact.backup_id, target_id=target_id, dry_run=dry_run)

        logger.info(
            "Restoring backup %s as event %s%s",
            artifact.backup_id,
            target_id,
            " (dry run)" if dry_run else "",
        )

        if artifact.root_document is not None and (selected is None or artifact.root_collection in selected):
            root = copy.deepcopy(artifact.root_document)
            root[PRIMARY_KEY] = target_id
            await self._restore_collection(
                result,
                CollectionSpec(artifact.root_collection, foreign_keys=(PRIMARY_KEY,)),
                [root],
                artifact.target_id,
                target_id,
                dry_run,
                skip_existing,
            )

        for name, records in artifact.collections.items():
            if selected is not None and name not in selected:
                continue
            try:
                spec = get_spec(name)
            except KeyError:
                logger.warning("Collection %s is not in the current registry, restoring by 'event' field", name)
                spec = CollectionSpec(name)
            await self._restore_collection(
                result, spec, records, artifact.target_id, target_id, dry_run, skip_existing
            )

        if selected is not None:
            known = set(artifact.collections) | {artifact.root_collection}
            for name in sorted(selected - known):
                logger.warning("Collection %s is not present in backup %s", name, artifact.backup_id)

        logger.info(
            "Restore of %s finished: %d restored, %d skipped, %d failed collection(s)",
            artifact.backup_id,
            result.records_restored,
            result.records_skipped,
            len(result.errors),
        )
        return result

    async def _restore_collection(
        self,
        result: RestoreResult,
        spec: CollectionSpec,
        records: List[Dict[str, Any]],
        original_id: str,
        target_id: str,
        dry_run: bool,
        skip_existing: bool,
    ) -> None:
        restored = 0
        try:
            for record in records:
                if spec.clear_only:
                    changed = await self._restore_references(spec, record, original_id, target_id, dry_run)
                else:
                    changed = await self._restore_record(spec, record, original_id, target_id, dry_run, skip_existing)
                if changed:
                    restored += 1
                else:
                    result.records_skipped += 1
        except Exception as e:
            logger.error("Failed to restore collection %s: %s", spec.name, e)
            result.errors.append(RestoreError(collection=spec.name, error=str(e)))
            result.records_restored += restored
            return

        result.records_restored += restored
        result.collections_processed += 1
        if restored:
            result.collection_counts[spec.name] = restored

    async def _restore_record(
        self,
        spec: CollectionSpec,
        record: Dict[str, Any],
        original_id: str,
        target_id: str,
        dry_run: bool,
        skip_existing: bool,
    ) -> bool:
        document = copy.deepcopy(record)
        if target_id != original_id:
            for field in spec.foreign_keys:
                if field != PRIMARY_KEY and document.get(field) == original_id:
                    document[field] = target_id

        if skip_existing and await self.store.count(spec.name, {PRIMARY_KEY: document[PRIMARY_KEY]}):
            return False
        if not dry_run:
            await self.store.upsert(spec.name, document)
        return True

    async def _restore_references(
        self,
        spec: CollectionSpec,
        record: Dict[str, Any],
        original_id: str,
        target_id: str,
        dry_run: bool,
    ) -> bool:
        """Point a surviving record's reference fields back at the event.

        Only fields that referenced the original event in the backup are
        rewritten, and only if they do not already hold the target id.
        """
        existing = await self.store.find_one(spec.name, {PRIMARY_KEY: record[PRIMARY_KEY]})
        if existing is None:
            return False

        updates = {
            field: target_id
            for field in spec.foreign_keys
            if record.get(field) == original_id and existing.get(field) != target_id
        }
        if not updates:
            return False
        if not dry_run:
            await self.store.update_many(spec.name, {PRIMARY_KEY: record[PRIMARY_KEY]}, set_fields=updates)
        return True

    async def delete(self, identifier: str) -> BackupSummary:
        """Permanently remove an artifact after confirming it is readable.

        Raises:
            NotFoundError: If the artifact does not exist
            BackupReadError: If the artifact cannot be parsed
        """
        artifact = await self.read(identifier)
        await self.artifacts.delete(artifact.backup_id)
        logger.warning("Backup %s permanently deleted", artifact.backup_id)
        return _summary(artifact)
