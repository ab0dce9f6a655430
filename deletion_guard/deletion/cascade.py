"""Cascade deletion of an event and every record that references it."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from ..errors import ExecutionError
from ..models.deletion_statistics import DeletionStatistics
from ..registry import PRIMARY_KEY, REGISTRY, ROOT_COLLECTION, CollectionSpec, reference_query
from ..storage.documents import DocumentStore
from ..utils.timeutil import utc_now

logger = logging.getLogger(__name__)


class CascadeDeletionEngine:
    """Deletes an event together with its dependents, collection by collection.

    Walks the registry in order: dependent collections are deleted, reference
    collections have their pointing fields cleared, and the event document is
    deleted last. The first failure stops the cascade and raises
    ExecutionError carrying the statistics gathered so far.

    Attributes:
        store: Document store holding the event and its dependents
        registry: Collections to visit
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: Sequence[CollectionSpec] = REGISTRY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.registry = registry
        self._clock = clock

    async def run(self, target_id: str, dry_run: bool = False) -> DeletionStatistics:
        """Delete (or count, when dry_run) everything belonging to an event.

        Args:
            target_id: Event to delete
            dry_run: Count matching records without deleting anything

        Returns:
            DeletionStatistics with per-collection counts

        Raises:
            ExecutionError: If any collection fails; carries partial statistics
        """
        statistics = DeletionStatistics(dry_run=dry_run)
        statistics.start(self._clock())
        mode = "DRY RUN" if dry_run else "DELETE"
        logger.info("Cascade %s started for event %s", mode, target_id)

        for spec in self.registry:
            try:
                count = await self._process(spec, target_id, dry_run)
            except Exception as e:
                self._fail(statistics, spec.name, target_id, e)
            statistics.record(spec.name, count)
            if count:
                logger.debug("%s: %d record(s) in %s", mode, count, spec.name)

        try:
            root_query = {PRIMARY_KEY: target_id}
            count = await self.store.count(ROOT_COLLECTION, root_query)
            if count and not dry_run:
                count = await self.store.delete_many(ROOT_COLLECTION, root_query)
        except Exception as e:
            self._fail(statistics, ROOT_COLLECTION, target_id, e)
        statistics.record(ROOT_COLLECTION, count)

        statistics.finish(self._clock())
        logger.info(
            "Cascade %s finished for event %s: %d records in %d collections (%d ms)",
            mode,
            target_id,
            statistics.total_records,
            len(statistics.collections_deleted),
            statistics.duration_ms or 0,
        )
        return statistics

    async def _process(self, spec: CollectionSpec, target_id: str, dry_run: bool) -> int:
        query = reference_query(spec, target_id)
        count = await self.store.count(spec.name, query)
        if count == 0 or dry_run:
            return count

        if not spec.clear_only:
            return await self.store.delete_many(spec.name, query)

        for field in spec.foreign_keys:
            await self.store.update_many(spec.name, {field: target_id}, unset_fields=[field])
        return count

    def _fail(self, statistics: DeletionStatistics, collection: str, target_id: str, error: Exception) -> None:
        statistics.add_error(str(error), collection)
        statistics.finish(self._clock())
        logger.error("Cascade deletion of event %s failed at %s: %s", target_id, collection, error)
        raise ExecutionError(
            f"Cascade deletion failed at collection {collection}: {error}",
            statistics=statistics,
            collection=collection,
        ) from error
