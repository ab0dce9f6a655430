"""Async document store used for events, their dependents and deletion requests.

Queries use a small Mongo-style subset: field equality plus the ``$in``,
``$ne``, ``$lt``, ``$lte``, ``$gt``, ``$gte`` and ``$exists`` operators, and a
top-level ``$or``. Every document carries its primary key in the ``id`` field.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

import yaml

from ..registry import PRIMARY_KEY
from ..utils.timeutil import parse_datetime

logger = logging.getLogger(__name__)

Query = Dict[str, Any]
Document = Dict[str, Any]
Sort = Tuple[str, int]

_MISSING = object()


@runtime_checkable
class DocumentStore(Protocol):
    """Async access to named collections of documents."""

    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Document]: ...

    async def find_one(self, collection: str, query: Query) -> Optional[Document]: ...

    async def count(self, collection: str, query: Optional[Query] = None) -> int: ...

    async def insert(self, collection: str, document: Document) -> None: ...

    async def replace_one(self, collection: str, query: Query, document: Document) -> bool: ...

    async def upsert(self, collection: str, document: Document) -> bool: ...

    async def update_many(
        self,
        collection: str,
        query: Query,
        set_fields: Optional[Dict[str, Any]] = None,
        unset_fields: Iterable[str] = (),
    ) -> int: ...

    async def delete_many(self, collection: str, query: Query) -> int: ...


def _get_path(document: Document, path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _comparable(left: Any, right: Any) -> Tuple[Any, Any]:
    """Coerce ISO strings to datetimes when compared against a datetime."""
    if isinstance(left, datetime) and isinstance(right, str):
        return left, parse_datetime(right)
    if isinstance(right, datetime) and isinstance(left, str):
        return parse_datetime(left), right
    if isinstance(left, datetime) and isinstance(right, datetime):
        return parse_datetime(left), parse_datetime(right)
    return left, right


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return any(_equals(item, expected) for item in value)
    try:
        left, right = _comparable(value, expected)
    except ValueError:
        return False
    return left == right


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if value is _MISSING or value is None or operand is None:
        return False
    try:
        left, right = _comparable(value, operand)
        if operator == "$lt":
            return left < right
        if operator == "$lte":
            return left <= right
        if operator == "$gt":
            return left > right
        return left >= right
    except (TypeError, ValueError):
        return False


def _match_condition(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict) or not any(key.startswith("$") for key in condition):
        return _equals(value, condition)

    for operator, operand in condition.items():
        if operator == "$in":
            if not any(_equals(value, option) for option in operand):
                return False
        elif operator == "$ne":
            if _equals(value, operand):
                return False
        elif operator in ("$lt", "$lte", "$gt", "$gte"):
            if not _compare(value, operator, operand):
                return False
        elif operator == "$exists":
            present = value is not _MISSING
            if present != bool(operand):
                return False
        else:
            raise ValueError(f"Unsupported query operator: {operator}")
    return True


def matches(document: Document, query: Optional[Query]) -> bool:
    """Check whether a document satisfies a query."""
    if not query:
        return True
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, branch) for branch in condition):
                return False
            continue
        if not _match_condition(_get_path(document, key), condition):
            return False
    return True


def _sort_key(field: str):
    def key(document: Document) -> Tuple[bool, Any]:
        value = _get_path(document, field)
        if value is _MISSING or value is None:
            return (True, "")
        if isinstance(value, str):
            parsed = _try_datetime(value)
            if parsed is not None:
                return (False, parsed.timestamp())
        if isinstance(value, datetime):
            return (False, parse_datetime(value).timestamp())
        return (False, value)

    return key


def _try_datetime(value: str) -> Optional[datetime]:
    if len(value) < 19 or value[4] != "-" or value[10] != "T":
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        return None


def _apply_query(
    documents: Iterable[Document],
    query: Optional[Query],
    sort: Optional[Sort],
    limit: Optional[int],
) -> List[Document]:
    results = [doc for doc in documents if matches(doc, query)]
    if sort:
        field, direction = sort
        results.sort(key=_sort_key(field), reverse=direction < 0)
    if limit is not None:
        results = results[:limit]
    return [copy.deepcopy(doc) for doc in results]


def _apply_update(document: Document, set_fields: Dict[str, Any], unset_fields: Iterable[str]) -> bool:
    changed = False
    for field, value in set_fields.items():
        if document.get(field, _MISSING) != value:
            document[field] = copy.deepcopy(value)
            changed = True
    for field in unset_fields:
        if field in document:
            del document[field]
            changed = True
    return changed


class _CollectionOps:
    """Query and mutation logic over a mapping of collection name to documents."""

    def _documents(self, collection: str) -> List[Document]:
        raise NotImplementedError

    def _find(self, collection, query, sort, limit) -> List[Document]:
        return _apply_query(self._documents(collection), query, sort, limit)

    def _insert(self, collection: str, document: Document) -> None:
        if PRIMARY_KEY not in document:
            raise ValueError(f"Document has no '{PRIMARY_KEY}' field")
        documents = self._documents(collection)
        if any(doc.get(PRIMARY_KEY) == document[PRIMARY_KEY] for doc in documents):
            raise ValueError(f"Duplicate {PRIMARY_KEY} in {collection}: {document[PRIMARY_KEY]}")
        documents.append(copy.deepcopy(document))

    def _replace_one(self, collection: str, query: Query, document: Document) -> bool:
        documents = self._documents(collection)
        for index, existing in enumerate(documents):
            if matches(existing, query):
                documents[index] = copy.deepcopy(document)
                return True
        return False

    def _upsert(self, collection: str, document: Document) -> bool:
        if self._replace_one(collection, {PRIMARY_KEY: document[PRIMARY_KEY]}, document):
            return False
        self._documents(collection).append(copy.deepcopy(document))
        return True

    def _update_many(self, collection, query, set_fields, unset_fields) -> int:
        modified = 0
        for document in self._documents(collection):
            if matches(document, query) and _apply_update(document, set_fields or {}, unset_fields):
                modified += 1
        return modified

    def _delete_many(self, collection: str, query: Query) -> int:
        documents = self._documents(collection)
        keep = [doc for doc in documents if not matches(doc, query)]
        deleted = len(documents) - len(keep)
        documents[:] = keep
        return deleted


class MemoryDocumentStore(_CollectionOps):
    """In-process document store.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, data: Optional[Dict[str, List[Document]]] = None) -> None:
        self._data: Dict[str, List[Document]] = {}
        for name, documents in (data or {}).items():
            self._data[name] = [copy.deepcopy(doc) for doc in documents]

    def _documents(self, collection: str) -> List[Document]:
        return self._data.setdefault(collection, [])

    def collection_names(self) -> List[str]:
        return sorted(name for name, docs in self._data.items() if docs)

    async def find(self, collection, query=None, sort=None, limit=None) -> List[Document]:
        return self._find(collection, query, sort, limit)

    async def find_one(self, collection: str, query: Query) -> Optional[Document]:
        results = self._find(collection, query, None, 1)
        return results[0] if results else None

    async def count(self, collection: str, query: Optional[Query] = None) -> int:
        return sum(1 for doc in self._documents(collection) if matches(doc, query))

    async def insert(self, collection: str, document: Document) -> None:
        self._insert(collection, document)

    async def replace_one(self, collection: str, query: Query, document: Document) -> bool:
        return self._replace_one(collection, query, document)

    async def upsert(self, collection: str, document: Document) -> bool:
        return self._upsert(collection, document)

    async def update_many(self, collection, query, set_fields=None, unset_fields=()) -> int:
        return self._update_many(collection, query, set_fields, tuple(unset_fields))

    async def delete_many(self, collection: str, query: Query) -> int:
        return self._delete_many(collection, query)


class YamlDocumentStore(_CollectionOps):
    """Document store persisted as one YAML file per collection.

    Storage structure:
        <storage_dir>/
            events.yaml
            registrations.yaml
            deletion_requests.yaml

    Every mutation rewrites the collection file through a temporary file and
    an atomic rename. File I/O runs in a worker thread; a store-wide lock
    serializes read-modify-write cycles.

    Attributes:
        storage_dir: Directory holding the collection files
    """

    def __init__(self, storage_dir: str | Path) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._loaded: Dict[str, List[Document]] = {}

    def _path(self, collection: str) -> Path:
        return self.storage_dir / f"{collection}.yaml"

    def _documents(self, collection: str) -> List[Document]:
        return self._loaded[collection]

    def _load(self, collection: str) -> None:
        path = self._path(collection)
        if not path.exists():
            self._loaded[collection] = []
            return
        with open(path, "r") as f:
            data = yaml.safe_load(f) or []
        if not isinstance(data, list):
            raise ValueError(f"Collection file {path} does not contain a list")
        self._loaded[collection] = data

    def _save(self, collection: str) -> None:
        path = self._path(collection)
        fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, prefix=f".{collection}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(self._loaded[collection], f, default_flow_style=False, sort_keys=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def _read(self, collection: str, func, *args):
        async with self._lock:
            await asyncio.to_thread(self._load, collection)
            return func(collection, *args)

    async def _write(self, collection: str, func, *args):
        async with self._lock:
            await asyncio.to_thread(self._load, collection)
            result = func(collection, *args)
            await asyncio.to_thread(self._save, collection)
            logger.debug("Saved collection %s to %s", collection, self._path(collection))
            return result

    async def find(self, collection, query=None, sort=None, limit=None) -> List[Document]:
        return await self._read(collection, self._find, query, sort, limit)

    async def find_one(self, collection: str, query: Query) -> Optional[Document]:
        results = await self._read(collection, self._find, query, None, 1)
        return results[0] if results else None

    async def count(self, collection: str, query: Optional[Query] = None) -> int:
        results = await self._read(collection, self._find, query, None, None)
        return len(results)

    async def insert(self, collection: str, document: Document) -> None:
        await self._write(collection, self._insert, document)

    async def replace_one(self, collection: str, query: Query, document: Document) -> bool:
        return await self._write(collection, self._replace_one, query, document)

    async def upsert(self, collection: str, document: Document) -> bool:
        return await self._write(collection, self._upsert, document)

    async def update_many(self, collection, query, set_fields=None, unset_fields=()) -> int:
        return await self._write(collection, self._update_many, query, set_fields, tuple(unset_fields))

    async def delete_many(self, collection: str, query: Query) -> int:
        return await self._write(collection, self._delete_many, query)
