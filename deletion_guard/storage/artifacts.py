"""Durable storage for backup artifacts.

Artifacts are opaque byte blobs addressed by id. The local backend writes to a
directory; the S3 backend writes objects under a key prefix.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Protocol, runtime_checkable

from botocore.exceptions import ClientError

from ..aws.client import create_boto_client

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".yaml"


class ArtifactNotFoundError(KeyError):
    """Raised when an artifact id does not exist in storage."""


@dataclass
class ArtifactInfo:
    artifact_id: str
    size_bytes: int
    modified_at: Optional[datetime] = None


@runtime_checkable
class ArtifactStorage(Protocol):
    """Async artifact storage backend."""

    async def save(self, artifact_id: str, data: bytes) -> int: ...

    async def load(self, artifact_id: str) -> bytes: ...

    async def list(self) -> List[ArtifactInfo]: ...

    async def delete(self, artifact_id: str) -> None: ...

    async def exists(self, artifact_id: str) -> bool: ...


class LocalArtifactStorage:
    """Artifacts stored as files in a local directory.

    Writes go to a temporary file in the same directory, are fsynced and then
    atomically renamed, so a reader never sees a half-written artifact.

    Attributes:
        storage_dir: Directory holding ``<artifact_id>.yaml`` files
    """

    def __init__(self, storage_dir: str | Path) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, artifact_id: str) -> Path:
        if "/" in artifact_id or artifact_id.startswith("."):
            raise ValueError(f"Invalid artifact id: {artifact_id}")
        return self.storage_dir / f"{artifact_id}{ARTIFACT_SUFFIX}"

    def _save_sync(self, artifact_id: str, data: bytes) -> int:
        path = self._path(artifact_id)
        fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, prefix=".backup-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return len(data)

    def _load_sync(self, artifact_id: str) -> bytes:
        path = self._path(artifact_id)
        if not path.exists():
            raise ArtifactNotFoundError(artifact_id)
        return path.read_bytes()

    def _list_sync(self) -> List[ArtifactInfo]:
        infos = []
        for path in self.storage_dir.glob(f"*{ARTIFACT_SUFFIX}"):
            stat = path.stat()
            infos.append(
                ArtifactInfo(
                    artifact_id=path.name[: -len(ARTIFACT_SUFFIX)],
                    size_bytes=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return infos

    def _delete_sync(self, artifact_id: str) -> None:
        path = self._path(artifact_id)
        if not path.exists():
            raise ArtifactNotFoundError(artifact_id)
        path.unlink()

    async def save(self, artifact_id: str, data: bytes) -> int:
        size = await asyncio.to_thread(self._save_sync, artifact_id, data)
        logger.debug("Wrote artifact %s (%d bytes)", artifact_id, size)
        return size

    async def load(self, artifact_id: str) -> bytes:
        return await asyncio.to_thread(self._load_sync, artifact_id)

    async def list(self) -> List[ArtifactInfo]:
        return await asyncio.to_thread(self._list_sync)

    async def delete(self, artifact_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, artifact_id)

    async def exists(self, artifact_id: str) -> bool:
        return await asyncio.to_thread(self._path(artifact_id).exists)


class S3ArtifactStorage:
    """Artifacts stored as S3 objects under ``<prefix>/<artifact_id>.yaml``.

    Attributes:
        bucket: Target bucket name
        prefix: Key prefix, without trailing slash
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "event-backups",
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._client = client or create_boto_client(
            service_name="s3",
            region_name=region,
            profile_name=aws_profile,
        )

    def _key(self, artifact_id: str) -> str:
        name = f"{artifact_id}{ARTIFACT_SUFFIX}"
        return f"{self.prefix}/{name}" if self.prefix else name

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        code = error.response.get("Error", {}).get("Code", "")
        return code in ("NoSuchKey", "404", "NotFound")

    def _save_sync(self, artifact_id: str, data: bytes) -> int:
        self._client.put_object(
            Bucket=self.bucket,
            Key=self._key(artifact_id),
            Body=data,
            ContentType="application/x-yaml",
        )
        return len(data)

    def _load_sync(self, artifact_id: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=self._key(artifact_id))
        except ClientError as e:
            if self._is_missing(e):
                raise ArtifactNotFoundError(artifact_id) from e
            raise
        return response["Body"].read()

    def _list_sync(self) -> List[ArtifactInfo]:
        infos = []
        paginator = self._client.get_paginator("list_objects_v2")
        list_prefix = f"{self.prefix}/" if self.prefix else ""
        for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                if not key.endswith(ARTIFACT_SUFFIX):
                    continue
                name = key[len(list_prefix):]
                if "/" in name:
                    continue
                infos.append(
                    ArtifactInfo(
                        artifact_id=name[: -len(ARTIFACT_SUFFIX)],
                        size_bytes=obj.get("Size", 0),
                        modified_at=obj.get("LastModified"),
                    )
                )
        return infos

    def _exists_sync(self, artifact_id: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=self._key(artifact_id))
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise
        return True

    def _delete_sync(self, artifact_id: str) -> None:
        if not self._exists_sync(artifact_id):
            raise ArtifactNotFoundError(artifact_id)
        self._client.delete_object(Bucket=self.bucket, Key=self._key(artifact_id))

    async def save(self, artifact_id: str, data: bytes) -> int:
        size = await asyncio.to_thread(self._save_sync, artifact_id, data)
        logger.debug("Uploaded artifact %s to s3://%s/%s", artifact_id, self.bucket, self._key(artifact_id))
        return size

    async def load(self, artifact_id: str) -> bytes:
        return await asyncio.to_thread(self._load_sync, artifact_id)

    async def list(self) -> List[ArtifactInfo]:
        return await asyncio.to_thread(self._list_sync)

    async def delete(self, artifact_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, artifact_id)

    async def exists(self, artifact_id: str) -> bool:
        return await asyncio.to_thread(self._exists_sync, artifact_id)
