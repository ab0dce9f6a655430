"""Document store and artifact storage backends."""

from .artifacts import ArtifactInfo, ArtifactNotFoundError, ArtifactStorage, LocalArtifactStorage, S3ArtifactStorage
from .documents import DocumentStore, MemoryDocumentStore, YamlDocumentStore, matches

__all__ = [
    "ArtifactInfo",
    "ArtifactNotFoundError",
    "ArtifactStorage",
    "DocumentStore",
    "LocalArtifactStorage",
    "MemoryDocumentStore",
    "S3ArtifactStorage",
    "YamlDocumentStore",
    "matches",
]
