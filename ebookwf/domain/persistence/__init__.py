from .instance_store import FileInstanceStore, InMemoryInstanceStore, InstanceStore
from .artifact_store import (
    ArtifactStore,
    FileArtifactStore,
    InMemoryArtifactStore,
    export_filename,
)

__all__ = [
    "InstanceStore",
    "FileInstanceStore",
    "InMemoryInstanceStore",
    "ArtifactStore",
    "FileArtifactStore",
    "InMemoryArtifactStore",
    "export_filename",
]
