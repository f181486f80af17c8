"""Storage for exported artifacts (PDF and Markdown byte streams)."""

from abc import ABC, abstractmethod
from pathlib import Path
import re
import threading

from ebookwf.domain.constants import DEFAULT_EXPORT_STEM, DEFAULT_SESSIONS_ROOT, EXPORTS_DIRNAME
from ebookwf.domain.errors import PersistenceFailure


def export_filename(title: str | None, extension: str = "pdf") -> str:
    """Build a download filename from the document title.

    Non-alphanumeric characters are dropped and runs of spaces become
    underscores; an empty result falls back to ``ebook.<extension>``.
    """
    cleaned = re.sub(r"[^a-zA-Z0-9 ]", "", title or "")
    cleaned = re.sub(r"\s+", "_", cleaned.strip())
    if not cleaned:
        cleaned = DEFAULT_EXPORT_STEM
    return f"{cleaned}.{extension}"


class ArtifactStore(ABC):
    """Independently addressable storage for exported versions."""

    @abstractmethod
    def put(self, instance_id: str, version_number: int, filename: str, data: bytes) -> str:
        """Store an artifact and return its reference.

        Raises:
            PersistenceFailure: If the artifact cannot be written
        """
        ...

    @abstractmethod
    def get(self, reference: str) -> bytes:
        """Read an artifact back by reference.

        Raises:
            PersistenceFailure: If the reference is unknown or unreadable
        """
        ...


class FileArtifactStore(ArtifactStore):
    """Writes artifacts to ``<root>/<instance_id>/exports/v<N>-<filename>``."""

    def __init__(self, root: Path | None = None):
        self.root = root or DEFAULT_SESSIONS_ROOT

    def put(self, instance_id: str, version_number: int, filename: str, data: bytes) -> str:
        export_dir = self.root / instance_id / EXPORTS_DIRNAME
        path = export_dir / f"v{version_number}-{filename}"
        try:
            export_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceFailure(f"Failed to write artifact {path}: {e}") from e
        return path.as_posix()

    def get(self, reference: str) -> bytes:
        try:
            return Path(reference).read_bytes()
        except OSError as e:
            raise PersistenceFailure(f"Failed to read artifact {reference}: {e}") from e


class InMemoryArtifactStore(ArtifactStore):
    """Keeps artifacts in a dict keyed by ``memory://`` references."""

    def __init__(self) -> None:
        self._artifacts: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, instance_id: str, version_number: int, filename: str, data: bytes) -> str:
        reference = f"memory://{instance_id}/v{version_number}/{filename}"
        with self._lock:
            self._artifacts[reference] = bytes(data)
        return reference

    def get(self, reference: str) -> bytes:
        with self._lock:
            if reference not in self._artifacts:
                raise PersistenceFailure(f"Unknown artifact reference: {reference}")
            return self._artifacts[reference]
