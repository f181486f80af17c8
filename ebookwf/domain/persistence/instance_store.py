from abc import ABC, abstractmethod
from pathlib import Path
from datetime import datetime, timezone
import json
import shutil
import threading
from typing import Any

from ebookwf.domain.errors import InstanceNotFound, PersistenceFailure
from ebookwf.domain.models.workflow_state import WorkflowInstance
from ebookwf.domain.constants import (
    DEFAULT_SESSIONS_ROOT,
    INSTANCE_FILENAME,
    INSTANCE_TEMP_SUFFIX,
)


class InstanceStore(ABC):
    """Durable store for workflow instances.

    Each ``save`` is all-or-nothing; there are no transactions across saves.
    """

    @abstractmethod
    def load(self, instance_id: str) -> WorkflowInstance:
        """Load an instance.

        Raises:
            InstanceNotFound: If the instance does not exist
            PersistenceFailure: If stored data cannot be read
        """
        ...

    @abstractmethod
    def save(self, instance: WorkflowInstance) -> None:
        """Persist an instance, replacing any previous snapshot.

        Raises:
            PersistenceFailure: If the write fails
        """
        ...

    @abstractmethod
    def exists(self, instance_id: str) -> bool:
        ...

    @abstractmethod
    def list_instances(self) -> list[str]:
        ...

    @abstractmethod
    def delete(self, instance_id: str) -> None:
        ...


class FileInstanceStore(InstanceStore):
    """Stores each instance as ``<root>/<instance_id>/instance.json``."""

    def __init__(self, sessions_root: Path | None = None):
        """
        Initialize the instance store.

        Args:
            sessions_root: Root directory for all instances (default: .ebookwf/sessions)
        """
        self.sessions_root = sessions_root or DEFAULT_SESSIONS_ROOT
        self.sessions_root.mkdir(parents=True, exist_ok=True)

    def save(self, instance: WorkflowInstance) -> None:
        """
        Save instance state to instance.json

        The file is written to a temp file and renamed so a crash never
        leaves a half-written snapshot.

        Raises:
            PersistenceFailure: If save fails
        """
        instance_dir = self.sessions_root / instance.instance_id
        instance_file = instance_dir / INSTANCE_FILENAME
        temp_file = instance_file.with_suffix(INSTANCE_TEMP_SUFFIX)

        instance.updated_at = datetime.now(timezone.utc)
        data = self._serialize(instance)

        try:
            instance_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_file.replace(instance_file)
        except OSError as e:
            raise PersistenceFailure(
                f"Failed to save instance '{instance.instance_id}': {e}"
            ) from e

    def load(self, instance_id: str) -> WorkflowInstance:
        """
        Load instance state from instance.json

        Raises:
            InstanceNotFound: If the instance doesn't exist
            PersistenceFailure: If instance.json is unreadable or invalid
        """
        instance_file = self.sessions_root / instance_id / INSTANCE_FILENAME

        if not instance_file.exists():
            raise InstanceNotFound(instance_id)

        try:
            with open(instance_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(
                f"Failed to read instance '{instance_id}': {e}"
            ) from e

        return self._deserialize(data)

    def exists(self, instance_id: str) -> bool:
        return (self.sessions_root / instance_id / INSTANCE_FILENAME).exists()

    def list_instances(self) -> list[str]:
        """
        List all instance IDs.

        Returns:
            Sorted list of instance identifiers
        """
        if not self.sessions_root.exists():
            return []

        instances = []
        for instance_dir in self.sessions_root.iterdir():
            if instance_dir.is_dir() and (instance_dir / INSTANCE_FILENAME).exists():
                instances.append(instance_dir.name)

        return sorted(instances)

    def delete(self, instance_id: str) -> None:
        """
        Delete an instance and all its files, exports included.

        Raises:
            InstanceNotFound: If the instance doesn't exist
        """
        instance_dir = self.sessions_root / instance_id

        if not instance_dir.exists():
            raise InstanceNotFound(instance_id)

        shutil.rmtree(instance_dir)

    def _serialize(self, instance: WorkflowInstance) -> dict[str, Any]:
        """Convert WorkflowInstance to JSON-serializable dict."""
        return instance.model_dump(mode='json')

    def _deserialize(self, data: dict[str, Any]) -> WorkflowInstance:
        """
        Convert JSON dict to WorkflowInstance.

        Raises:
            PersistenceFailure: If data is invalid
        """
        try:
            return WorkflowInstance.model_validate(data)
        except Exception as e:
            raise PersistenceFailure(f"Invalid instance data: {e}") from e


class InMemoryInstanceStore(InstanceStore):
    """Process-local store. Snapshots are deep-copied in and out."""

    def __init__(self) -> None:
        self._instances: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, instance: WorkflowInstance) -> None:
        instance.updated_at = datetime.now(timezone.utc)
        with self._lock:
            self._instances[instance.instance_id] = instance.model_dump(mode='json')

    def load(self, instance_id: str) -> WorkflowInstance:
        with self._lock:
            data = self._instances.get(instance_id)
        if data is None:
            raise InstanceNotFound(instance_id)
        return WorkflowInstance.model_validate(data)

    def exists(self, instance_id: str) -> bool:
        with self._lock:
            return instance_id in self._instances

    def list_instances(self) -> list[str]:
        with self._lock:
            return sorted(self._instances)

    def delete(self, instance_id: str) -> None:
        with self._lock:
            if instance_id not in self._instances:
                raise InstanceNotFound(instance_id)
            del self._instances[instance_id]
