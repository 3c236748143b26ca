"""Durable migration state record."""

import copy
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import StateStoreError
from ..models.migration import MigrationState, MigrationStatus

logger = logging.getLogger(__name__)


NESTED_KEYS = ("products_migration", "subscriptions_migration")

# (processed key, total key) pairs kept within bounds on every write
PROGRESS_BOUNDS = {
    "products_migration": ("processed_products", "total_products"),
    "subscriptions_migration": ("processed_subscriptions", "total_subscriptions"),
}


class BaseStateStore(ABC):
    """
    Read-merge-write store for the single MigrationState record.

    Updates are merged key by key into the stored record, including the
    two nested progress dictionaries, so a caller touching one counter
    never clobbers another. The error log keeps the most recent
    max_errors entries.
    """

    def __init__(self, max_errors: int = 200):
        """
        Initialize the state store.

        Args:
            max_errors: Number of error log entries to keep
        """
        self.max_errors = max_errors
        self._lock = threading.RLock()

    @abstractmethod
    def _load(self) -> Optional[Dict[str, Any]]:
        """Read the raw record, or None if absent."""
        pass

    @abstractmethod
    def _save(self, data: Dict[str, Any]) -> None:
        """Write the raw record."""
        pass

    @abstractmethod
    def _delete(self) -> None:
        """Delete the raw record."""
        pass

    def get(self) -> MigrationState:
        """Get the current state merged over defaults."""
        with self._lock:
            return MigrationState.from_dict(self._load())

    def update(self, partial: Dict[str, Any]) -> MigrationState:
        """
        Merge a partial update into the stored state.

        Args:
            partial: Top-level fields to set; nested progress dictionaries
                are merged key by key

        Returns:
            The state after the update
        """
        with self._lock:
            current = MigrationState.from_dict(self._load()).to_dict()

            for key, value in partial.items():
                if isinstance(value, MigrationStatus):
                    value = value.value
                if key in NESTED_KEYS and isinstance(value, dict):
                    current[key].update(value)
                else:
                    current[key] = value

            for key, (processed_key, total_key) in PROGRESS_BOUNDS.items():
                progress = current[key]
                total = int(progress.get(total_key) or 0)
                if total > 0 and int(progress.get(processed_key) or 0) > total:
                    progress[processed_key] = total

            current["errors"] = list(current.get("errors") or [])[-self.max_errors:]
            current["last_activity"] = datetime.utcnow().isoformat()

            self._save(current)
            return MigrationState.from_dict(current)

    def set_status(self, status: MigrationStatus) -> MigrationState:
        """Set the status, stamping last_activity."""
        logger.info(f"Migration status -> {MigrationStatus(status).value}")
        return self.update({"status": MigrationStatus(status).value})

    def add_error(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_type: Optional[str] = None
    ) -> None:
        """
        Append an entry to the error log.

        Never raises: a failing backend is logged and the entry dropped.

        Args:
            message: Error message
            context: Free-form context (record IDs and the like)
            error_type: Optional entry type, e.g. "gateway_warning"
        """
        entry = {
            "message": message,
            "context": copy.deepcopy(context or {}),
            "time": datetime.utcnow().isoformat(),
        }
        if error_type:
            entry["type"] = error_type

        try:
            with self._lock:
                current = MigrationState.from_dict(self._load())
                errors = current.errors + [entry]
                self.update({"errors": errors[-self.max_errors:]})
        except Exception as e:
            logger.error(f"Could not record migration error '{message}': {e}")

    def reset(self) -> None:
        """Delete the record; the next get() returns defaults."""
        with self._lock:
            self._delete()
        logger.info("Migration state reset")


class InMemoryStateStore(BaseStateStore):
    """State store kept in process memory."""

    def __init__(self, max_errors: int = 200):
        super().__init__(max_errors)
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)

    def _save(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)

    def _delete(self) -> None:
        self._data = None


class JSONFileStateStore(BaseStateStore):
    """State store persisted as a JSON file, written atomically."""

    def __init__(self, file_path: str, max_errors: int = 200):
        """
        Initialize the file-backed store.

        Args:
            file_path: Path of the state file
            max_errors: Number of error log entries to keep
        """
        super().__init__(max_errors)
        self.file_path = Path(file_path)

    def _load(self) -> Optional[Dict[str, Any]]:
        if not self.file_path.exists():
            return None
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateStoreError(f"Failed to read state file {self.file_path}: {e}")

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.file_path.with_name(f"{self.file_path.name}.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, self.file_path)
        except OSError as e:
            raise StateStoreError(f"Failed to write state file {self.file_path}: {e}")

    def _delete(self) -> None:
        try:
            self.file_path.unlink()
        except FileNotFoundError:
            pass
