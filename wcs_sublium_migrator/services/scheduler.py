"""Batch work scheduling."""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


PRODUCTS_BATCH = "wcs_sublium_migrate_products_batch"
SUBSCRIPTIONS_BATCH = "wcs_sublium_migrate_subscriptions_batch"


class BaseScheduler(ABC):
    """
    Queue of named batch units, each carrying an offset.

    One unit runs per tick; a unit that has more work enqueues its
    successor instead of looping.
    """

    @abstractmethod
    def enqueue(self, name: str, offset: int = 0) -> bool:
        """
        Enqueue a unit for near-immediate execution.

        Returns:
            False if an identical unit is already pending
        """
        pass

    @abstractmethod
    def clear(self, name: str) -> int:
        """Remove every pending unit of a kind and return how many were removed."""
        pass

    @abstractmethod
    def is_pending(self, name: str, offset: Optional[int] = None) -> bool:
        """Check whether a unit of a kind (and optionally offset) is pending."""
        pass

    @abstractmethod
    def pop(self) -> Optional[Dict[str, Any]]:
        """Take the next due unit, or None when the queue is empty."""
        pass

    def run_pending(
        self,
        handlers: Dict[str, Callable[[int], Any]],
        max_units: Optional[int] = None
    ) -> int:
        """
        Run queued units until the queue is empty or max_units have run.

        Args:
            handlers: Mapping of unit name to handler taking the offset
            max_units: Optional cap on units run in this call

        Returns:
            Number of units run
        """
        ran = 0
        while max_units is None or ran < max_units:
            unit = self.pop()
            if unit is None:
                break

            handler = handlers.get(unit["name"])
            if handler is None:
                logger.warning(f"No handler registered for {unit['name']}, dropping unit")
                continue

            ran += 1
            try:
                handler(int(unit.get("offset", 0)))
            except Exception as e:
                logger.exception(f"Unit {unit['name']} at offset {unit.get('offset')} failed: {e}")

        return ran


class QueueScheduler(BaseScheduler):
    """
    FIFO scheduler kept in memory or in a JSON file.

    With a file path, separate processes (one CLI call that starts a
    pipeline, later calls that work the queue) share the same queue.
    """

    def __init__(self, file_path: Optional[str] = None):
        """
        Initialize the scheduler.

        Args:
            file_path: Optional path of the queue file
        """
        self.file_path = Path(file_path) if file_path else None
        self._units: List[Dict[str, Any]] = []
        self._lock = threading.RLock()

    def _read(self) -> List[Dict[str, Any]]:
        if self.file_path is None:
            return list(self._units)
        if not self.file_path.exists():
            return []
        with open(self.file_path, "r", encoding="utf-8") as f:
            return json.load(f).get("units", [])

    def _write(self, units: List[Dict[str, Any]]) -> None:
        if self.file_path is None:
            self._units = list(units)
            return
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_name(f"{self.file_path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"units": units}, f, indent=2)
        os.replace(tmp_path, self.file_path)

    def enqueue(self, name: str, offset: int = 0) -> bool:
        with self._lock:
            units = self._read()
            if any(u["name"] == name and int(u.get("offset", 0)) == int(offset) for u in units):
                logger.debug(f"{name} at offset {offset} already pending")
                return False
            units.append({
                "name": name,
                "offset": int(offset),
                "enqueued_at": datetime.utcnow().isoformat(),
            })
            self._write(units)
            logger.debug(f"Enqueued {name} at offset {offset}")
            return True

    def clear(self, name: str) -> int:
        with self._lock:
            units = self._read()
            remaining = [u for u in units if u["name"] != name]
            self._write(remaining)
            return len(units) - len(remaining)

    def is_pending(self, name: str, offset: Optional[int] = None) -> bool:
        with self._lock:
            return any(
                u["name"] == name and (offset is None or int(u.get("offset", 0)) == int(offset))
                for u in self._read()
            )

    def pop(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            units = self._read()
            if not units:
                return None
            unit = units.pop(0)
            self._write(units)
            return unit

    def pending(self) -> List[Dict[str, Any]]:
        """Snapshot of the pending units."""
        with self._lock:
            return self._read()
