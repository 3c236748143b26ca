"""Shared batch pipeline behaviour."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

from ..extractors.base import BaseExtractor
from ..loaders.base import BaseLoader
from ..models.migration import MigrationStatus
from ..models.record import BatchResult
from ..services.state_store import BaseStateStore
from ..services.transformer import TransformEngine

logger = logging.getLogger(__name__)


PAUSED_MESSAGE = "Migration paused"


class BasePipeline(ABC):
    """
    One resumable batch step over the source catalog.

    A batch never loops: it handles at most batch_size records, adds its
    counters onto the persisted checkpoint and reports whether another
    batch is due.
    """

    # Key of this pipeline's progress dictionary in the state record
    progress_key: str = ""
    processed_key: str = ""

    def __init__(
        self,
        extractor: BaseExtractor,
        loader: BaseLoader,
        state_store: BaseStateStore,
        transformer: TransformEngine,
        batch_size: int
    ):
        self.extractor = extractor
        self.loader = loader
        self.state_store = state_store
        self.transformer = transformer
        self.batch_size = max(int(batch_size), 1)

    def is_paused(self) -> bool:
        return self.state_store.get().status == MigrationStatus.PAUSED

    def paused_result(self, offset: int) -> BatchResult:
        logger.info(f"{self.__class__.__name__} batch at offset {offset} skipped: paused")
        return BatchResult(has_more=False, next_offset=offset, paused=True, message=PAUSED_MESSAGE)

    def persist(self, counters: Dict[str, int], cursor: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add batch counters onto the stored progress.

        Args:
            counters: Counter deltas for this batch
            cursor: Absolute fields, such as the last record ID, to overwrite

        Returns:
            The progress dictionary as persisted
        """
        state = self.state_store.get().to_dict()
        progress = dict(state[self.progress_key])
        for key, delta in counters.items():
            progress[key] = int(progress.get(key) or 0) + int(delta)
        progress.update(cursor)
        progress["current_batch"] = int(progress.get(self.processed_key) or 0) // self.batch_size
        updated = self.state_store.update({self.progress_key: progress})
        return updated.to_dict()[self.progress_key]

    @abstractmethod
    def process_batch(self, offset: int = 0) -> BatchResult:
        """Run one batch starting at offset."""
        pass
