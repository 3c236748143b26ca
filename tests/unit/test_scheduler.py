"""Unit tests for the batch scheduler."""

from unittest.mock import MagicMock

from wcs_sublium_migrator.services.scheduler import PRODUCTS_BATCH, SUBSCRIPTIONS_BATCH, QueueScheduler


class TestQueueScheduler:
    """Tests for queue operations."""

    def test_enqueue_deduplicates(self, scheduler):
        assert scheduler.enqueue(PRODUCTS_BATCH, 0)
        assert not scheduler.enqueue(PRODUCTS_BATCH, 0)
        assert scheduler.enqueue(PRODUCTS_BATCH, 50)
        assert len(scheduler.pending()) == 2

    def test_is_pending(self, scheduler):
        scheduler.enqueue(SUBSCRIPTIONS_BATCH, 10)

        assert scheduler.is_pending(SUBSCRIPTIONS_BATCH)
        assert scheduler.is_pending(SUBSCRIPTIONS_BATCH, 10)
        assert not scheduler.is_pending(SUBSCRIPTIONS_BATCH, 0)
        assert not scheduler.is_pending(PRODUCTS_BATCH)

    def test_clear_by_name(self, scheduler):
        scheduler.enqueue(PRODUCTS_BATCH, 0)
        scheduler.enqueue(PRODUCTS_BATCH, 50)
        scheduler.enqueue(SUBSCRIPTIONS_BATCH, 0)

        assert scheduler.clear(PRODUCTS_BATCH) == 2
        assert [u["name"] for u in scheduler.pending()] == [SUBSCRIPTIONS_BATCH]

    def test_pop_is_fifo(self, scheduler):
        scheduler.enqueue(PRODUCTS_BATCH, 0)
        scheduler.enqueue(SUBSCRIPTIONS_BATCH, 0)

        assert scheduler.pop()["name"] == PRODUCTS_BATCH
        assert scheduler.pop()["name"] == SUBSCRIPTIONS_BATCH
        assert scheduler.pop() is None

    def test_file_queue_shared_between_instances(self, tmp_path):
        path = str(tmp_path / "queue.json")
        QueueScheduler(path).enqueue(PRODUCTS_BATCH, 100)

        unit = QueueScheduler(path).pop()
        assert unit["offset"] == 100
        assert QueueScheduler(path).pop() is None


class TestRunPending:
    """Tests for draining the queue."""

    def test_runs_units_enqueued_by_handlers(self, scheduler):
        offsets = []

        def handler(offset):
            offsets.append(offset)
            if offset < 20:
                scheduler.enqueue(PRODUCTS_BATCH, offset + 10)

        scheduler.enqueue(PRODUCTS_BATCH, 0)
        assert scheduler.run_pending({PRODUCTS_BATCH: handler}) == 3
        assert offsets == [0, 10, 20]

    def test_max_units(self, scheduler):
        handler = MagicMock()
        for offset in (0, 1, 2):
            scheduler.enqueue(PRODUCTS_BATCH, offset)

        assert scheduler.run_pending({PRODUCTS_BATCH: handler}, max_units=2) == 2
        assert len(scheduler.pending()) == 1

    def test_handler_failure_does_not_stop_queue(self, scheduler):
        failing = MagicMock(side_effect=RuntimeError("boom"))
        working = MagicMock()
        scheduler.enqueue(PRODUCTS_BATCH, 0)
        scheduler.enqueue(SUBSCRIPTIONS_BATCH, 0)

        ran = scheduler.run_pending({PRODUCTS_BATCH: failing, SUBSCRIPTIONS_BATCH: working})

        assert ran == 2
        working.assert_called_once_with(0)

    def test_unit_without_handler_is_dropped(self, scheduler):
        scheduler.enqueue("unknown_unit", 0)
        assert scheduler.run_pending({}) == 0
        assert scheduler.pending() == []
