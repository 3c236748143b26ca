"""Unit tests for the products pipeline."""

from unittest.mock import MagicMock

import pytest

from wcs_sublium_migrator.models.migration import MigrationStatus
from wcs_sublium_migrator.pipelines.products import ProductsPipeline


@pytest.fixture
def pipeline(extractor, loader, state_store, transformer):
    return ProductsPipeline(extractor, loader, state_store, transformer, batch_size=2)


def run_all(pipeline):
    offset, results = 0, []
    while True:
        result = pipeline.process_batch(offset)
        results.append(result)
        if not result.has_more:
            return results
        offset = result.next_offset


class TestProcessBatch:
    """Tests for batch processing."""

    def test_first_batch(self, pipeline, loader, state_store):
        result = pipeline.process_batch(0)

        # 101 has one scheme, 102 has two variations
        assert (result.processed, result.created, result.failed) == (2, 3, 0)
        assert result.has_more
        assert result.next_offset == 2
        assert len(loader.records("plans")) == 3
        assert len(loader.records("plan_groups")) == 2

        progress = state_store.get().products_migration
        assert progress.processed_products == 2
        assert progress.created_plans == 3
        assert progress.last_product_id == 102
        assert progress.current_batch == 1

    def test_runs_to_exhaustion(self, pipeline, state_store):
        results = run_all(pipeline)

        assert len(results) == 3
        assert results[-1].processed == 0
        assert results[-1].next_offset == 0

        progress = state_store.get().products_migration
        assert progress.processed_products == 4
        assert progress.created_plans == 4
        assert progress.failed_products == 1
        assert progress.last_product_id == 105

    def test_failed_product_logged_once(self, pipeline, state_store):
        run_all(pipeline)

        errors = state_store.get().errors
        assert len(errors) == 1
        assert errors[0]["message"] == "Failed to migrate product 105"
        assert errors[0]["context"]["product_id"] == 105

    def test_counters_are_additive(self, pipeline, state_store):
        state_store.update({"products_migration": {"processed_products": 10, "created_plans": 7}})
        pipeline.process_batch(0)

        progress = state_store.get().products_migration
        assert progress.processed_products == 12
        assert progress.created_plans == 10

    def test_paused_batch_changes_nothing(self, pipeline, loader, state_store):
        state_store.set_status(MigrationStatus.PAUSED)

        result = pipeline.process_batch(0)

        assert result.paused
        assert not result.has_more
        assert result.message == "Migration paused"
        assert loader.records("plans") == []
        assert state_store.get().products_migration.processed_products == 0


class TestIdempotence:
    """Tests for plan reuse on re-runs."""

    def test_rerun_reuses_plans(self, pipeline, loader, state_store):
        run_all(pipeline)
        plans_before = len(loader.records("plans"))
        relations_before = len(loader.records("plan_relations"))

        state_store.reset()
        run_all(pipeline)

        assert len(loader.records("plans")) == plans_before
        assert len(loader.records("plan_relations")) == relations_before
        # Matched plans still count
        assert state_store.get().products_migration.created_plans == 4

    def test_changed_terms_create_new_plan(self, extractor, loader, state_store, transformer):
        pipeline = ProductsPipeline(extractor, loader, state_store, transformer, batch_size=2)
        pipeline.migrate_product(101)

        product = extractor.get_product(101)
        for entry in product["meta_data"]:
            if entry["key"] == "_subscription_sign_up_fee":
                entry["value"] = "15"
        result = pipeline.migrate_product(101)

        assert result.success
        assert len(loader.find_plan_relations(101)) == 2


class TestMigrateProduct:
    """Tests for single product migration."""

    def test_relation_data(self, pipeline, loader):
        pipeline.migrate_product(102)

        relation = loader.find_plan_relations(102, 1021)[0]
        assert relation["relation_data"] == {"regular_price": "20", "sale_price": "18"}
        assert loader.get_plan(relation["plan_id"])["title"] == "Every 2 Weeks"

    def test_missing_product(self, pipeline):
        result = pipeline.migrate_product(999)
        assert not result.success
        assert result.error == "Product not found"

    def test_exception_is_recorded_and_batch_continues(self, extractor, state_store, transformer):
        loader = MagicMock()
        loader.find_plan_relations.return_value = []
        loader.create_plan_group.side_effect = [RuntimeError("target down"), "g1"]
        loader.create_plan.return_value = "p1"
        loader.create_plan_relation.return_value = "r1"
        pipeline = ProductsPipeline(extractor, loader, state_store, transformer, batch_size=2)

        result = pipeline.process_batch(0)

        assert (result.processed, result.failed) == (2, 1)
        assert state_store.get().errors[0]["message"] == "Error migrating product 101: target down"

    def test_every_scheme_failing(self, extractor, state_store, transformer):
        loader = MagicMock()
        loader.find_plan_relations.return_value = []
        loader.create_plan_group.return_value = "g1"
        loader.create_plan.return_value = None
        pipeline = ProductsPipeline(extractor, loader, state_store, transformer, batch_size=2)

        result = pipeline.migrate_product(102)

        assert not result.success
        assert result.created_count == 0
