"""Products pipeline: source subscription products to target plans."""

import logging
from typing import Dict, List, Optional

from ..models.record import BatchResult, MigrationResult, PricingScheme, SourceProduct
from .base import BasePipeline

logger = logging.getLogger(__name__)


class ProductsPipeline(BasePipeline):
    """
    Converts each eligible product's pricing schemes into plans.

    Plans are upserted per (product, variation, scheme): a relation whose
    plan has the same billing terms is reused, so re-running a batch
    creates nothing new.
    """

    progress_key = "products_migration"
    processed_key = "processed_products"

    def __init__(self, *args, batch_size: int = 50, **kwargs):
        super().__init__(*args, batch_size=batch_size, **kwargs)

    def process_batch(self, offset: int = 0) -> BatchResult:
        """
        Migrate one batch of products.

        Args:
            offset: Offset into the ascending list of eligible product IDs

        Returns:
            BatchResult with counters and the next offset
        """
        if self.is_paused():
            return self.paused_result(offset)

        product_ids = self.extractor.list_product_ids(offset=offset, limit=self.batch_size)
        addon_active = self.extractor.is_addon_active()
        logger.info(f"Processing products batch at offset {offset} ({len(product_ids)} products)")

        batch = BatchResult()
        for product_id in product_ids:
            result = self._migrate_product_safely(product_id, addon_active)
            batch.results.append(result)
            batch.processed += 1
            batch.created += result.created_count
            if not result.success:
                batch.failed += 1

        batch.has_more = len(product_ids) == self.batch_size
        batch.next_offset = offset + self.batch_size if batch.has_more else 0

        self.persist(
            {
                "processed_products": batch.processed,
                "created_plans": batch.created,
                "failed_products": batch.failed,
            },
            {"last_product_id": product_ids[-1]} if product_ids else {},
        )
        logger.info(
            f"Products batch done: {batch.processed} processed, "
            f"{batch.created} plans, {batch.failed} failed"
        )
        return batch

    def _migrate_product_safely(self, product_id: int, addon_active: bool) -> MigrationResult:
        try:
            result = self.migrate_product(product_id, addon_active)
        except Exception as e:
            message = f"Error migrating product {product_id}: {e}"
            logger.error(message)
            self.state_store.add_error(message, {"product_id": product_id})
            return MigrationResult(record_id=str(product_id), error=str(e))

        if not result.success:
            self.state_store.add_error(
                f"Failed to migrate product {product_id}",
                {"product_id": product_id, "reason": result.error},
            )
        return result

    def migrate_product(self, product_id: int, addon_active: bool = True) -> MigrationResult:
        """
        Create or reuse plans for every scheme of a product.

        Args:
            product_id: Source product ID
            addon_active: Whether attachable add-on schemes are honoured

        Returns:
            MigrationResult; created_count counts plans created or matched
        """
        product = self.extractor.read_product(product_id)
        if product is None:
            return MigrationResult(record_id=str(product_id), error="Product not found")

        schemes = self.transformer.extract_schemes(product, addon_active)
        if not schemes:
            return MigrationResult(record_id=str(product_id), error="No valid pricing schemes")

        plan_type = self.transformer.plan_type_for(product)
        group_id: Optional[str] = None
        plan_ids: List[str] = []

        for scheme in schemes:
            plan_id = self._find_matching_plan(product, scheme)
            if plan_id is None:
                if group_id is None:
                    group_id = self.loader.create_plan_group(
                        self.transformer.plan_group_for(product, plan_type)
                    )
                    if not group_id:
                        logger.warning(f"Could not create plan group for product {product_id}")
                        break
                plan_id = self._create_plan(product, scheme, group_id)
            if plan_id:
                plan_ids.append(plan_id)

        if not plan_ids:
            return MigrationResult(record_id=str(product_id), error="Every scheme failed")

        return MigrationResult(
            record_id=str(product_id),
            target_id=plan_ids[0],
            success=True,
            created_count=len(plan_ids),
        )

    def _find_matching_plan(self, product: SourceProduct, scheme: PricingScheme) -> Optional[str]:
        definition = self.transformer.plan_from_scheme(scheme, product)
        for relation in self.loader.find_plan_relations(product.id, scheme.variation_id):
            plan_id = relation.get("plan_id")
            plan = self.loader.get_plan(str(plan_id)) if plan_id else None
            if plan and self.transformer.plan_matches(plan, definition):
                logger.debug(f"Reusing plan {plan_id} for product {product.id}")
                return str(plan_id)
        return None

    def _create_plan(self, product: SourceProduct, scheme: PricingScheme, group_id: str) -> Optional[str]:
        data: Dict = self.transformer.plan_from_scheme(scheme, product).to_dict()
        data["plan_group_id"] = group_id
        plan_id = self.loader.create_plan(data)
        if not plan_id:
            logger.warning(f"Could not create plan for product {product.id} ({scheme.period})")
            return None

        relation_id = self.loader.create_plan_relation(
            self.transformer.relation_for(plan_id, product, scheme)
        )
        if not relation_id:
            logger.warning(f"Could not relate plan {plan_id} to product {product.id}")
            return None
        return plan_id
