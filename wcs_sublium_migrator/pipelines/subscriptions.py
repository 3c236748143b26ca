"""Subscriptions pipeline: source subscriptions to target subscriptions."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from ..exceptions import TransformError
from ..models.record import (
    MIGRATED_REF_KEY,
    RENEWAL_FLAG_KEY,
    BatchResult,
    MigrationResult,
    SourceSubscription,
    TargetSubscription,
    meta_to_dict,
)
from ..services.gateway_mapper import (
    GatewayCompatibility,
    PAYPAL_AGREEMENT_GATEWAYS,
    map_gateway,
)
from .base import BasePipeline

logger = logging.getLogger(__name__)


DEFAULT_GATEWAY = "manual"
BILLING_AGREEMENT_KEY = "_billing_agreement_id"
TARGET_AGREEMENT_KEY = "_fkwcppcp_subscription_id"
PRODUCT_ITEM_TYPE = 1


class SubscriptionsPipeline(BasePipeline):
    """
    Recreates source subscriptions in the target, one batch at a time.

    Work is selected by recomputing the unmigrated set on every batch and
    taking the IDs above the persisted cursor, so records marked between
    batches drop out and a failed record waits for the next run.
    """

    progress_key = "subscriptions_migration"
    processed_key = "processed_subscriptions"

    def __init__(self, *args, batch_size: int = 10, gateways: Optional[GatewayCompatibility] = None, **kwargs):
        super().__init__(*args, batch_size=batch_size, **kwargs)
        self.gateways = gateways or GatewayCompatibility(self.loader)

    def unmigrated_ids(self, after_id: int = 0) -> List[int]:
        """
        IDs of subscriptions without the migration marker.

        Args:
            after_id: Only return IDs greater than this cursor

        Returns:
            Sorted subscription IDs
        """
        migrated = set(self.extractor.list_migrated_subscription_ids())
        return sorted(
            sub_id for sub_id in self.extractor.list_subscription_ids()
            if sub_id not in migrated and sub_id > after_id
        )

    def process_batch(self, offset: int = 0) -> BatchResult:
        """
        Migrate the next batch of unmigrated subscriptions.

        Args:
            offset: Nominal batch offset; selection follows the stored cursor

        Returns:
            BatchResult with counters and the next offset
        """
        if self.is_paused():
            return self.paused_result(offset)

        cursor = self.state_store.get().subscriptions_migration.last_subscription_id
        batch_ids = self.unmigrated_ids(cursor)[:self.batch_size]
        logger.info(f"Processing subscriptions batch after #{cursor} ({len(batch_ids)} subscriptions)")

        batch = BatchResult()
        for subscription_id in batch_ids:
            result = self._process_one(subscription_id)
            batch.results.append(result)
            batch.processed += 1
            if result.success and not result.skipped:
                batch.created += 1
            elif not result.success:
                batch.failed += 1

        new_cursor = batch_ids[-1] if batch_ids else cursor
        if len(batch_ids) == self.batch_size:
            batch.has_more = True
        else:
            batch.has_more = bool(self.unmigrated_ids(new_cursor))
        batch.next_offset = offset + self.batch_size if batch.has_more else 0

        self.persist(
            {
                "processed_subscriptions": batch.processed,
                "created_subscriptions": batch.created,
                "failed_subscriptions": batch.failed,
            },
            {"last_subscription_id": new_cursor},
        )
        logger.info(
            f"Subscriptions batch done: {batch.processed} processed, "
            f"{batch.created} created, {batch.failed} failed"
        )
        return batch

    def _process_one(self, subscription_id: int) -> MigrationResult:
        try:
            subscription = self.extractor.read_subscription(subscription_id)
            if subscription is None:
                raise TransformError(f"Subscription {subscription_id} not found")

            existing = subscription.migration_reference
            existing_target = self.loader.get_subscription(existing) if existing else None
            if existing_target and subscription.is_marked_migrated:
                logger.debug(f"Subscription {subscription_id} already migrated to {existing}")
                return MigrationResult(
                    record_id=str(subscription_id), target_id=existing, success=True, skipped=True
                )

            if existing_target:
                logger.info(f"Subscription {subscription_id} has unfinished target {existing}, resuming")
                result = self.migrate_subscription(subscription, existing_target=existing_target)
            else:
                if existing:
                    logger.info(f"Subscription {subscription_id} references missing target {existing}, migrating again")
                result = self.migrate_subscription(subscription)
        except Exception as e:
            message = f"Error migrating subscription {subscription_id}: {e}"
            logger.error(message)
            self.state_store.add_error(message, {"subscription_id": subscription_id})
            return MigrationResult(record_id=str(subscription_id), error=str(e))

        if not result.success:
            context = {"subscription_id": subscription_id, "reason": result.error}
            if result.target_id:
                context["target_id"] = result.target_id
            self.state_store.add_error(f"Failed to migrate subscription {subscription_id}", context)
        return result

    def resolve_gateway(self, subscription: SourceSubscription, parent_order: Optional[dict]) -> Tuple[str, str, int]:
        """
        Pick the target gateway for a subscription.

        Returns:
            (source gateway ID, gateway to store, gateway mode)
        """
        source_gateway = (
            subscription.payment_method
            or (parent_order or {}).get("payment_method")
            or DEFAULT_GATEWAY
        )
        target_gateway = map_gateway(source_gateway)
        if target_gateway and self.gateways.is_supported(target_gateway):
            return source_gateway, target_gateway, 1

        title = subscription.payment_method_title or (parent_order or {}).get("payment_method_title") or source_gateway
        self.state_store.add_error(
            f'Subscription #{subscription.id} uses unsupported gateway "{title}" ({source_gateway}). '
            "This subscription will be migrated but may require manual payment method update.",
            {"subscription_id": subscription.id, "gateway_id": source_gateway},
            error_type="gateway_warning",
        )
        logger.warning(f"Subscription {subscription.id} has unsupported gateway {source_gateway}")
        return source_gateway, source_gateway, 0

    def migrate_subscription(
        self,
        subscription: SourceSubscription,
        existing_target: Optional[dict] = None
    ) -> MigrationResult:
        """
        Create one subscription in the target and link it back to the source.

        The target reference is written to the source right after the create,
        and the migrated flag only once items are attached. A record left
        with a reference but no flag is finished on its existing target.

        Args:
            subscription: Source subscription
            existing_target: Target record from an interrupted earlier attempt

        Returns:
            MigrationResult with the target ID; a failure after the create
            carries the target ID too

        Raises:
            TransformError: If the record lacks a parent order or line items
        """
        parent_order = self.extractor.get_order(subscription.parent_id) if subscription.parent_id else None
        first_item = subscription.line_items[0] if subscription.line_items else None
        product = self.extractor.read_product(first_item.product_id) if first_item else None

        source_gateway, gateway, gateway_mode = self.resolve_gateway(subscription, parent_order)
        target = self.transformer.build_subscription(
            subscription, parent_order, product, gateway, gateway_mode
        )

        if existing_target:
            target_id = subscription.migration_reference
        else:
            target_id = self.loader.create_subscription(target.to_dict())
            if not target_id:
                return MigrationResult(record_id=str(subscription.id), error="Target subscription was not created")

        try:
            if not existing_target:
                self.extractor.write_reference(subscription.id, target_id)
                if target.created_at and target.created_at_utc:
                    self.loader.update_subscription(target_id, {
                        "created_at": target.created_at,
                        "created_at_utc": target.created_at_utc,
                    })

            if existing_target and existing_target.get("items"):
                logger.debug(f"Target {target_id} already has items")
            else:
                self._attach_items(target, target_id)

            if source_gateway in PAYPAL_AGREEMENT_GATEWAYS:
                self._copy_billing_agreement(subscription, parent_order, target_id)
        except Exception as e:
            logger.error(f"Subscription {subscription.id} stopped after creating target {target_id}: {e}")
            return MigrationResult(record_id=str(subscription.id), target_id=target_id, error=str(e))

        self.extractor.mark_migrated(subscription.id, target_id)

        try:
            self._link_orders(subscription, target_id)
            self.loader.log_activity(
                target_id, f"Migrated from WooCommerce Subscriptions - Subscription #{subscription.id}"
            )
        except Exception as e:
            message = f"Subscription {subscription.id} migrated to {target_id} but follow-up steps failed: {e}"
            logger.warning(message)
            self.state_store.add_error(message, {"subscription_id": subscription.id, "target_id": target_id})

        logger.info(f"Migrated subscription {subscription.id} -> {target_id}")
        return MigrationResult(
            record_id=str(subscription.id),
            target_id=target_id,
            success=True,
            created_count=1,
            migrated_at=datetime.utcnow(),
        )

    def _attach_items(self, target: TargetSubscription, target_id: str) -> None:
        item_ids: List[str] = []
        for item in target.line_items:
            added = self.loader.add_subscription_item(target_id, {
                "item_type": PRODUCT_ITEM_TYPE,
                "item_data": item.to_item_data(),
            })
            if added:
                item_ids.append(str(item.product_id))
                if item.variation_id:
                    item_ids.append(str(item.variation_id))
        if item_ids:
            self.loader.update_subscription_items(target_id, item_ids)

    def _copy_billing_agreement(
        self,
        subscription: SourceSubscription,
        parent_order: Optional[dict],
        target_id: str
    ) -> None:
        agreement_id = subscription.get_meta(BILLING_AGREEMENT_KEY)
        if not agreement_id and parent_order:
            agreement_id = meta_to_dict(parent_order.get("meta_data")).get(BILLING_AGREEMENT_KEY)
        if agreement_id:
            self.loader.update_subscription(target_id, {"meta_data": {TARGET_AGREEMENT_KEY: agreement_id}})
            logger.debug(f"Copied billing agreement {agreement_id} to subscription {target_id}")

    def _link_orders(self, subscription: SourceSubscription, target_id: str) -> None:
        if subscription.parent_id:
            self.extractor.update_order_meta(subscription.parent_id, {MIGRATED_REF_KEY: str(target_id)})
        for order_id in self.extractor.list_renewal_order_ids(subscription.id):
            self.extractor.update_order_meta(order_id, {
                MIGRATED_REF_KEY: str(target_id),
                RENEWAL_FLAG_KEY: "yes",
            })
