"""Base extractor interface for the source subscription catalog."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Iterator
import logging

from ..models.record import (
    MIGRATED_FLAG_KEY,
    MIGRATED_REF_KEY,
    ProductType,
    SourceProduct,
    SourceSubscription,
)

logger = logging.getLogger(__name__)


SUBSCRIPTION_PRODUCT_TYPES = (
    ProductType.SUBSCRIPTION.value,
    ProductType.VARIABLE_SUBSCRIPTION.value,
)


class BaseExtractor(ABC):
    """
    Base class for source catalogs.

    An extractor reads subscriptions, orders and products from the source
    store. Its only writes are the per-subscription migration marker,
    order linking meta and the manual-renewal switch used after migration.
    """

    @abstractmethod
    def get_system_status(self) -> Dict[str, Any]:
        """
        Probe the source subscription system.

        Returns:
            Dictionary with "active" (bool) and "version" (str or None)
        """
        pass

    @abstractmethod
    def is_addon_active(self) -> bool:
        """Check whether the attachable-schemes add-on is active."""
        pass

    @abstractmethod
    def list_subscription_ids(self, statuses: Optional[List[str]] = None) -> List[int]:
        """
        List subscription IDs.

        Args:
            statuses: Restrict to these statuses, or None for every status

        Returns:
            Subscription IDs in ascending order
        """
        pass

    @abstractmethod
    def list_migrated_subscription_ids(self) -> List[int]:
        """List IDs of subscriptions carrying the migration marker."""
        pass

    @abstractmethod
    def count_subscriptions_by_status(self) -> Dict[str, int]:
        """Count subscriptions per status."""
        pass

    @abstractmethod
    def get_subscription(self, subscription_id: int) -> Optional[Dict[str, Any]]:
        """Read a subscription's full field set, or None if it does not exist."""
        pass

    @abstractmethod
    def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        """Read an order, or None if it does not exist."""
        pass

    @abstractmethod
    def list_renewal_order_ids(self, subscription_id: int) -> List[int]:
        """List renewal order IDs belonging to a subscription."""
        pass

    @abstractmethod
    def list_product_ids(self, offset: int = 0, limit: int = 50) -> List[int]:
        """
        List eligible subscription product IDs.

        Eligible products are published subscription and variable
        subscription products, plus products with attachable schemes when
        the add-on is active.

        Args:
            offset: Starting offset into the ascending ID list
            limit: Maximum IDs to return

        Returns:
            Product IDs in ascending order
        """
        pass

    @abstractmethod
    def count_products_by_type(self) -> Dict[str, int]:
        """
        Count eligible products.

        "addon" counts products that are eligible only through attachable
        schemes, so the three counts add up to the eligible total.

        Returns:
            Dictionary with "simple", "variable" and "addon" counts
        """
        pass

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        """Read a product with its variations embedded, or None."""
        pass

    @abstractmethod
    def update_subscription_meta(self, subscription_id: int, meta: Dict[str, Any]) -> None:
        """Write meta fields onto a subscription."""
        pass

    @abstractmethod
    def update_order_meta(self, order_id: int, meta: Dict[str, Any]) -> None:
        """Write meta fields directly onto an order."""
        pass

    def write_reference(self, subscription_id: int, target_id: str) -> None:
        """Record the target subscription ID without setting the migrated flag."""
        self.update_subscription_meta(subscription_id, {MIGRATED_REF_KEY: str(target_id)})
        logger.debug(f"Subscription {subscription_id} references target {target_id}")

    def mark_migrated(self, subscription_id: int, target_id: str) -> None:
        """
        Write the migration marker onto a source subscription.

        Args:
            subscription_id: Source subscription ID
            target_id: ID of the subscription created in the target
        """
        self.update_subscription_meta(subscription_id, {
            MIGRATED_REF_KEY: str(target_id),
            MIGRATED_FLAG_KEY: "yes",
        })
        logger.debug(f"Marked subscription {subscription_id} as migrated to {target_id}")

    def set_manual_renewal(self, subscription_id: int) -> None:
        """Switch a source subscription to manual renewal."""
        self.update_subscription_meta(subscription_id, {"_requires_manual_renewal": "true"})

    def read_subscription(self, subscription_id: int) -> Optional[SourceSubscription]:
        """Read a subscription as a SourceSubscription model."""
        data = self.get_subscription(subscription_id)
        return SourceSubscription.from_dict(data) if data else None

    def read_product(self, product_id: int) -> Optional[SourceProduct]:
        """Read a product as a SourceProduct model."""
        data = self.get_product(product_id)
        return SourceProduct.from_dict(data) if data else None

    def get_migration_reference(self, subscription_id: int) -> Optional[str]:
        """Target subscription ID recorded on a source subscription, if any."""
        subscription = self.read_subscription(subscription_id)
        return subscription.migration_reference if subscription else None

    def iter_subscriptions(
        self,
        statuses: Optional[List[str]] = None
    ) -> Iterator[SourceSubscription]:
        """
        Stream subscriptions one at a time.

        Args:
            statuses: Restrict to these statuses, or None for every status

        Yields:
            SourceSubscription objects that could be read
        """
        for subscription_id in self.list_subscription_ids(statuses):
            subscription = self.read_subscription(subscription_id)
            if subscription:
                yield subscription

    def validate_source(self) -> List[str]:
        """
        Validate the extractor configuration.

        Returns:
            List of validation error messages
        """
        return []
