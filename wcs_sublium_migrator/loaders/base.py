"""Base loader interface for the target subscription system."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class BaseLoader(ABC):
    """
    Base class for target catalogs.

    Loaders create plans, plan groups, plan relations and subscriptions in
    the target system and expose its payment gateway registry.
    """

    def __init__(self, target_service: str = "sublium"):
        """
        Initialize the loader.

        Args:
            target_service: Name of the target service
        """
        self.target_service = target_service

    def validate_connection(self) -> bool:
        """Validate the connection to the target service."""
        return True

    # Plans

    @abstractmethod
    def create_plan_group(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Create a plan group.

        Args:
            data: Group fields (type, title, product_type, data)

        Returns:
            ID of the created group, or None on failure
        """
        pass

    @abstractmethod
    def create_plan(self, data: Dict[str, Any]) -> Optional[str]:
        """Create a plan and return its ID, or None on failure."""
        pass

    @abstractmethod
    def create_plan_relation(self, data: Dict[str, Any]) -> Optional[str]:
        """Bind a plan to a product or variation and return the relation ID."""
        pass

    @abstractmethod
    def find_plan_relations(self, object_id: int, variation_id: int = 0) -> List[Dict[str, Any]]:
        """
        Read active plan relations for a product or variation.

        Args:
            object_id: Product ID
            variation_id: Variation ID, 0 for product-level relations

        Returns:
            Relation dictionaries, each carrying a "plan_id"
        """
        pass

    @abstractmethod
    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        """Read a plan by ID."""
        pass

    # Subscriptions

    @abstractmethod
    def create_subscription(self, data: Dict[str, Any]) -> Optional[str]:
        """Create a subscription and return its ID, or None on failure."""
        pass

    @abstractmethod
    def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        """Read a subscription by ID."""
        pass

    @abstractmethod
    def update_subscription(self, subscription_id: str, fields: Dict[str, Any]) -> None:
        """Update fields (or meta_data entries) on a subscription."""
        pass

    @abstractmethod
    def add_subscription_item(self, subscription_id: str, item: Dict[str, Any]) -> Optional[str]:
        """Attach a line item and return its ID, or None on failure."""
        pass

    @abstractmethod
    def update_subscription_items(self, subscription_id: str, item_ids: List[str]) -> None:
        """Replace the subscription's item list."""
        pass

    def log_activity(self, subscription_id: str, message: str) -> None:
        """Record an activity note on a subscription."""
        logger.debug(f"Activity for subscription {subscription_id}: {message}")

    # Gateways

    @abstractmethod
    def get_supported_gateways(self) -> List[str]:
        """IDs of gateways the target registry supports."""
        pass

    @abstractmethod
    def get_gateway(self, gateway_id: str) -> Optional[Dict[str, Any]]:
        """Read a gateway instance by ID."""
        pass
