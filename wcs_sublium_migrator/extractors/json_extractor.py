"""JSON export based source extractor."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import BaseExtractor, SUBSCRIPTION_PRODUCT_TYPES
from ..exceptions import CatalogError
from ..models.record import MIGRATED_FLAG_KEY, ProductType, SourceProduct, meta_to_dict

logger = logging.getLogger(__name__)


class JSONExtractor(BaseExtractor):
    """
    Extractor for a JSON export of a WooCommerce Subscriptions store.

    The export is a single document:

        {
            "system": {"active": true, "version": "6.2.0", "addon_active": false},
            "subscriptions": [...],
            "orders": [...],
            "products": [...]
        }

    Records use the WooCommerce REST shapes. Meta writes are applied in
    memory and saved back to the file when one was given.
    """

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        file_path: Optional[str] = None,
        encoding: str = "utf-8"
    ):
        """
        Initialize the JSON extractor.

        Args:
            data: Export document, used instead of reading file_path
            file_path: Path of the export file
            encoding: File encoding
        """
        self.file_path = file_path
        self.encoding = encoding

        if data is None:
            if not file_path:
                raise ValueError("Either data or file_path is required")
            data = self._load_file(Path(file_path))

        self.system: Dict[str, Any] = dict(data.get("system") or {})
        self._subscriptions = {int(s["id"]): s for s in data.get("subscriptions") or []}
        self._orders = {int(o["id"]): o for o in data.get("orders") or []}
        self._products = {int(p["id"]): p for p in data.get("products") or []}

    @classmethod
    def from_file(cls, file_path: str, encoding: str = "utf-8") -> "JSONExtractor":
        """Create an extractor backed by an export file."""
        return cls(file_path=file_path, encoding=encoding)

    def _load_file(self, path: Path) -> Dict[str, Any]:
        """Read the export document."""
        if not path.exists():
            raise CatalogError(f"Export file not found: {path}")
        try:
            with open(path, "r", encoding=self.encoding) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise CatalogError(f"Invalid JSON in {path}: {e}")

    def save(self) -> None:
        """Write the export document back to its file."""
        if not self.file_path:
            return
        document = {
            "system": self.system,
            "subscriptions": [self._subscriptions[k] for k in sorted(self._subscriptions)],
            "orders": [self._orders[k] for k in sorted(self._orders)],
            "products": [self._products[k] for k in sorted(self._products)],
        }
        tmp_path = f"{self.file_path}.tmp"
        with open(tmp_path, "w", encoding=self.encoding) as f:
            json.dump(document, f, indent=2, default=str)
        os.replace(tmp_path, self.file_path)

    # Subsystem probes

    def get_system_status(self) -> Dict[str, Any]:
        return {
            "active": bool(self.system.get("active", False)),
            "version": self.system.get("version"),
        }

    def is_addon_active(self) -> bool:
        return bool(self.system.get("addon_active", False))

    # Subscriptions

    def list_subscription_ids(self, statuses: Optional[List[str]] = None) -> List[int]:
        return sorted(
            sub_id for sub_id, sub in self._subscriptions.items()
            if statuses is None or sub.get("status") in statuses
        )

    def list_migrated_subscription_ids(self) -> List[int]:
        migrated = []
        for sub_id, sub in self._subscriptions.items():
            meta = meta_to_dict(sub.get("meta_data"))
            if meta.get(MIGRATED_FLAG_KEY) == "yes":
                migrated.append(sub_id)
        return sorted(migrated)

    def count_subscriptions_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for sub in self._subscriptions.values():
            status = sub.get("status") or "pending"
            counts[status] = counts.get(status, 0) + 1
        return counts

    def get_subscription(self, subscription_id: int) -> Optional[Dict[str, Any]]:
        return self._subscriptions.get(int(subscription_id))

    def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        return self._orders.get(int(order_id))

    def list_renewal_order_ids(self, subscription_id: int) -> List[int]:
        renewal_ids = []
        for order_id, order in self._orders.items():
            meta = meta_to_dict(order.get("meta_data"))
            if str(meta.get("_subscription_renewal", "")) == str(subscription_id):
                renewal_ids.append(order_id)
        return sorted(renewal_ids)

    # Products

    def _is_eligible(self, product: Dict[str, Any]) -> bool:
        if product.get("status", "publish") != "publish":
            return False
        if product.get("type") in SUBSCRIPTION_PRODUCT_TYPES:
            return True
        return self.is_addon_active() and bool(SourceProduct.from_dict(product).addon_schemes)

    def list_product_ids(self, offset: int = 0, limit: int = 50) -> List[int]:
        eligible = sorted(pid for pid, p in self._products.items() if self._is_eligible(p))
        return eligible[offset:offset + limit]

    def count_products_by_type(self) -> Dict[str, int]:
        counts = {"simple": 0, "variable": 0, "addon": 0}
        addon_active = self.is_addon_active()
        for product in self._products.values():
            if product.get("status", "publish") != "publish":
                continue
            product_type = product.get("type")
            if product_type == ProductType.SUBSCRIPTION.value:
                counts["simple"] += 1
            elif product_type == ProductType.VARIABLE_SUBSCRIPTION.value:
                counts["variable"] += 1
            elif addon_active and SourceProduct.from_dict(product).addon_schemes:
                counts["addon"] += 1
        return counts

    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        return self._products.get(int(product_id))

    # Writes

    def update_subscription_meta(self, subscription_id: int, meta: Dict[str, Any]) -> None:
        subscription = self._subscriptions.get(int(subscription_id))
        if subscription is None:
            raise CatalogError(f"Subscription {subscription_id} not found")
        self._set_meta(subscription, meta)
        self.save()

    def update_order_meta(self, order_id: int, meta: Dict[str, Any]) -> None:
        order = self._orders.get(int(order_id))
        if order is None:
            raise CatalogError(f"Order {order_id} not found")
        self._set_meta(order, meta)
        self.save()

    def _set_meta(self, record: Dict[str, Any], meta: Dict[str, Any]) -> None:
        """Upsert meta entries on a record's meta_data list."""
        entries = record.setdefault("meta_data", [])
        if isinstance(entries, dict):
            entries.update(meta)
            return
        for key, value in meta.items():
            for entry in entries:
                if entry.get("key") == key:
                    entry["value"] = value
                    break
            else:
                entries.append({"key": key, "value": value})

    def validate_source(self) -> List[str]:
        errors = []
        if not self._subscriptions and not self._products:
            errors.append("Export contains no subscriptions or products")
        return errors
