"""WooCommerce REST API extractor."""

import time
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseExtractor, SUBSCRIPTION_PRODUCT_TYPES
from ..exceptions import CatalogError
from ..models.migration import CatalogConfig
from ..models.record import MIGRATED_FLAG_KEY, ProductType, SourceProduct, meta_to_dict

logger = logging.getLogger(__name__)


class WooCommerceExtractor(BaseExtractor):
    """
    Extractor for a live WooCommerce store with Subscriptions installed.

    Supports:
    - Consumer key/secret authentication
    - Page-based pagination (X-WP-TotalPages)
    - Rate limiting
    - Retry logic
    """

    API_PREFIX = "/wp-json/wc/v3"

    SUBSCRIPTION_STATUSES = [
        "pending",
        "active",
        "on-hold",
        "cancelled",
        "switched",
        "expired",
        "pending-cancel",
    ]

    SUBSCRIPTIONS_PLUGIN = "woocommerce-subscriptions/"
    ADDON_PLUGIN = "woocommerce-all-products-for-subscriptions/"

    def __init__(
        self,
        config: CatalogConfig,
        per_page: int = 100,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the WooCommerce extractor.

        Args:
            config: Source connection configuration
            per_page: Page size for list requests
            session: Custom requests session
        """
        self.config = config
        self.per_page = per_page
        self._session = session or self._create_session()
        self._rate_limit_delay = 1 / config.rate_limit if config.rate_limit else 0
        self._plugins: Optional[List[Dict[str, Any]]] = None

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retry_config = self.config.retry_config
        retries = Retry(
            total=retry_config.get("max_retries", 3),
            backoff_factor=retry_config.get("backoff_factor", 2.0),
            status_forcelist=[429, 500, 502, 503, 504],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.config.api_key:
            session.auth = (self.config.api_key, self.config.api_secret or "")

        return session

    @property
    def base_url(self) -> str:
        """Get the base URL for API requests."""
        return f"{(self.config.base_url or '').rstrip('/')}{self.API_PREFIX}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False
    ) -> Optional[requests.Response]:
        """Send a request, raising CatalogError on failure."""
        if self._rate_limit_delay > 0:
            time.sleep(self._rate_limit_delay)

        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method, url, params=params, json=json, timeout=self.config.timeout
            )
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
            return response

        except requests.exceptions.HTTPError as e:
            raise CatalogError(
                f"HTTP error: {e.response.status_code} - {e.response.text}",
                status_code=e.response.status_code,
                context={"method": method, "path": path},
            )
        except requests.exceptions.RequestException as e:
            raise CatalogError(f"Request failed: {e}", context={"method": method, "path": path})

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._request("GET", path, params=params)
        return response.json()

    def _get_optional(self, path: str) -> Optional[Dict[str, Any]]:
        response = self._request("GET", path, allow_missing=True)
        return response.json() if response is not None else None

    def _paginate(self, path: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Iterate over every item of a paginated list endpoint."""
        page = 1
        while True:
            query = dict(params or {})
            query.update({"page": page, "per_page": self.per_page})
            response = self._request("GET", path, params=query)
            items = response.json() or []

            for item in items:
                yield item

            total_pages = int(response.headers.get("X-WP-TotalPages", 0) or 0)
            if total_pages:
                if page >= total_pages:
                    break
            elif len(items) < self.per_page:
                break
            page += 1

    def _count(self, path: str, params: Dict[str, Any]) -> int:
        """Read the X-WP-Total header of a list endpoint."""
        query = dict(params)
        query.update({"per_page": 1, "page": 1, "_fields": "id"})
        response = self._request("GET", path, params=query)
        return int(response.headers.get("X-WP-Total", 0) or 0)

    # Subsystem probes

    def _active_plugins(self) -> List[Dict[str, Any]]:
        if self._plugins is None:
            data = self._get_json("/system_status", params={"_fields": "active_plugins"})
            self._plugins = data.get("active_plugins", []) or []
        return self._plugins

    def _find_plugin(self, prefix: str) -> Optional[Dict[str, Any]]:
        for plugin in self._active_plugins():
            if str(plugin.get("plugin", "")).startswith(prefix):
                return plugin
        return None

    def get_system_status(self) -> Dict[str, Any]:
        plugin = self._find_plugin(self.SUBSCRIPTIONS_PLUGIN)
        return {
            "active": plugin is not None,
            "version": plugin.get("version") if plugin else None,
        }

    def is_addon_active(self) -> bool:
        return self._find_plugin(self.ADDON_PLUGIN) is not None

    # Subscriptions

    def list_subscription_ids(self, statuses: Optional[List[str]] = None) -> List[int]:
        ids = set()
        for status in statuses or ["any"]:
            for item in self._paginate("/subscriptions", {"status": status, "_fields": "id"}):
                ids.add(int(item["id"]))
        return sorted(ids)

    def list_migrated_subscription_ids(self) -> List[int]:
        migrated = []
        for item in self._paginate("/subscriptions", {"status": "any", "_fields": "id,meta_data"}):
            if meta_to_dict(item.get("meta_data")).get(MIGRATED_FLAG_KEY) == "yes":
                migrated.append(int(item["id"]))
        return sorted(migrated)

    def count_subscriptions_by_status(self) -> Dict[str, int]:
        counts = {}
        for status in self.SUBSCRIPTION_STATUSES:
            count = self._count("/subscriptions", {"status": status})
            if count:
                counts[status] = count
        return counts

    def get_subscription(self, subscription_id: int) -> Optional[Dict[str, Any]]:
        return self._get_optional(f"/subscriptions/{int(subscription_id)}")

    def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        return self._get_optional(f"/orders/{int(order_id)}")

    def list_renewal_order_ids(self, subscription_id: int) -> List[int]:
        renewal_ids = []
        for order in self._get_json(f"/subscriptions/{int(subscription_id)}/orders") or []:
            meta = meta_to_dict(order.get("meta_data"))
            if str(meta.get("_subscription_renewal", "")) == str(subscription_id):
                renewal_ids.append(int(order["id"]))
        return sorted(renewal_ids)

    # Products

    def _eligible_products(self) -> Dict[int, Dict[str, Any]]:
        products = {}
        addon_active = self.is_addon_active()
        params = {"status": "publish", "_fields": "id,type,meta_data"}
        for item in self._paginate("/products", params):
            if item.get("type") in SUBSCRIPTION_PRODUCT_TYPES or (
                addon_active and SourceProduct.from_dict(item).addon_schemes
            ):
                products[int(item["id"])] = item
        return products

    def list_product_ids(self, offset: int = 0, limit: int = 50) -> List[int]:
        return sorted(self._eligible_products())[offset:offset + limit]

    def count_products_by_type(self) -> Dict[str, int]:
        counts = {"simple": 0, "variable": 0, "addon": 0}
        addon_active = self.is_addon_active()
        for item in self._eligible_products().values():
            if item.get("type") == ProductType.SUBSCRIPTION.value:
                counts["simple"] += 1
            elif item.get("type") == ProductType.VARIABLE_SUBSCRIPTION.value:
                counts["variable"] += 1
            elif addon_active and SourceProduct.from_dict(item).addon_schemes:
                counts["addon"] += 1
        return counts

    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        product = self._get_optional(f"/products/{int(product_id)}")
        if product and product.get("type") == ProductType.VARIABLE_SUBSCRIPTION.value:
            product["variations"] = list(self._paginate(f"/products/{int(product_id)}/variations"))
        return product

    # Writes

    def update_subscription_meta(self, subscription_id: int, meta: Dict[str, Any]) -> None:
        payload = {"meta_data": [{"key": k, "value": v} for k, v in meta.items()]}
        self._request("PUT", f"/subscriptions/{int(subscription_id)}", json=payload)

    def update_order_meta(self, order_id: int, meta: Dict[str, Any]) -> None:
        payload = {"meta_data": [{"key": k, "value": v} for k, v in meta.items()]}
        self._request("PUT", f"/orders/{int(order_id)}", json=payload)

    def validate_source(self) -> List[str]:
        errors = []

        if not self.config.base_url:
            errors.append("Store URL is required for API extraction")

        if not self.config.api_key or not self.config.api_secret:
            errors.append("Consumer key and secret are required for API extraction")

        return errors
