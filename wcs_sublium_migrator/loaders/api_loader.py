"""Sublium REST API loader."""

import time
import logging
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from typing import Any, Dict, List, Optional

from .base import BaseLoader
from ..exceptions import CatalogError
from ..models.migration import CatalogConfig

logger = logging.getLogger(__name__)


class SubliumAPILoader(BaseLoader):
    """
    Loader for the Sublium REST API.

    Endpoint paths can be overridden per entity through the catalog
    configuration's endpoints mapping.
    """

    DEFAULT_ENDPOINTS = {
        "plan_groups": "/plan-groups",
        "plans": "/plans",
        "plan_relations": "/plan-relations",
        "subscriptions": "/subscriptions",
        "gateways": "/gateways",
    }

    def __init__(
        self,
        config: CatalogConfig,
        auth_type: str = "bearer",  # bearer, header
        auth_header: str = "X-Sublium-Key",
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the API loader.

        Args:
            config: Target connection configuration
            auth_type: Type of authentication
            auth_header: Header name for header authentication
            session: Custom requests session
        """
        super().__init__("sublium")
        self.config = config
        self.base_url = (config.base_url or "").rstrip("/")
        self.auth_type = auth_type
        self.auth_header = auth_header
        self.rate_limit = config.rate_limit or 0
        self.endpoints = dict(self.DEFAULT_ENDPOINTS)
        self.endpoints.update(config.endpoints or {})
        self._last_request_time = 0.0
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with authentication and retries."""
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
            if self.auth_type == "bearer":
                session.headers["Authorization"] = f"Bearer {self.config.api_key}"
            elif self.auth_type == "header":
                session.headers[self.auth_header] = self.config.api_key

        session.headers["Content-Type"] = "application/json"

        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        if self.rate_limit > 0:
            elapsed = time.time() - self._last_request_time
            wait_time = (1.0 / self.rate_limit) - elapsed
            if wait_time > 0:
                time.sleep(wait_time)
        self._last_request_time = time.time()

    def _url(self, entity: str, *parts: Any) -> str:
        path = self.endpoints.get(entity, f"/{entity}")
        suffix = "".join(f"/{p}" for p in parts)
        return f"{self.base_url}{path}{suffix}"

    def _request(
        self,
        method: str,
        url: str,
        allow_missing: bool = False,
        **kwargs
    ) -> Any:
        """Send a request and decode the JSON body."""
        self._rate_limit_wait()

        try:
            response = self._session.request(method, url, timeout=self.config.timeout, **kwargs)
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json() if response.text else {}

        except requests.exceptions.HTTPError as e:
            error_msg = str(e)
            try:
                error_data = e.response.json()
                error_msg = error_data.get("message") or error_data.get("error") or str(error_data)
            except ValueError:
                pass
            raise CatalogError(error_msg, status_code=e.response.status_code, context={"url": url})

        except requests.exceptions.RequestException as e:
            raise CatalogError(f"Request failed: {e}", context={"url": url})

    @staticmethod
    def _extract_id(response_data: Any) -> Optional[str]:
        if not isinstance(response_data, dict):
            return None
        target_id = response_data.get("id") or (response_data.get("data") or {}).get("id")
        return str(target_id) if target_id else None

    def _create(self, entity: str, data: Dict[str, Any]) -> Optional[str]:
        return self._extract_id(self._request("POST", self._url(entity), json=data))

    @staticmethod
    def _unwrap(response_data: Any) -> Any:
        if isinstance(response_data, dict) and "data" in response_data:
            return response_data["data"]
        return response_data

    # Plans

    def create_plan_group(self, data: Dict[str, Any]) -> Optional[str]:
        return self._create("plan_groups", data)

    def create_plan(self, data: Dict[str, Any]) -> Optional[str]:
        return self._create("plans", data)

    def create_plan_relation(self, data: Dict[str, Any]) -> Optional[str]:
        return self._create("plan_relations", data)

    def find_plan_relations(self, object_id: int, variation_id: int = 0) -> List[Dict[str, Any]]:
        params = {"oid": int(object_id), "vid": int(variation_id), "type": 1, "status": 1}
        relations = self._unwrap(self._request("GET", self._url("plan_relations"), params=params))
        return relations if isinstance(relations, list) else []

    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        return self._unwrap(self._request("GET", self._url("plans", plan_id), allow_missing=True))

    # Subscriptions

    def create_subscription(self, data: Dict[str, Any]) -> Optional[str]:
        return self._create("subscriptions", data)

    def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        return self._unwrap(
            self._request("GET", self._url("subscriptions", subscription_id), allow_missing=True)
        )

    def update_subscription(self, subscription_id: str, fields: Dict[str, Any]) -> None:
        self._request("PATCH", self._url("subscriptions", subscription_id), json=fields)

    def add_subscription_item(self, subscription_id: str, item: Dict[str, Any]) -> Optional[str]:
        url = self._url("subscriptions", subscription_id, "items")
        return self._extract_id(self._request("POST", url, json=item))

    def update_subscription_items(self, subscription_id: str, item_ids: List[str]) -> None:
        url = self._url("subscriptions", subscription_id, "items")
        self._request("PUT", url, json={"items": list(item_ids)})

    def log_activity(self, subscription_id: str, message: str) -> None:
        url = self._url("subscriptions", subscription_id, "activity")
        self._request("POST", url, json={"message": message})

    # Gateways

    def get_supported_gateways(self) -> List[str]:
        gateways = self._unwrap(self._request("GET", self._url("gateways")))
        if isinstance(gateways, dict):
            return list(gateways.keys())
        return [g["id"] if isinstance(g, dict) else str(g) for g in gateways or []]

    def get_gateway(self, gateway_id: str) -> Optional[Dict[str, Any]]:
        return self._unwrap(self._request("GET", self._url("gateways", gateway_id), allow_missing=True))

    def validate_connection(self) -> bool:
        """Validate connection to the API."""
        try:
            self._rate_limit_wait()
            response = self._session.get(self.base_url, timeout=self.config.timeout)
            return response.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.error(f"API connection validation failed: {e}")
            return False
