"""JSON document loader used for dry runs and offline migrations."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import BaseLoader

logger = logging.getLogger(__name__)


class JSONLoader(BaseLoader):
    """
    Loader that keeps the target catalog in a JSON document.

    Records are held in memory and written to file_path after every
    mutation when a path is given. The document layout is:

        {
            "gateways": ["fkwcs_stripe", ...],
            "plan_groups": {id: {...}},
            "plans": {id: {...}},
            "plan_relations": {id: {...}},
            "subscriptions": {id: {...}},
            "items": {id: {...}},
            "activity": [{subscription_id, message, time}],
            "next_id": int
        }
    """

    COLLECTIONS = ("plan_groups", "plans", "plan_relations", "subscriptions", "items")

    def __init__(
        self,
        file_path: Optional[str] = None,
        gateways: Optional[List[str]] = None,
        target_service: str = "sublium"
    ):
        """
        Initialize the JSON loader.

        Args:
            file_path: Optional path the document is loaded from and saved to
            gateways: Supported gateway IDs when starting a new document
            target_service: Name of the target service
        """
        super().__init__(target_service)
        self.file_path = file_path
        self.document: Dict[str, Any] = {
            "gateways": list(gateways or []),
            "activity": [],
            "next_id": 1,
        }
        for collection in self.COLLECTIONS:
            self.document[collection] = {}

        if file_path and Path(file_path).exists():
            with open(file_path, "r", encoding="utf-8") as f:
                self.document.update(json.load(f))

    def save(self) -> None:
        """Write the document to its file."""
        if not self.file_path:
            return
        directory = os.path.dirname(self.file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.file_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.document, f, indent=2, default=str)
        os.replace(tmp_path, self.file_path)

    def _insert(self, collection: str, data: Dict[str, Any]) -> str:
        record_id = str(self.document["next_id"])
        self.document["next_id"] += 1
        record = dict(data)
        record["id"] = record_id
        self.document[collection][record_id] = record
        self.save()
        return record_id

    def records(self, collection: str) -> List[Dict[str, Any]]:
        """All records of a collection, in creation order."""
        return list(self.document[collection].values())

    # Plans

    def create_plan_group(self, data: Dict[str, Any]) -> Optional[str]:
        return self._insert("plan_groups", data)

    def create_plan(self, data: Dict[str, Any]) -> Optional[str]:
        return self._insert("plans", data)

    def create_plan_relation(self, data: Dict[str, Any]) -> Optional[str]:
        return self._insert("plan_relations", data)

    def find_plan_relations(self, object_id: int, variation_id: int = 0) -> List[Dict[str, Any]]:
        return [
            relation for relation in self.document["plan_relations"].values()
            if int(relation.get("oid", 0)) == int(object_id)
            and int(relation.get("vid", 0)) == int(variation_id)
            and int(relation.get("status", 1)) == 1
        ]

    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        return self.document["plans"].get(str(plan_id))

    # Subscriptions

    def create_subscription(self, data: Dict[str, Any]) -> Optional[str]:
        return self._insert("subscriptions", data)

    def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        return self.document["subscriptions"].get(str(subscription_id))

    def update_subscription(self, subscription_id: str, fields: Dict[str, Any]) -> None:
        subscription = self.document["subscriptions"][str(subscription_id)]
        for key, value in fields.items():
            if key == "meta_data" and isinstance(value, dict):
                subscription.setdefault("meta_data", {}).update(value)
            else:
                subscription[key] = value
        self.save()

    def add_subscription_item(self, subscription_id: str, item: Dict[str, Any]) -> Optional[str]:
        record = dict(item)
        record["subscription_id"] = str(subscription_id)
        return self._insert("items", record)

    def update_subscription_items(self, subscription_id: str, item_ids: List[str]) -> None:
        self.update_subscription(subscription_id, {"items": list(item_ids)})

    def log_activity(self, subscription_id: str, message: str) -> None:
        self.document["activity"].append({
            "subscription_id": str(subscription_id),
            "message": message,
            "time": datetime.utcnow().isoformat(),
        })
        self.save()

    # Gateways

    def get_supported_gateways(self) -> List[str]:
        return list(self.document.get("gateways", []))

    def get_gateway(self, gateway_id: str) -> Optional[Dict[str, Any]]:
        if gateway_id in self.document.get("gateways", []):
            return {"id": gateway_id}
        return None
