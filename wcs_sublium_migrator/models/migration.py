"""Migration state and configuration models."""

import copy
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


class MigrationStatus(str, Enum):
    """Coarse status of the migration state machine."""
    IDLE = "idle"
    DISCOVERING = "discovering"
    PRODUCTS_MIGRATING = "products_migrating"
    SUBSCRIPTIONS_MIGRATING = "subscriptions_migrating"
    COMPLETED = "completed"
    PAUSED = "paused"
    ERROR = "error"


@dataclass
class ProductsProgress:
    """Checkpoint counters for the products pipeline."""
    total_products: int = 0
    processed_products: int = 0
    created_plans: int = 0
    failed_products: int = 0
    last_product_id: int = 0
    current_batch: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_products": self.total_products,
            "processed_products": self.processed_products,
            "created_plans": self.created_plans,
            "failed_products": self.failed_products,
            "last_product_id": self.last_product_id,
            "current_batch": self.current_batch,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductsProgress":
        """Create from dictionary representation."""
        return cls(
            total_products=int(data.get("total_products", 0) or 0),
            processed_products=int(data.get("processed_products", 0) or 0),
            created_plans=int(data.get("created_plans", 0) or 0),
            failed_products=int(data.get("failed_products", 0) or 0),
            last_product_id=int(data.get("last_product_id", 0) or 0),
            current_batch=int(data.get("current_batch", 0) or 0),
        )


@dataclass
class SubscriptionsProgress:
    """Checkpoint counters for the subscriptions pipeline."""
    total_subscriptions: int = 0
    processed_subscriptions: int = 0
    created_subscriptions: int = 0
    failed_subscriptions: int = 0
    last_subscription_id: int = 0
    current_batch: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_subscriptions": self.total_subscriptions,
            "processed_subscriptions": self.processed_subscriptions,
            "created_subscriptions": self.created_subscriptions,
            "failed_subscriptions": self.failed_subscriptions,
            "last_subscription_id": self.last_subscription_id,
            "current_batch": self.current_batch,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriptionsProgress":
        """Create from dictionary representation."""
        return cls(
            total_subscriptions=int(data.get("total_subscriptions", 0) or 0),
            processed_subscriptions=int(data.get("processed_subscriptions", 0) or 0),
            created_subscriptions=int(data.get("created_subscriptions", 0) or 0),
            failed_subscriptions=int(data.get("failed_subscriptions", 0) or 0),
            last_subscription_id=int(data.get("last_subscription_id", 0) or 0),
            current_batch=int(data.get("current_batch", 0) or 0),
        )


@dataclass
class MigrationState:
    """
    The single migration record for an installation.

    Always built through from_dict so that a stored record missing newer
    fields is filled in with defaults.
    """
    status: MigrationStatus = MigrationStatus.IDLE
    products_migration: ProductsProgress = field(default_factory=ProductsProgress)
    subscriptions_migration: SubscriptionsProgress = field(default_factory=SubscriptionsProgress)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    last_activity: Optional[str] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "status": self.status.value,
            "products_migration": self.products_migration.to_dict(),
            "subscriptions_migration": self.subscriptions_migration.to_dict(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "last_activity": self.last_activity,
            "errors": copy.deepcopy(self.errors),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MigrationState":
        """Create from dictionary representation, merged over defaults."""
        data = data or {}
        try:
            status = MigrationStatus(data.get("status", MigrationStatus.IDLE.value))
        except ValueError:
            status = MigrationStatus.IDLE

        return cls(
            status=status,
            products_migration=ProductsProgress.from_dict(data.get("products_migration") or {}),
            subscriptions_migration=SubscriptionsProgress.from_dict(data.get("subscriptions_migration") or {}),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            last_activity=data.get("last_activity"),
            errors=list(data.get("errors") or []),
        )

    @classmethod
    def defaults(cls) -> Dict[str, Any]:
        """Default state as a plain dictionary."""
        return cls().to_dict()


@dataclass
class CatalogConfig:
    """Connection settings for a source or target catalog."""
    type: str = "api"  # api, json
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    file_path: Optional[str] = None
    timeout: float = 30.0
    rate_limit: Optional[float] = None  # Requests per second
    retry_config: Dict[str, Any] = field(default_factory=lambda: {
        "max_retries": 3,
        "backoff_factor": 2.0,
    })
    endpoints: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets omitted)."""
        return {
            "type": self.type,
            "base_url": self.base_url,
            "file_path": self.file_path,
            "timeout": self.timeout,
            "rate_limit": self.rate_limit,
            "retry_config": self.retry_config,
            "endpoints": self.endpoints,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogConfig":
        """Create from dictionary representation."""
        config = cls(
            type=data.get("type", "api"),
            base_url=data.get("base_url"),
            api_key=data.get("api_key"),
            api_secret=data.get("api_secret"),
            file_path=data.get("file_path"),
            timeout=data.get("timeout", 30.0),
            rate_limit=data.get("rate_limit"),
            endpoints=data.get("endpoints", {}),
        )
        if data.get("retry_config"):
            config.retry_config.update(data["retry_config"])
        return config


@dataclass
class MigrationConfig:
    """Configuration for the migration engine."""
    source: CatalogConfig = field(default_factory=CatalogConfig)
    target: CatalogConfig = field(default_factory=CatalogConfig)

    # Batching
    products_batch_size: int = 50
    subscriptions_batch_size: int = 10
    max_errors: int = 200  # Size of the error ring buffer

    # Persistence
    data_dir: str = "./data"
    state_file: Optional[str] = None
    queue_file: Optional[str] = None
    audit_log_file: Optional[str] = None

    # Source system
    site_timezone: str = "UTC"
    min_source_version: str = "2.0.0"

    def __post_init__(self):
        self.state_file = self.state_file or os.path.join(self.data_dir, "migration_state.json")
        self.queue_file = self.queue_file or os.path.join(self.data_dir, "migration_queue.json")
        self.audit_log_file = self.audit_log_file or os.path.join(self.data_dir, "blocked_renewals.jsonl")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "products_batch_size": self.products_batch_size,
            "subscriptions_batch_size": self.subscriptions_batch_size,
            "max_errors": self.max_errors,
            "data_dir": self.data_dir,
            "state_file": self.state_file,
            "queue_file": self.queue_file,
            "audit_log_file": self.audit_log_file,
            "site_timezone": self.site_timezone,
            "min_source_version": self.min_source_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        return cls(
            source=CatalogConfig.from_dict(data.get("source", {})),
            target=CatalogConfig.from_dict(data.get("target", {})),
            products_batch_size=data.get("products_batch_size", 50),
            subscriptions_batch_size=data.get("subscriptions_batch_size", 10),
            max_errors=data.get("max_errors", 200),
            data_dir=data.get("data_dir", "./data"),
            state_file=data.get("state_file"),
            queue_file=data.get("queue_file"),
            audit_log_file=data.get("audit_log_file"),
            site_timezone=data.get("site_timezone", "UTC"),
            min_source_version=data.get("min_source_version", "2.0.0"),
        )

    @classmethod
    def from_json_file(cls, path: str) -> "MigrationConfig":
        """Load configuration from a JSON file and apply environment overrides."""
        with open(path) as f:
            data = json.load(f)
        config = cls.from_dict(data)
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Override connection settings from environment variables."""
        self.source.base_url = os.environ.get("WCS_URL", self.source.base_url)
        self.source.api_key = os.environ.get("WCS_CONSUMER_KEY", self.source.api_key)
        self.source.api_secret = os.environ.get("WCS_CONSUMER_SECRET", self.source.api_secret)
        self.target.base_url = os.environ.get("SUBLIUM_URL", self.target.base_url)
        self.target.api_key = os.environ.get("SUBLIUM_API_KEY", self.target.api_key)
