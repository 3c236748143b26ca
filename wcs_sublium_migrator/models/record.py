"""Record models for source and target billing data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum, IntEnum
from datetime import datetime


# Source meta keys written or read by the migrator
MIGRATED_FLAG_KEY = "_sublium_subscription_migrated"
MIGRATED_REF_KEY = "_sublium_wcs_subscription_id"
RENEWAL_FLAG_KEY = "_sublium_wcs_subscription_renewal"
ADDON_SCHEMES_KEY = "_wcsatt_schemes"


class ProductType(str, Enum):
    """Source product types the migrator cares about."""
    SUBSCRIPTION = "subscription"
    VARIABLE_SUBSCRIPTION = "variable-subscription"
    SIMPLE = "simple"
    VARIABLE = "variable"


class PlanType(IntEnum):
    """Target plan types."""
    RECURRING_WITH_DISCOUNT = 1
    PLAIN_RECURRING = 2


class BillingInterval(IntEnum):
    """Target encoding of billing period units."""
    DAY = 1
    WEEK = 2
    MONTH = 3
    YEAR = 4


class TargetSubscriptionStatus(IntEnum):
    """Target subscription status codes."""
    PENDING = 1
    ACTIVE = 2
    ONHOLD = 3
    CANCELLED = 4
    COMPLETED = 5
    PENDING_CANCEL = 6
    TRIALING = 7


def meta_to_dict(meta_data: Any) -> Dict[str, Any]:
    """Flatten a WooCommerce meta_data list ([{key, value}, ...]) into a dict."""
    if isinstance(meta_data, dict):
        return dict(meta_data)
    result = {}
    for entry in meta_data or []:
        if isinstance(entry, dict) and "key" in entry:
            result.setdefault(entry["key"], entry.get("value"))
    return result


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


@dataclass
class LineItem:
    """A line item on a source subscription."""
    id: int
    product_id: int
    variation_id: int = 0
    quantity: int = 1
    name: str = ""
    subtotal: str = "0"
    total: str = "0"
    subtotal_tax: str = "0"
    total_tax: str = "0"
    tax_class: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        """Create from a WooCommerce line item dictionary."""
        return cls(
            id=_to_int(data.get("id")),
            product_id=_to_int(data.get("product_id")),
            variation_id=_to_int(data.get("variation_id")),
            quantity=_to_int(data.get("quantity"), 1),
            name=data.get("name") or "",
            subtotal=str(data.get("subtotal") or "0"),
            total=str(data.get("total") or "0"),
            subtotal_tax=str(data.get("subtotal_tax") or "0"),
            total_tax=str(data.get("total_tax") or "0"),
            tax_class=data.get("tax_class") or "",
        )

    def to_item_data(self) -> Dict[str, Any]:
        """Item payload in the target's line item format."""
        return {
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "name": self.name,
            "subtotal": self.subtotal,
            "total": self.total,
            "subtotal_tax": self.subtotal_tax,
            "total_tax": self.total_tax,
            "tax_class": self.tax_class,
        }


@dataclass
class SourceSubscription:
    """A subscription read from the source system."""
    id: int
    status: str = "pending"
    parent_id: int = 0
    customer_id: int = 0
    currency: str = ""
    total: str = "0"
    billing_period: str = ""
    billing_interval: int = 1
    payment_method: str = ""
    payment_method_title: str = ""
    date_created_gmt: Optional[str] = None
    next_payment_date_gmt: Optional[str] = None
    end_date_gmt: Optional[str] = None
    trial_end_date_gmt: Optional[str] = None
    last_payment_date_gmt: Optional[str] = None
    billing: Dict[str, Any] = field(default_factory=dict)
    shipping: Dict[str, Any] = field(default_factory=dict)
    line_items: List[LineItem] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceSubscription":
        """Create from a WooCommerce REST subscription dictionary."""
        return cls(
            id=_to_int(data.get("id")),
            status=data.get("status") or "pending",
            parent_id=_to_int(data.get("parent_id")),
            customer_id=_to_int(data.get("customer_id")),
            currency=data.get("currency") or "",
            total=str(data.get("total") or "0"),
            billing_period=data.get("billing_period") or "",
            billing_interval=_to_int(data.get("billing_interval"), 1),
            payment_method=data.get("payment_method") or "",
            payment_method_title=data.get("payment_method_title") or "",
            date_created_gmt=data.get("date_created_gmt"),
            next_payment_date_gmt=data.get("next_payment_date_gmt"),
            end_date_gmt=data.get("end_date_gmt"),
            trial_end_date_gmt=data.get("trial_end_date_gmt"),
            last_payment_date_gmt=data.get("last_payment_date_gmt"),
            billing=dict(data.get("billing") or {}),
            shipping=dict(data.get("shipping") or {}),
            line_items=[LineItem.from_dict(item) for item in data.get("line_items") or []],
            meta=meta_to_dict(data.get("meta_data")),
        )

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Get a meta value by key."""
        value = self.meta.get(key)
        return default if value is None else value

    @property
    def migration_reference(self) -> Optional[str]:
        """Target subscription id recorded by the migration marker, if any."""
        ref = self.meta.get(MIGRATED_REF_KEY)
        return str(ref) if ref not in (None, "", 0, "0") else None

    @property
    def is_marked_migrated(self) -> bool:
        """Check whether the migration marker flag is set."""
        return self.meta.get(MIGRATED_FLAG_KEY) == "yes"


@dataclass
class SourceProduct:
    """A product read from the source system."""
    id: int
    name: str = ""
    type: str = ProductType.SIMPLE.value
    status: str = "publish"
    virtual: bool = False
    regular_price: str = ""
    sale_price: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)
    variations: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceProduct":
        """Create from a WooCommerce REST product dictionary."""
        variations = [v for v in data.get("variations") or [] if isinstance(v, dict)]
        return cls(
            id=_to_int(data.get("id")),
            name=data.get("name") or "",
            type=data.get("type") or ProductType.SIMPLE.value,
            status=data.get("status") or "publish",
            virtual=bool(data.get("virtual", False)),
            regular_price=str(data.get("regular_price") or ""),
            sale_price=str(data.get("sale_price") or ""),
            meta=meta_to_dict(data.get("meta_data")),
            variations=variations,
        )

    @property
    def addon_schemes(self) -> List[Dict[str, Any]]:
        """Attachable subscription schemes stored on the product."""
        schemes = self.meta.get(ADDON_SCHEMES_KEY)
        if isinstance(schemes, dict):
            schemes = list(schemes.values())
        if not isinstance(schemes, list):
            return []
        return [s for s in schemes if isinstance(s, dict)]


@dataclass
class PricingScheme:
    """One subscription pricing scheme extracted from a product."""
    period: str
    interval: int
    length: int = 0
    trial_length: int = 0
    trial_period: str = ""
    signup_fee: float = 0.0
    discount: float = 0.0
    price: Optional[float] = None
    regular_price: str = ""
    sale_price: str = ""
    variation_id: int = 0

    @property
    def billing_interval(self) -> int:
        """Target code for the billing period."""
        return period_to_interval(self.period)

    @property
    def trial_days(self) -> int:
        """Trial converted to days."""
        return trial_to_days(self.trial_length, self.trial_period)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "period": self.period,
            "interval": self.interval,
            "length": self.length,
            "trial_length": self.trial_length,
            "trial_period": self.trial_period,
            "signup_fee": self.signup_fee,
            "discount": self.discount,
            "price": self.price,
            "regular_price": self.regular_price,
            "sale_price": self.sale_price,
            "variation_id": self.variation_id,
        }


PERIOD_INTERVALS = {
    "day": BillingInterval.DAY,
    "week": BillingInterval.WEEK,
    "month": BillingInterval.MONTH,
    "year": BillingInterval.YEAR,
}

TRIAL_DAY_MULTIPLIERS = {"day": 1, "week": 7, "month": 30, "year": 365}


def period_to_interval(period: str) -> int:
    """Convert a billing period name to the target interval code (month by default)."""
    return int(PERIOD_INTERVALS.get((period or "").lower(), BillingInterval.MONTH))


def trial_to_days(trial_length: int, trial_period: str) -> int:
    """Convert a trial length and period to a number of days."""
    if not trial_length or trial_length <= 0:
        return 0
    return trial_length * TRIAL_DAY_MULTIPLIERS.get((trial_period or "").lower(), 0)


@dataclass
class PlanDefinition:
    """A target plan, either persisted (products) or inlined (subscriptions)."""
    title: str
    type: int
    billing_frequency: int
    billing_interval: int
    billing_length: int = 0
    signup_fee: Dict[str, Any] = field(default_factory=dict)
    offer: Dict[str, Any] = field(default_factory=dict)
    free_trial: int = 0
    status: int = 1
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "title": self.title,
            "type": self.type,
            "billing_frequency": self.billing_frequency,
            "billing_interval": self.billing_interval,
            "billing_length": self.billing_length,
            "signup_fee": self.signup_fee,
            "offer": self.offer,
            "free_trial": self.free_trial,
            "status": self.status,
            "data": self.data,
        }


@dataclass
class TargetSubscription:
    """A subscription payload ready to be created in the target system."""
    source_subscription_id: int
    parent_order_id: int
    user_id: int
    status: int
    gateway: str
    gateway_mode: int
    currency: str
    totals: str
    base_totals: str
    plan_type: int
    plan_id: List[str] = field(default_factory=lambda: ["0"])
    created_at: Optional[str] = None
    created_at_utc: Optional[str] = None
    next_payment_date: Optional[str] = None
    next_payment_date_utc: Optional[str] = None
    end_date: Optional[str] = None
    end_date_utc: Optional[str] = None
    last_payment_date: Optional[str] = None
    items: List[str] = field(default_factory=list)
    search_str: str = ""
    meta_data: Dict[str, Any] = field(default_factory=dict)
    line_items: List[LineItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the target create payload."""
        return {
            "source_subscription_id": self.source_subscription_id,
            "parent_order_id": self.parent_order_id,
            "user_id": self.user_id,
            "status": self.status,
            "gateway": self.gateway,
            "gateway_mode": self.gateway_mode,
            "currency": self.currency,
            "totals": self.totals,
            "base_totals": self.base_totals,
            "plan_type": self.plan_type,
            "plan_id": self.plan_id,
            "created_at": self.created_at,
            "created_at_utc": self.created_at_utc,
            "next_payment_date": self.next_payment_date,
            "next_payment_date_utc": self.next_payment_date_utc,
            "end_date": self.end_date,
            "end_date_utc": self.end_date_utc,
            "last_payment_date": self.last_payment_date,
            "items": self.items,
            "search_str": self.search_str,
            "meta_data": self.meta_data,
        }


@dataclass
class MigrationResult:
    """Result of migrating one source record."""
    record_id: str
    target_id: Optional[str] = None  # ID assigned by target system
    success: bool = False
    skipped: bool = False  # Already migrated, nothing created
    created_count: int = 0
    error: Optional[str] = None
    migrated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "record_id": self.record_id,
            "target_id": self.target_id,
            "success": self.success,
            "skipped": self.skipped,
            "created_count": self.created_count,
            "error": self.error,
            "migrated_at": self.migrated_at.isoformat() if self.migrated_at else None,
        }


@dataclass
class BatchResult:
    """Outcome of one pipeline batch."""
    processed: int = 0
    created: int = 0
    failed: int = 0
    has_more: bool = False
    next_offset: int = 0
    paused: bool = False
    message: str = ""
    results: List[MigrationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "processed": self.processed,
            "created": self.created,
            "failed": self.failed,
            "has_more": self.has_more,
            "next_offset": self.next_offset,
            "paused": self.paused,
            "message": self.message,
        }
