"""Transformation of source products and subscriptions into target records."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime
from dateutil import parser as date_parser
from dateutil import tz

from ..exceptions import TransformError
from ..models.record import (
    MIGRATED_FLAG_KEY,
    MIGRATED_REF_KEY,
    PERIOD_INTERVALS,
    PlanDefinition,
    PlanType,
    PricingScheme,
    ProductType,
    SourceProduct,
    SourceSubscription,
    TargetSubscription,
    TargetSubscriptionStatus,
    meta_to_dict,
    period_to_interval,
    trial_to_days,
)

logger = logging.getLogger(__name__)


DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ADDITIONAL_DESCRIPTION = (
    "Enjoy automatic renewals on your schedule. No commitment, modify or cancel anytime."
)

STATUS_MAP = {
    "pending": TargetSubscriptionStatus.PENDING,
    "active": TargetSubscriptionStatus.ACTIVE,
    "on-hold": TargetSubscriptionStatus.ONHOLD,
    "cancelled": TargetSubscriptionStatus.CANCELLED,
    "switched": TargetSubscriptionStatus.COMPLETED,
    "expired": TargetSubscriptionStatus.COMPLETED,
    "pending-cancel": TargetSubscriptionStatus.PENDING_CANCEL,
    "trial": TargetSubscriptionStatus.TRIALING,
}

# Source meta keys that must not be copied onto the target subscription
EXCLUDED_META_KEYS = frozenset([
    MIGRATED_REF_KEY,
    MIGRATED_FLAG_KEY,
    "_subscription_renewal_order",
    "_subscription_switch",
    "_subscription_resubscribe",
])

BILLING_ADDRESS_FIELDS = [
    "first_name", "last_name", "company", "address_1", "address_2",
    "city", "state", "postcode", "country", "email", "phone",
]
SHIPPING_ADDRESS_FIELDS = BILLING_ADDRESS_FIELDS[:-2]

PERIOD_LABELS = {"day": "Daily", "week": "Weekly", "month": "Monthly", "year": "Yearly"}
PERIOD_PLURALS = {"day": "Days", "week": "Weeks", "month": "Months", "year": "Years"}


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _parse_positive_int(value: Any) -> Optional[int]:
    parsed = _parse_int(value)
    return parsed if parsed and parsed > 0 else None


def _parse_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_period(value: Any) -> Optional[str]:
    period = str(value or "").strip().lower()
    return period if period in PERIOD_INTERVALS else None


FieldChain = List[Tuple[str, Callable[[Any], Any]]]

# Ordered (key, parser) fallbacks; legacy stores use inconsistent key names
PRICE_CHAIN: FieldChain = [
    ("_subscription_price", _parse_float),
    ("subscription_price", _parse_float),
    ("subscription_regular_price", _parse_float),
    ("_price", _parse_float),
    ("price", _parse_float),
    ("regular_price", _parse_float),
]
PERIOD_CHAIN: FieldChain = [
    ("_subscription_period", _parse_period),
    ("subscription_period", _parse_period),
    ("billing_period", _parse_period),
    ("period", _parse_period),
]
INTERVAL_CHAIN: FieldChain = [
    ("_subscription_period_interval", _parse_positive_int),
    ("subscription_period_interval", _parse_positive_int),
    ("billing_interval", _parse_positive_int),
    ("interval", _parse_positive_int),
]
LENGTH_CHAIN: FieldChain = [
    ("_subscription_length", _parse_int),
    ("subscription_length", _parse_int),
    ("length", _parse_int),
]
TRIAL_LENGTH_CHAIN: FieldChain = [
    ("_subscription_trial_length", _parse_int),
    ("subscription_trial_length", _parse_int),
    ("trial_length", _parse_int),
]
TRIAL_PERIOD_CHAIN: FieldChain = [
    ("_subscription_trial_period", _parse_period),
    ("subscription_trial_period", _parse_period),
    ("trial_period", _parse_period),
]
SIGNUP_FEE_CHAIN: FieldChain = [
    ("_subscription_sign_up_fee", _parse_float),
    ("subscription_sign_up_fee", _parse_float),
    ("sign_up_fee", _parse_float),
    ("signup_fee", _parse_float),
]
DISCOUNT_CHAIN: FieldChain = [
    ("_subscription_discount", _parse_float),
    ("subscription_discount", _parse_float),
    ("discount", _parse_float),
]


def resolve_field(data: Dict[str, Any], chain: FieldChain, default: Any = None) -> Any:
    """Return the first value in the chain that is present and parses."""
    for key, parser in chain:
        if key in data:
            value = parser(data[key])
            if value is not None:
                return value
    return default


def format_amount(value: float) -> str:
    """Format a money amount without trailing zeros ("10.50" -> "10.5", "5.00" -> "5")."""
    text = f"{float(value or 0):.2f}".rstrip("0").rstrip(".")
    return text or "0"


class TransformEngine:
    """
    Engine for converting source records into target plans and subscriptions.

    Supports:
    - Pricing scheme extraction for simple, variable and add-on products
    - Persisted plan definitions and plan relations
    - Inline plan definitions for migrated subscriptions
    - Date conversion into local and UTC forms
    """

    def __init__(self, site_timezone: str = "UTC"):
        """
        Initialize the transform engine.

        Args:
            site_timezone: IANA name of the store's timezone
        """
        self.site_timezone = site_timezone
        self._tz = tz.gettz(site_timezone) or tz.tzutc()

    # Pricing schemes

    def extract_schemes(self, product: SourceProduct, addon_active: bool = True) -> List[PricingScheme]:
        """
        Extract every valid pricing scheme from a product.

        Args:
            product: Source product
            addon_active: Whether attachable add-on schemes are honoured

        Returns:
            Valid schemes; empty when none could be extracted
        """
        base = {"regular_price": product.regular_price, "sale_price": product.sale_price}
        base.update(product.meta)
        schemes: List[PricingScheme] = []

        if product.type == ProductType.SUBSCRIPTION.value:
            scheme = self._scheme_from(base, product.regular_price, product.sale_price)
            if scheme:
                schemes.append(scheme)

        elif product.type == ProductType.VARIABLE_SUBSCRIPTION.value:
            for variation in product.variations:
                data = dict(base)
                data.update({k: v for k, v in variation.items() if k not in ("meta_data", "id")})
                data.update(_variation_meta(variation))
                scheme = self._scheme_from(
                    data,
                    str(variation.get("regular_price") or ""),
                    str(variation.get("sale_price") or ""),
                    variation_id=_parse_int(variation.get("id")) or 0,
                )
                if scheme:
                    schemes.append(scheme)

        if addon_active:
            for addon_scheme in product.addon_schemes:
                data = {"regular_price": product.regular_price, "sale_price": product.sale_price}
                data.update(addon_scheme)
                regular, sale = product.regular_price, product.sale_price
                if addon_scheme.get("subscription_pricing_method") == "override":
                    regular = str(addon_scheme.get("subscription_regular_price") or regular)
                    sale = str(addon_scheme.get("subscription_sale_price") or "")
                scheme = self._scheme_from(data, regular, sale)
                if scheme:
                    schemes.append(scheme)

        return schemes

    def _scheme_from(
        self,
        data: Dict[str, Any],
        regular_price: str,
        sale_price: str,
        variation_id: int = 0
    ) -> Optional[PricingScheme]:
        period = resolve_field(data, PERIOD_CHAIN)
        interval = resolve_field(data, INTERVAL_CHAIN)
        if not period or not interval:
            return None

        price = resolve_field(data, PRICE_CHAIN)
        regular = regular_price or (format_amount(price) if price is not None else "")
        return PricingScheme(
            period=period,
            interval=interval,
            length=max(resolve_field(data, LENGTH_CHAIN, 0), 0),
            trial_length=max(resolve_field(data, TRIAL_LENGTH_CHAIN, 0), 0),
            trial_period=resolve_field(data, TRIAL_PERIOD_CHAIN, ""),
            signup_fee=max(resolve_field(data, SIGNUP_FEE_CHAIN, 0.0), 0.0),
            discount=max(resolve_field(data, DISCOUNT_CHAIN, 0.0), 0.0),
            price=price,
            regular_price=regular,
            sale_price=sale_price or regular,
            variation_id=variation_id,
        )

    def select_scheme(self, product: Optional[SourceProduct], variation_id: int = 0) -> Optional[PricingScheme]:
        """Pick the scheme for a variation, else the product's first scheme."""
        if product is None:
            return None
        schemes = self.extract_schemes(product)
        for scheme in schemes:
            if variation_id and scheme.variation_id == variation_id:
                return scheme
        return schemes[0] if schemes else None

    # Plans

    @staticmethod
    def plan_type_for(product: Optional[SourceProduct]) -> int:
        """Virtual products get plain recurring plans, physical ones subscribe-and-save plans."""
        if product is not None and not product.virtual:
            return int(PlanType.RECURRING_WITH_DISCOUNT)
        return int(PlanType.PLAIN_RECURRING)

    @staticmethod
    def generate_plan_title(period: str, interval: int) -> str:
        label = PERIOD_LABELS.get(period, (period or "").capitalize())
        if interval == 1 or period not in PERIOD_PLURALS:
            return label
        return f"Every {interval} {PERIOD_PLURALS[period]}"

    @staticmethod
    def generate_display_summary(signup_fee: float, trial_days: int) -> str:
        if trial_days > 0 and signup_fee > 0:
            return (
                f"Billed {{{{subscription_price}}}} after {trial_days} days free trial "
                "and a one-time {{signup_fee}} signup fee."
            )
        if trial_days > 0:
            return f"Billed {{{{subscription_price}}}} after {trial_days} days free trial."
        if signup_fee > 0:
            return "Billed {{subscription_price}} with a one-time {{signup_fee}} signup fee."
        return "Billed {{subscription_price}}."

    def build_plan(
        self,
        period: str,
        interval: int,
        length: int,
        trial_days: int,
        signup_fee: float,
        discount: float,
        plan_type: int
    ) -> PlanDefinition:
        """Build a plan definition from billing terms."""
        if discount > 0:
            offer = {
                "price_type": "discount",
                "discount_type": "percentage",
                "discount_value": format_amount(discount),
            }
        else:
            offer = {"price_type": "default", "discount_type": "percentage", "discount_value": "0"}

        return PlanDefinition(
            title=self.generate_plan_title(period, interval),
            type=plan_type,
            billing_frequency=interval,
            billing_interval=period_to_interval(period),
            billing_length=length,
            signup_fee={"signup_fee_type": "fixed", "signup_amount": format_amount(signup_fee)},
            offer=offer,
            free_trial=trial_days,
            status=1,
            data={
                "subscription_ends": "after_payments" if length > 0 else "never",
                "subscription_ends_payment_count": length,
                "recommended_text": "",
                "additional_description": ADDITIONAL_DESCRIPTION,
                "display_summary": self.generate_display_summary(signup_fee, trial_days),
            },
        )

    def plan_from_scheme(self, scheme: PricingScheme, product: SourceProduct) -> PlanDefinition:
        """Build the persisted plan for one product scheme."""
        return self.build_plan(
            period=scheme.period,
            interval=scheme.interval,
            length=scheme.length,
            trial_days=scheme.trial_days,
            signup_fee=scheme.signup_fee,
            discount=scheme.discount,
            plan_type=self.plan_type_for(product),
        )

    @staticmethod
    def plan_group_for(product: SourceProduct, plan_type: int) -> Dict[str, Any]:
        """Plan group fields for a product."""
        return {
            "type": plan_type,
            "title": f"{product.name} - Subscription Plans",
            "product_type": 1,
            "data": {"plan_order": []},
        }

    @staticmethod
    def relation_for(plan_id: str, product: SourceProduct, scheme: PricingScheme) -> Dict[str, Any]:
        """Plan relation binding a plan to a product or variation."""
        return {
            "plan_id": plan_id,
            "oid": product.id,
            "vid": scheme.variation_id,
            "type": 1,
            "status": 1,
            "relation_data": {
                "regular_price": scheme.regular_price,
                "sale_price": scheme.sale_price,
            },
        }

    @staticmethod
    def plan_matches(plan: Dict[str, Any], definition: PlanDefinition) -> bool:
        """
        Check whether a stored plan has the same billing terms.

        Frequency, interval and trial must match, and so must the signup
        fee and discount.
        """
        if _parse_int(plan.get("billing_frequency")) != definition.billing_frequency:
            return False
        if _parse_int(plan.get("billing_interval")) != definition.billing_interval:
            return False
        if (_parse_int(plan.get("free_trial")) or 0) != definition.free_trial:
            return False

        signup_fee = _json_field(plan.get("signup_fee"))
        offer = _json_field(plan.get("offer"))
        stored_fee = _parse_float(signup_fee.get("signup_amount")) or 0.0
        stored_discount = _parse_float(offer.get("discount_value")) or 0.0
        wanted_fee = float(definition.signup_fee.get("signup_amount") or 0)
        wanted_discount = float(definition.offer.get("discount_value") or 0)

        return abs(stored_fee - wanted_fee) < 0.005 and abs(stored_discount - wanted_discount) < 0.005

    # Subscriptions

    def convert_date(self, value: Any) -> Tuple[Optional[str], Optional[str]]:
        """
        Convert a source GMT date into (local, utc) strings.

        Naive values are taken as UTC; empty and zero dates give (None, None).
        """
        if value in (None, "", 0, "0") or str(value).startswith("0000"):
            return None, None
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            logger.warning(f"Unparseable date: {value}")
            return None, None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=tz.tzutc())
        utc = dt.astimezone(tz.tzutc())
        local = dt.astimezone(self._tz)
        return local.strftime(DATE_FORMAT), utc.strftime(DATE_FORMAT)

    @staticmethod
    def map_status(source_status: str) -> int:
        return int(STATUS_MAP.get((source_status or "").lower(), TargetSubscriptionStatus.PENDING))

    @staticmethod
    def extract_address(address: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
        return {f: address[f] for f in fields if address.get(f) not in (None, "")}

    @staticmethod
    def build_search_string(subscription: SourceSubscription, parent_order: Dict[str, Any]) -> str:
        billing = subscription.billing
        name = " ".join(p for p in [billing.get("first_name"), billing.get("last_name")] if p)
        order_number = parent_order.get("number") or parent_order.get("id") or subscription.parent_id
        parts = [name, billing.get("email") or "", f"#{order_number}", f"#{subscription.id}"]
        return " ".join(p for p in parts if p)

    def build_inline_plan(
        self,
        subscription: SourceSubscription,
        product: Optional[SourceProduct]
    ) -> Dict[str, Any]:
        """
        Build the ephemeral plan attached to a migrated subscription.

        Billing period and interval come from the subscription itself;
        length, trial and signup fee from the first product's scheme.
        """
        first_item = subscription.line_items[0] if subscription.line_items else None
        scheme = self.select_scheme(product, first_item.variation_id if first_item else 0)

        period = _parse_period(subscription.billing_period) or "month"
        interval = subscription.billing_interval if subscription.billing_interval > 0 else 1
        length = scheme.length if scheme else 0
        trial_days = scheme.trial_days if scheme else 0
        signup_fee = scheme.signup_fee if scheme else 0.0

        plan = self.build_plan(
            period=period,
            interval=interval,
            length=length,
            trial_days=trial_days,
            signup_fee=signup_fee,
            discount=0.0,
            plan_type=self.plan_type_for(product),
        ).to_dict()

        relation_data = {}
        if scheme:
            relation_data = {"regular_price": scheme.regular_price, "sale_price": scheme.sale_price}
        elif product is not None:
            relation_data = {
                "regular_price": product.regular_price,
                "sale_price": product.sale_price or product.regular_price,
            }

        plan.update({
            "id": 0,
            "plan_group_id": 0,
            "object_type": "1",
            "relation_data": relation_data,
            "subscription_id": subscription.id,
        })
        return plan

    def build_subscription(
        self,
        subscription: SourceSubscription,
        parent_order: Optional[Dict[str, Any]],
        product: Optional[SourceProduct],
        gateway: str,
        gateway_mode: int
    ) -> TargetSubscription:
        """
        Build the target subscription payload.

        Args:
            subscription: Source subscription
            parent_order: The subscription's originating order
            product: Product of the first line item, if readable
            gateway: Target gateway ID
            gateway_mode: 1 for automatic payments, 0 for manual follow-up

        Returns:
            TargetSubscription ready to be created

        Raises:
            TransformError: If the parent order or line items are missing
        """
        if not parent_order:
            raise TransformError(
                f"Subscription {subscription.id} has no parent order",
                context={"subscription_id": subscription.id},
            )
        if not subscription.line_items:
            raise TransformError(
                f"Subscription {subscription.id} has no line items",
                context={"subscription_id": subscription.id},
            )

        scheme = self.select_scheme(product, subscription.line_items[0].variation_id)
        plan = self.build_inline_plan(subscription, product)

        created_local, created_utc = self.convert_date(subscription.date_created_gmt)
        if created_local is None:
            created_local, created_utc = self.convert_date(datetime.utcnow().isoformat())
        next_local, next_utc = self.convert_date(subscription.next_payment_date_gmt)
        end_local, end_utc = self.convert_date(subscription.end_date_gmt)
        trial_local, trial_utc = self.convert_date(subscription.trial_end_date_gmt)
        last_payment_local, _ = self.convert_date(subscription.last_payment_date_gmt)

        meta: Dict[str, Any] = {
            "billing_frequency": plan["billing_frequency"],
            "billing_interval": plan["billing_interval"],
            "billing_length": plan["billing_length"],
            "trial_length": scheme.trial_length if scheme else 0,
            "trial_period": scheme.trial_period if scheme else "",
            "signup_fee": format_amount(scheme.signup_fee if scheme else 0.0),
            "plan_data": plan,
            "wcs_subscription_id": subscription.id,
        }
        for key, value in subscription.meta.items():
            if key in EXCLUDED_META_KEYS or value == "" or key in meta:
                continue
            meta[key] = value

        meta["billing_details"] = self.extract_address(subscription.billing, BILLING_ADDRESS_FIELDS)
        meta["shipping_details"] = self.extract_address(subscription.shipping, SHIPPING_ADDRESS_FIELDS)
        meta["payment_method_title"] = subscription.payment_method_title
        meta["trial_end_date"] = trial_local
        meta["trial_end_date_utc"] = trial_utc

        items: List[str] = []
        for item in subscription.line_items:
            items.append(str(item.product_id))
            if item.variation_id:
                items.append(str(item.variation_id))

        return TargetSubscription(
            source_subscription_id=subscription.id,
            parent_order_id=subscription.parent_id,
            user_id=subscription.customer_id,
            status=self.map_status(subscription.status),
            gateway=gateway,
            gateway_mode=gateway_mode,
            currency=subscription.currency,
            totals=subscription.total,
            base_totals=subscription.total,
            plan_type=plan["type"],
            created_at=created_local,
            created_at_utc=created_utc,
            next_payment_date=next_local,
            next_payment_date_utc=next_utc,
            end_date=end_local,
            end_date_utc=end_utc,
            last_payment_date=last_payment_local,
            items=items,
            search_str=self.build_search_string(subscription, parent_order),
            meta_data=meta,
            line_items=list(subscription.line_items),
        )


def _variation_meta(variation: Dict[str, Any]) -> Dict[str, Any]:
    return meta_to_dict(variation.get("meta_data"))


def _json_field(value: Any) -> Dict[str, Any]:
    """Decode a JSON-encoded plan field, accepting already-decoded dicts."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}
