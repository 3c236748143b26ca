"""Shared fixtures for unit tests."""

import copy

import pytest

from wcs_sublium_migrator.extractors.json_extractor import JSONExtractor
from wcs_sublium_migrator.loaders.json_loader import JSONLoader
from wcs_sublium_migrator.models.migration import MigrationConfig
from wcs_sublium_migrator.services.scheduler import QueueScheduler
from wcs_sublium_migrator.services.state_store import InMemoryStateStore
from wcs_sublium_migrator.services.transformer import TransformEngine


def make_meta(**values):
    """Build a WooCommerce meta_data list."""
    return [{"key": key, "value": value} for key, value in values.items()]


SIMPLE_PRODUCT = {
    "id": 101,
    "name": "Coffee Club",
    "type": "subscription",
    "status": "publish",
    "virtual": True,
    "regular_price": "10",
    "sale_price": "",
    "meta_data": make_meta(
        _subscription_price="10",
        _subscription_period="month",
        _subscription_period_interval="1",
        _subscription_trial_length="7",
        _subscription_trial_period="day",
        _subscription_sign_up_fee="5",
    ),
}

VARIABLE_PRODUCT = {
    "id": 102,
    "name": "Tea Box",
    "type": "variable-subscription",
    "status": "publish",
    "virtual": False,
    "variations": [
        {
            "id": 1021,
            "regular_price": "20",
            "sale_price": "18",
            "meta_data": make_meta(_subscription_period="week", _subscription_period_interval="2"),
        },
        {
            "id": 1022,
            "regular_price": "200",
            "meta_data": make_meta(_subscription_period="year", _subscription_period_interval="1"),
        },
    ],
}

ADDON_PRODUCT = {
    "id": 103,
    "name": "Filter Papers",
    "type": "simple",
    "status": "publish",
    "virtual": False,
    "regular_price": "4",
    "meta_data": make_meta(_wcsatt_schemes=[
        {"subscription_period": "month", "subscription_period_interval": "1", "subscription_discount": "10"},
    ]),
}

PLAIN_PRODUCT = {
    "id": 104,
    "name": "Mug",
    "type": "simple",
    "status": "publish",
    "regular_price": "12",
}

BROKEN_PRODUCT = {
    "id": 105,
    "name": "Legacy Plan",
    "type": "subscription",
    "status": "publish",
    "virtual": True,
    "regular_price": "9",
    "meta_data": make_meta(_subscription_period="fortnight", _subscription_period_interval="1"),
}


def make_subscription(subscription_id, **overrides):
    """Build a source subscription in the REST shape."""
    subscription = {
        "id": subscription_id,
        "status": "active",
        "parent_id": 500 + subscription_id,
        "customer_id": 7,
        "currency": "USD",
        "total": "10.00",
        "billing_period": "month",
        "billing_interval": "1",
        "payment_method": "stripe",
        "payment_method_title": "Credit Card (Stripe)",
        "date_created_gmt": "2024-01-15T10:30:00",
        "next_payment_date_gmt": "2024-02-15T10:30:00",
        "end_date_gmt": "",
        "trial_end_date_gmt": "0",
        "last_payment_date_gmt": "2024-01-15T10:30:00",
        "billing": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "company": "",
            "email": "ada@example.com",
            "phone": "555-0100",
            "country": "GB",
        },
        "shipping": {"first_name": "Ada", "last_name": "Lovelace", "address_1": "", "country": "GB"},
        "line_items": [
            {"id": 1, "product_id": 101, "variation_id": 0, "quantity": 1, "name": "Coffee Club", "total": "10.00"},
        ],
        "meta_data": make_meta(_custom_note="gift"),
    }
    subscription.update(overrides)
    return subscription


def make_order(order_id, **overrides):
    order = {
        "id": order_id,
        "number": str(order_id),
        "payment_method": "stripe",
        "payment_method_title": "Credit Card (Stripe)",
        "meta_data": [],
    }
    order.update(overrides)
    return order


def build_source_document(active=True, version="5.0.0", addon_active=True):
    """A small store: five products, four subscriptions and their orders."""
    return copy.deepcopy({
        "system": {"active": active, "version": version, "addon_active": addon_active},
        "products": [SIMPLE_PRODUCT, VARIABLE_PRODUCT, ADDON_PRODUCT, PLAIN_PRODUCT, BROKEN_PRODUCT],
        "subscriptions": [
            make_subscription(1),
            make_subscription(
                2,
                payment_method="",
                payment_method_title="",
                line_items=[
                    {"id": 2, "product_id": 102, "variation_id": 1021, "quantity": 2, "name": "Tea Box", "total": "36"},
                ],
            ),
            make_subscription(3, status="on-hold", payment_method="legacy_gateway", payment_method_title="Legacy"),
            make_subscription(4, status="pending-cancel", parent_id=0),
        ],
        "orders": [
            make_order(501),
            make_order(
                502,
                payment_method="ppcp-gateway",
                payment_method_title="PayPal",
                meta_data=make_meta(_billing_agreement_id="B-123"),
            ),
            make_order(503, payment_method="legacy_gateway"),
            make_order(601, meta_data=make_meta(_subscription_renewal="1")),
            make_order(602, meta_data=make_meta(_subscription_renewal="1")),
        ],
    })


@pytest.fixture
def source_document():
    return build_source_document()


@pytest.fixture
def extractor(source_document):
    """Source catalog backed by the sample store."""
    return JSONExtractor(data=source_document)


@pytest.fixture
def loader():
    """Target catalog supporting Stripe and PayPal."""
    return JSONLoader(gateways=["fkwcs_stripe", "fkwcppcp_paypal"])


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def scheduler():
    return QueueScheduler()


@pytest.fixture
def transformer():
    return TransformEngine()


@pytest.fixture
def config(tmp_path):
    """Configuration with small batches and paths under tmp_path."""
    return MigrationConfig(
        products_batch_size=2,
        subscriptions_batch_size=2,
        data_dir=str(tmp_path),
    )
