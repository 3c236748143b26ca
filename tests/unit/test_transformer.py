"""Unit tests for the transform engine."""

import json

import pytest

from wcs_sublium_migrator.exceptions import TransformError
from wcs_sublium_migrator.models.record import SourceProduct, SourceSubscription
from wcs_sublium_migrator.services.transformer import (
    PRICE_CHAIN,
    TransformEngine,
    format_amount,
    resolve_field,
)

from .conftest import (
    ADDON_PRODUCT,
    BROKEN_PRODUCT,
    SIMPLE_PRODUCT,
    VARIABLE_PRODUCT,
    make_order,
    make_subscription,
)


class TestFieldResolution:
    """Tests for fallback chains and amount formatting."""

    def test_first_parseable_key_wins(self):
        data = {"subscription_price": "abc", "_price": "7", "regular_price": "9"}
        assert resolve_field(data, PRICE_CHAIN) == 7.0

    def test_default_when_nothing_parses(self):
        assert resolve_field({"price": ""}, PRICE_CHAIN, default=0.0) == 0.0

    def test_format_amount(self):
        assert format_amount(10.5) == "10.5"
        assert format_amount(5.0) == "5"
        assert format_amount(0) == "0"


class TestExtractSchemes:
    """Tests for pricing scheme extraction."""

    def test_simple_product(self, transformer):
        schemes = transformer.extract_schemes(SourceProduct.from_dict(SIMPLE_PRODUCT))

        assert len(schemes) == 1
        scheme = schemes[0]
        assert (scheme.period, scheme.interval) == ("month", 1)
        assert scheme.trial_days == 7
        assert scheme.signup_fee == 5.0
        assert scheme.regular_price == "10"
        assert scheme.sale_price == "10"

    def test_variable_product_one_scheme_per_variation(self, transformer):
        schemes = transformer.extract_schemes(SourceProduct.from_dict(VARIABLE_PRODUCT))

        assert [(s.variation_id, s.period, s.interval) for s in schemes] == [
            (1021, "week", 2),
            (1022, "year", 1),
        ]
        assert schemes[0].sale_price == "18"
        assert schemes[1].sale_price == "200"

    def test_addon_schemes(self, transformer):
        product = SourceProduct.from_dict(ADDON_PRODUCT)

        schemes = transformer.extract_schemes(product, addon_active=True)
        assert len(schemes) == 1
        assert schemes[0].discount == 10.0

        assert transformer.extract_schemes(product, addon_active=False) == []

    def test_invalid_period_is_dropped(self, transformer):
        assert transformer.extract_schemes(SourceProduct.from_dict(BROKEN_PRODUCT)) == []


class TestPlans:
    """Tests for plan definitions and matching."""

    @pytest.mark.parametrize("period,interval,title", [
        ("day", 1, "Daily"),
        ("week", 1, "Weekly"),
        ("month", 1, "Monthly"),
        ("year", 1, "Yearly"),
        ("week", 2, "Every 2 Weeks"),
        ("month", 3, "Every 3 Months"),
    ])
    def test_plan_titles(self, period, interval, title):
        assert TransformEngine.generate_plan_title(period, interval) == title

    def test_display_summaries(self):
        summary = TransformEngine.generate_display_summary
        assert summary(5, 7) == (
            "Billed {{subscription_price}} after 7 days free trial "
            "and a one-time {{signup_fee}} signup fee."
        )
        assert summary(0, 7) == "Billed {{subscription_price}} after 7 days free trial."
        assert summary(5, 0) == "Billed {{subscription_price}} with a one-time {{signup_fee}} signup fee."
        assert summary(0, 0) == "Billed {{subscription_price}}."

    def test_plan_from_simple_scheme(self, transformer):
        product = SourceProduct.from_dict(SIMPLE_PRODUCT)
        plan = transformer.plan_from_scheme(transformer.extract_schemes(product)[0], product)

        assert plan.title == "Monthly"
        assert plan.type == 2  # virtual
        assert plan.billing_frequency == 1
        assert plan.billing_interval == 3
        assert plan.free_trial == 7
        assert plan.signup_fee == {"signup_fee_type": "fixed", "signup_amount": "5"}
        assert plan.offer["price_type"] == "default"
        assert plan.data["subscription_ends"] == "never"

    def test_discount_offer(self, transformer):
        product = SourceProduct.from_dict(ADDON_PRODUCT)
        plan = transformer.plan_from_scheme(transformer.extract_schemes(product)[0], product)

        assert plan.type == 1  # physical
        assert plan.offer == {"price_type": "discount", "discount_type": "percentage", "discount_value": "10"}

    def test_plan_group_and_relation(self, transformer):
        product = SourceProduct.from_dict(VARIABLE_PRODUCT)
        scheme = transformer.extract_schemes(product)[0]

        group = transformer.plan_group_for(product, 1)
        assert group["title"] == "Tea Box - Subscription Plans"
        assert group["data"] == {"plan_order": []}

        relation = transformer.relation_for("42", product, scheme)
        assert relation["oid"] == 102
        assert relation["vid"] == 1021
        assert relation["relation_data"] == {"regular_price": "20", "sale_price": "18"}

    def test_plan_matches(self, transformer):
        product = SourceProduct.from_dict(SIMPLE_PRODUCT)
        definition = transformer.plan_from_scheme(transformer.extract_schemes(product)[0], product)
        stored = definition.to_dict()

        assert transformer.plan_matches(stored, definition)

        encoded = dict(stored, signup_fee=json.dumps(stored["signup_fee"]), offer=json.dumps(stored["offer"]))
        assert transformer.plan_matches(encoded, definition)

        assert not transformer.plan_matches(dict(stored, free_trial=14), definition)
        assert not transformer.plan_matches(dict(stored, billing_frequency=2), definition)
        assert not transformer.plan_matches(
            dict(stored, signup_fee={"signup_fee_type": "fixed", "signup_amount": "9"}), definition
        )
        assert not transformer.plan_matches(
            dict(stored, offer={"price_type": "discount", "discount_value": "15"}), definition
        )


class TestDates:
    """Tests for date conversion."""

    def test_naive_dates_are_utc(self, transformer):
        assert transformer.convert_date("2024-01-15T10:30:00") == ("2024-01-15 10:30:00", "2024-01-15 10:30:00")

    def test_local_time_in_site_timezone(self):
        engine = TransformEngine(site_timezone="America/New_York")
        assert engine.convert_date("2024-01-15 10:30:00") == ("2024-01-15 05:30:00", "2024-01-15 10:30:00")

    def test_empty_dates(self, transformer):
        for value in (None, "", "0", 0, "0000-00-00 00:00:00"):
            assert transformer.convert_date(value) == (None, None)

    def test_unparseable_date(self, transformer):
        assert transformer.convert_date("not a date") == (None, None)


class TestBuildSubscription:
    """Tests for the target subscription payload."""

    @pytest.fixture
    def subscription(self):
        return SourceSubscription.from_dict(make_subscription(1))

    @pytest.fixture
    def product(self):
        return SourceProduct.from_dict(SIMPLE_PRODUCT)

    def test_status_mapping(self):
        assert TransformEngine.map_status("active") == 2
        assert TransformEngine.map_status("on-hold") == 3
        assert TransformEngine.map_status("expired") == 5
        assert TransformEngine.map_status("switched") == 5
        assert TransformEngine.map_status("pending-cancel") == 6
        assert TransformEngine.map_status("something-else") == 1

    def test_payload(self, transformer, subscription, product):
        target = transformer.build_subscription(subscription, make_order(501), product, "fkwcs_stripe", 1)

        assert target.status == 2
        assert target.gateway == "fkwcs_stripe"
        assert target.gateway_mode == 1
        assert target.plan_type == 2
        assert target.plan_id == ["0"]
        assert target.created_at_utc == "2024-01-15 10:30:00"
        assert target.next_payment_date_utc == "2024-02-15 10:30:00"
        assert target.end_date is None
        assert target.items == ["101"]
        assert target.search_str == "Ada Lovelace ada@example.com #501 #1"

    def test_meta_data(self, transformer, subscription, product):
        meta = transformer.build_subscription(subscription, make_order(501), product, "fkwcs_stripe", 1).meta_data

        assert meta["wcs_subscription_id"] == 1
        assert meta["billing_interval"] == 3
        assert meta["trial_length"] == 7
        assert meta["signup_fee"] == "5"
        assert meta["_custom_note"] == "gift"
        assert meta["billing_details"]["email"] == "ada@example.com"
        assert meta["billing_details"]["phone"] == "555-0100"
        assert "company" not in meta["billing_details"]
        assert "address_1" not in meta["shipping_details"]
        assert meta["payment_method_title"] == "Credit Card (Stripe)"
        assert meta["trial_end_date"] is None

    def test_marker_meta_not_copied(self, transformer, product):
        data = make_subscription(1, meta_data=[
            {"key": "_sublium_wcs_subscription_id", "value": "9"},
            {"key": "_subscription_switch", "value": "3"},
            {"key": "wcs_subscription_id", "value": "overwrite"},
            {"key": "_empty", "value": ""},
        ])
        meta = transformer.build_subscription(
            SourceSubscription.from_dict(data), make_order(501), product, "fkwcs_stripe", 1
        ).meta_data

        assert "_sublium_wcs_subscription_id" not in meta
        assert "_subscription_switch" not in meta
        assert "_empty" not in meta
        assert meta["wcs_subscription_id"] == 1

    def test_inline_plan(self, transformer, subscription, product):
        plan = transformer.build_inline_plan(subscription, product)

        assert plan["id"] == 0
        assert plan["plan_group_id"] == 0
        assert plan["object_type"] == "1"
        assert plan["subscription_id"] == 1
        assert plan["title"] == "Monthly"
        assert plan["free_trial"] == 7
        assert plan["relation_data"] == {"regular_price": "10", "sale_price": "10"}

    def test_inline_plan_uses_subscription_terms(self, transformer, product):
        subscription = SourceSubscription.from_dict(make_subscription(1, billing_period="week", billing_interval="2"))
        plan = transformer.build_inline_plan(subscription, product)

        assert plan["billing_frequency"] == 2
        assert plan["billing_interval"] == 2
        assert plan["title"] == "Every 2 Weeks"

    def test_variation_items(self, transformer):
        data = make_subscription(2, line_items=[{"id": 2, "product_id": 102, "variation_id": 1021, "quantity": 2}])
        target = transformer.build_subscription(
            SourceSubscription.from_dict(data), make_order(502), SourceProduct.from_dict(VARIABLE_PRODUCT), "x", 0
        )
        assert target.items == ["102", "1021"]
        assert target.plan_type == 1

    def test_missing_parent_order(self, transformer, subscription, product):
        with pytest.raises(TransformError, match="no parent order"):
            transformer.build_subscription(subscription, None, product, "fkwcs_stripe", 1)

    def test_missing_line_items(self, transformer, product):
        subscription = SourceSubscription.from_dict(make_subscription(1, line_items=[]))
        with pytest.raises(TransformError, match="no line items"):
            transformer.build_subscription(subscription, make_order(501), product, "fkwcs_stripe", 1)
