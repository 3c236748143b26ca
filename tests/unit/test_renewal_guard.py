"""Unit tests for renewal suppression."""

import json

import pytest

from wcs_sublium_migrator.models.record import meta_to_dict
from wcs_sublium_migrator.services.renewal_guard import RenewalAuditLog, RenewalGuard, VetoType


@pytest.fixture
def guard(extractor):
    extractor.mark_migrated(1, "99")
    return RenewalGuard(extractor)


class TestVetoes:
    """Tests for the allow_* predicates."""

    def test_scheduled_actions(self, guard):
        assert not guard.allow_scheduled_action("woocommerce_scheduled_subscription_payment", [1])
        assert not guard.allow_scheduled_action("woocommerce_scheduled_subscription_trial_end", {"subscription_id": 1})
        assert guard.allow_scheduled_action("woocommerce_scheduled_subscription_payment", [2])
        assert guard.allow_scheduled_action("woocommerce_cleanup_sessions", [1])
        assert guard.allow_scheduled_action("woocommerce_scheduled_subscription_payment", None)

    def test_renewal_orders(self, guard):
        assert not guard.allow_renewal_order(1)
        assert not guard.allow_renewal_order(1, manual=True)
        assert not guard.allow_renewal_payment(1)
        assert guard.allow_renewal_order(2)

    def test_early_renewal(self, guard):
        assert not guard.allow_early_renewal(1)
        assert guard.allow_early_renewal(3)

    def test_auto_renewal_toggle(self, guard):
        assert not guard.allow_auto_renewal_toggle(1, enable_automatic=True)
        assert guard.allow_auto_renewal_toggle(1, enable_automatic=False)
        assert guard.allow_auto_renewal_toggle(2, enable_automatic=True)

    def test_vetoes_are_audited(self, guard):
        guard.allow_renewal_order(1)
        guard.allow_renewal_order(1, manual=True)
        guard.allow_renewal_order(2)

        entries = guard.blocked_renewals()
        assert [e["type"] for e in entries] == [VetoType.SCHEDULED_PAYMENT, VetoType.MANUAL_RENEWAL_ORDER]
        assert all(e["subscription_id"] == 1 and e["timestamp"] for e in entries)


class TestAuditLog:
    """Tests for the durable audit log."""

    def test_json_lines_file(self, extractor, tmp_path):
        path = tmp_path / "blocked_renewals.jsonl"
        extractor.mark_migrated(1, "99")
        guard = RenewalGuard(extractor, RenewalAuditLog(str(path)))

        guard.allow_early_renewal(1)
        guard.allow_early_renewal(1)

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["type"] == VetoType.EARLY_RENEWAL
        assert len(RenewalAuditLog(str(path)).entries()) == 2

    def test_missing_file_has_no_entries(self, tmp_path):
        assert RenewalAuditLog(str(tmp_path / "none.jsonl")).entries() == []


class TestDisableSourceRenewals:
    """Tests for post-migration cleanup."""

    def test_sets_manual_renewal(self, guard, extractor):
        extractor.mark_migrated(3, "100")

        summary = guard.disable_source_renewals()

        assert summary["subscriptions_set_manual"] == 2
        assert summary["completed"]
        for subscription_id in (1, 3):
            meta = meta_to_dict(extractor.get_subscription(subscription_id)["meta_data"])
            assert meta["_requires_manual_renewal"] == "true"
        assert "_requires_manual_renewal" not in meta_to_dict(extractor.get_subscription(2)["meta_data"])

    def test_summary_is_audited_but_not_a_veto(self, guard):
        guard.disable_source_renewals()

        assert guard.audit_log.entries()[-1]["type"] == "post_migration_cleanup"
        assert guard.blocked_renewals() == []
