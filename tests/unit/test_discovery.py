"""Unit tests for the discovery service."""

from unittest.mock import MagicMock

from wcs_sublium_migrator.extractors.json_extractor import JSONExtractor
from wcs_sublium_migrator.models.results import ReadinessStatus
from wcs_sublium_migrator.services.discovery import DiscoveryService
from wcs_sublium_migrator.services.gateway_mapper import PAYPAL, STRIPE

from .conftest import build_source_document


class TestDiscover:
    """Tests for the feasibility report."""

    def test_full_report(self, extractor, loader):
        report = DiscoveryService(extractor, loader).discover()

        assert report.source_status.active
        assert report.source_status.compatible
        assert report.target_active
        assert report.subscription_count == 4
        assert report.subscription_counts_by_status == {"active": 2, "on-hold": 1, "pending-cancel": 1}
        assert report.readiness.status == ReadinessStatus.FEASIBLE

    def test_gateway_report_covers_active_and_pending_cancel(self, extractor, loader):
        report = DiscoveryService(extractor, loader).discover()

        entries = {e.gateway_id: e for e in report.gateway_report}
        # Subscription 3 is on-hold and excluded
        assert set(entries) == {"stripe", "ppcp-gateway"}
        assert [e.gateway_id for e in report.gateway_report] == ["stripe", "ppcp-gateway"]

        assert entries["stripe"].subscription_count == 2
        assert entries["stripe"].target_gateway_id == STRIPE
        assert entries["stripe"].message == f"Maps to Sublium gateway: {STRIPE}"

        # Resolved through the parent order
        assert entries["ppcp-gateway"].gateway_title == "PayPal"
        assert entries["ppcp-gateway"].target_gateway_id == PAYPAL

    def test_product_counts(self, extractor, loader):
        counts = DiscoveryService(extractor, loader).discover().product_counts
        assert (counts.simple, counts.variable, counts.addon, counts.total) == (2, 1, 1, 4)
        assert counts.addon_active

    def test_addon_inactive_excludes_addon_products(self, loader):
        extractor = JSONExtractor(data=build_source_document(addon_active=False))
        counts = DiscoveryService(extractor, loader).discover().product_counts
        assert counts.addon == 0
        assert counts.total == 3

    def test_inactive_source_is_blocked(self, loader):
        extractor = JSONExtractor(data=build_source_document(active=False))
        report = DiscoveryService(extractor, loader).discover()

        assert report.is_blocked
        assert report.subscription_count == 0

    def test_collaborator_failure_becomes_blocked_report(self, loader):
        extractor = MagicMock()
        extractor.get_system_status.return_value = {"active": True, "version": "5.0.0"}
        extractor.count_subscriptions_by_status.side_effect = RuntimeError("database gone")

        report = DiscoveryService(extractor, loader).discover()

        assert report.is_blocked
        assert "database gone" in report.readiness.message

    def test_discovery_does_not_write(self, loader):
        extractor = MagicMock(wraps=JSONExtractor(data=build_source_document()))
        DiscoveryService(extractor, loader).discover()

        extractor.update_subscription_meta.assert_not_called()
        extractor.update_order_meta.assert_not_called()
