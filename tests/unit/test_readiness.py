"""Unit tests for the readiness evaluator."""

from wcs_sublium_migrator.models.results import (
    GatewayReportEntry,
    ProductCounts,
    ReadinessStatus,
    SourceStatus,
)
from wcs_sublium_migrator.services.readiness import evaluate, is_version_compatible, parse_version


def active_source(version="5.0.0", compatible=True):
    return SourceStatus(active=True, version=version, compatible=compatible)


def gateway(compatible):
    return GatewayReportEntry(gateway_id="g", gateway_title="G", subscription_count=1, compatible=compatible)


class TestVersionParsing:
    """Tests for version comparison."""

    def test_parse_version_strips_suffix(self):
        assert parse_version("6.2.0-beta") == (6, 2, 0)

    def test_minimum_version(self):
        assert is_version_compatible("2.0.0", "2.0.0")
        assert is_version_compatible("5.1", "2.0.0")
        assert not is_version_compatible("1.9.9", "2.0.0")
        assert not is_version_compatible("unknown", "2.0.0")


class TestEvaluate:
    """Tests for the ordered readiness rules."""

    def test_inactive_source_blocks_first(self):
        readiness = evaluate(SourceStatus(active=False), [gateway(False)], ProductCounts(), 5, False)
        assert readiness.status == ReadinessStatus.BLOCKED
        assert readiness.message == "WooCommerce Subscriptions plugin is not active"

    def test_old_version_is_partial(self):
        readiness = evaluate(active_source("1.5.0", False), [], ProductCounts(total=1), 1)
        assert readiness.status == ReadinessStatus.PARTIAL
        assert "version 1.5.0 may not be fully compatible" in readiness.message

    def test_unknown_version_is_not_flagged(self):
        readiness = evaluate(SourceStatus(active=True, version=None, compatible=True), [], ProductCounts(total=1), 1)
        assert readiness.status == ReadinessStatus.FEASIBLE

    def test_inactive_target_blocks(self):
        readiness = evaluate(active_source(), [], ProductCounts(total=1), 1, target_active=False)
        assert readiness.status == ReadinessStatus.BLOCKED
        assert readiness.message == "Sublium plugin is not active"

    def test_incompatible_gateways_are_partial(self):
        readiness = evaluate(active_source(), [gateway(False), gateway(False), gateway(True)], ProductCounts(), 3)
        assert readiness.status == ReadinessStatus.PARTIAL
        assert readiness.message == "2 gateway(s) are not compatible with Sublium"

    def test_no_data(self):
        readiness = evaluate(active_source(), [], ProductCounts(), 0)
        assert readiness.status == ReadinessStatus.FEASIBLE
        assert readiness.message == "No data to migrate"

    def test_ready(self):
        readiness = evaluate(active_source(), [gateway(True)], ProductCounts(total=2), 1)
        assert readiness.status == ReadinessStatus.FEASIBLE
        assert readiness.message == "Migration is ready to proceed"
