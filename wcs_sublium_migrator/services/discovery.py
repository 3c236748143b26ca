"""Discovery of what a source store holds and whether it can be migrated."""

import logging
from typing import Dict, List, Optional

from ..extractors.base import BaseExtractor
from ..loaders.base import BaseLoader
from ..models.record import SourceSubscription
from ..models.results import (
    FeasibilityReport,
    GatewayReportEntry,
    ProductCounts,
    Readiness,
    ReadinessStatus,
    SourceStatus,
)
from .gateway_mapper import gateway_title, map_gateway
from .readiness import evaluate, is_version_compatible

logger = logging.getLogger(__name__)


GATEWAY_REPORT_STATUSES = ["active", "pending-cancel"]


class DiscoveryService:
    """
    Builds a feasibility report from the source and target catalogs.

    Discovery only reads, so it is safe to call on every status poll.
    """

    def __init__(
        self,
        extractor: BaseExtractor,
        loader: BaseLoader,
        min_source_version: str = "2.0.0"
    ):
        """
        Initialize the discovery service.

        Args:
            extractor: Source catalog
            loader: Target catalog
            min_source_version: Oldest source version considered compatible
        """
        self.extractor = extractor
        self.loader = loader
        self.min_source_version = min_source_version

    def discover(self) -> FeasibilityReport:
        """
        Query both systems and evaluate readiness.

        Returns:
            FeasibilityReport; collaborator failures become a blocked report
        """
        source_status = SourceStatus()
        target_active = False
        try:
            source_status = self.check_source()
            target_active = self.check_target()

            if not source_status.active:
                readiness = evaluate(source_status, [], ProductCounts(), 0, target_active)
                return FeasibilityReport(
                    source_status=source_status,
                    target_active=target_active,
                    readiness=readiness,
                )

            counts_by_status = self.extractor.count_subscriptions_by_status()
            subscription_count = sum(counts_by_status.values())
            gateway_report = self.build_gateway_report()
            product_counts = self.count_products()

            readiness = evaluate(
                source_status,
                gateway_report,
                product_counts,
                subscription_count,
                target_active,
            )
            logger.info(
                f"Discovery: {subscription_count} subscriptions, "
                f"{product_counts.total} products, readiness {readiness.status.value}"
            )

            return FeasibilityReport(
                source_status=source_status,
                target_active=target_active,
                subscription_count=subscription_count,
                subscription_counts_by_status=counts_by_status,
                gateway_report=gateway_report,
                product_counts=product_counts,
                readiness=readiness,
            )

        except Exception as e:
            logger.error(f"Discovery failed: {e}")
            return FeasibilityReport(
                source_status=source_status,
                target_active=target_active,
                readiness=Readiness(
                    status=ReadinessStatus.BLOCKED,
                    message=f"Discovery failed: {e}",
                ),
            )

    def check_source(self) -> SourceStatus:
        """Probe the source subscription system."""
        status = self.extractor.get_system_status()
        active = bool(status.get("active"))
        version = status.get("version") or None

        if not active:
            compatible = False
        elif version is None:
            # Unknown version on an active system is assumed compatible
            compatible = True
        else:
            compatible = is_version_compatible(version, self.min_source_version)

        return SourceStatus(active=active, version=version, compatible=compatible)

    def check_target(self) -> bool:
        """Probe the target system."""
        try:
            return bool(self.loader.validate_connection())
        except Exception as e:
            logger.warning(f"Target connection check failed: {e}")
            return False

    def resolve_gateway(self, subscription: SourceSubscription) -> Dict[str, Optional[str]]:
        """
        Resolve a subscription's gateway ID and title.

        Falls back to the parent order when the subscription has none.
        """
        gateway_id = subscription.payment_method
        title = subscription.payment_method_title

        if not gateway_id and subscription.parent_id:
            order = self.extractor.get_order(subscription.parent_id) or {}
            gateway_id = order.get("payment_method") or ""
            title = title or order.get("payment_method_title") or ""

        return {"id": gateway_id or None, "title": title or None}

    def build_gateway_report(self) -> List[GatewayReportEntry]:
        """Count active and pending-cancel subscriptions per gateway."""
        counts: Dict[str, int] = {}
        titles: Dict[str, str] = {}

        for subscription in self.extractor.iter_subscriptions(GATEWAY_REPORT_STATUSES):
            gateway = self.resolve_gateway(subscription)
            gateway_id = gateway["id"]
            if not gateway_id:
                continue
            counts[gateway_id] = counts.get(gateway_id, 0) + 1
            if gateway["title"] and gateway_id not in titles:
                titles[gateway_id] = gateway["title"]

        report = []
        for gateway_id, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
            target_id = map_gateway(gateway_id)
            if target_id:
                message = f"Maps to Sublium gateway: {target_id}"
            else:
                message = "Gateway not mapped to Sublium"
            report.append(GatewayReportEntry(
                gateway_id=gateway_id,
                gateway_title=titles.get(gateway_id) or gateway_title(gateway_id),
                subscription_count=count,
                compatible=target_id is not None,
                target_gateway_id=target_id,
                message=message,
            ))

        return report

    def count_products(self) -> ProductCounts:
        """Count eligible products by type."""
        counts = self.extractor.count_products_by_type()
        addon_active = self.extractor.is_addon_active()

        simple = int(counts.get("simple", 0))
        variable = int(counts.get("variable", 0))
        addon = int(counts.get("addon", 0)) if addon_active else 0

        return ProductCounts(
            simple=simple,
            variable=variable,
            addon=addon,
            addon_active=addon_active,
            total=simple + variable + addon,
        )
