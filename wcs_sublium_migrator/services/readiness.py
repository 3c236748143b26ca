"""Readiness evaluation for a migration."""

import re
import logging
from typing import List, Tuple

from ..models.results import (
    GatewayReportEntry,
    ProductCounts,
    Readiness,
    ReadinessStatus,
    SourceStatus,
)

logger = logging.getLogger(__name__)


def parse_version(version: str) -> Tuple[int, ...]:
    """Parse the numeric prefix of a version string ("6.2.0-beta" -> (6, 2, 0))."""
    parts = []
    for part in str(version).split("."):
        match = re.match(r"\d+", part.strip())
        if not match:
            break
        parts.append(int(match.group()))
    return tuple(parts)


def is_version_compatible(version: str, minimum: str) -> bool:
    """Check a version string against a minimum version."""
    parsed = parse_version(version)
    if not parsed:
        return False
    return parsed >= parse_version(minimum)


def evaluate(
    source_status: SourceStatus,
    gateway_report: List[GatewayReportEntry],
    product_counts: ProductCounts,
    subscription_count: int,
    target_active: bool = True
) -> Readiness:
    """
    Decide whether a migration can go ahead.

    Checks run in order and the first match wins, so an inactive source is
    reported as blocked even when gateways are also incompatible.

    Args:
        source_status: Source system presence and version
        gateway_report: Per-gateway compatibility entries
        product_counts: Eligible product counts
        subscription_count: Total source subscriptions
        target_active: Whether the target system is reachable

    Returns:
        Readiness verdict with a readable message
    """
    if not source_status.active:
        return Readiness(
            status=ReadinessStatus.BLOCKED,
            message="WooCommerce Subscriptions plugin is not active",
        )

    if source_status.version and not source_status.compatible:
        return Readiness(
            status=ReadinessStatus.PARTIAL,
            message=(
                f"WooCommerce Subscriptions version {source_status.version} "
                "may not be fully compatible. Proceed with caution."
            ),
        )

    if not target_active:
        return Readiness(status=ReadinessStatus.BLOCKED, message="Sublium plugin is not active")

    incompatible = sum(1 for entry in gateway_report if not entry.compatible)
    if incompatible:
        return Readiness(
            status=ReadinessStatus.PARTIAL,
            message=f"{incompatible} gateway(s) are not compatible with Sublium",
        )

    if subscription_count == 0 and product_counts.total == 0:
        return Readiness(status=ReadinessStatus.FEASIBLE, message="No data to migrate")

    return Readiness(status=ReadinessStatus.FEASIBLE, message="Migration is ready to proceed")
