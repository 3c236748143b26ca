"""Data models for the migration engine."""

from .migration import (
    MigrationConfig,
    CatalogConfig,
    MigrationState,
    MigrationStatus,
    ProductsProgress,
    SubscriptionsProgress,
)
from .record import (
    SourceSubscription,
    SourceProduct,
    LineItem,
    PricingScheme,
    PlanDefinition,
    PlanType,
    TargetSubscription,
    TargetSubscriptionStatus,
    MigrationResult,
    BatchResult,
)
from .results import (
    FeasibilityReport,
    GatewayReportEntry,
    OperationResult,
    ProductCounts,
    Readiness,
    ReadinessStatus,
    SourceStatus,
    StatusResponse,
)

__all__ = [
    "MigrationConfig",
    "CatalogConfig",
    "MigrationState",
    "MigrationStatus",
    "ProductsProgress",
    "SubscriptionsProgress",
    "SourceSubscription",
    "SourceProduct",
    "LineItem",
    "PricingScheme",
    "PlanDefinition",
    "PlanType",
    "TargetSubscription",
    "TargetSubscriptionStatus",
    "MigrationResult",
    "BatchResult",
    "FeasibilityReport",
    "GatewayReportEntry",
    "OperationResult",
    "ProductCounts",
    "Readiness",
    "ReadinessStatus",
    "SourceStatus",
    "StatusResponse",
]
