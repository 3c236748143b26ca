"""Pydantic models for command results and reports."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class ReadinessStatus(str, Enum):
    FEASIBLE = "feasible"
    PARTIAL = "partial"
    BLOCKED = "blocked"


class Readiness(BaseModel):
    status: ReadinessStatus
    message: str


class SourceStatus(BaseModel):
    active: bool = False
    version: Optional[str] = None
    compatible: bool = False


class GatewayReportEntry(BaseModel):
    gateway_id: str
    gateway_title: str
    subscription_count: int = 0
    compatible: bool = False
    target_gateway_id: Optional[str] = None
    message: str = ""


class ProductCounts(BaseModel):
    simple: int = 0
    variable: int = 0
    addon: int = 0
    addon_active: bool = False
    total: int = 0


class FeasibilityReport(BaseModel):
    """Everything discovery learns about the source, plus the readiness verdict."""
    source_status: SourceStatus
    target_active: bool = False
    subscription_count: int = 0
    subscription_counts_by_status: Dict[str, int] = Field(default_factory=dict)
    gateway_report: List[GatewayReportEntry] = Field(default_factory=list)
    product_counts: ProductCounts = Field(default_factory=ProductCounts)
    readiness: Readiness

    @property
    def is_blocked(self) -> bool:
        return self.readiness.status == ReadinessStatus.BLOCKED


class OperationResult(BaseModel):
    success: bool
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


class ProgressInfo(BaseModel):
    products: float = 0.0
    subscriptions: float = 0.0


class StatusResponse(BaseModel):
    """Migration state plus computed progress percentages."""
    status: str
    products_migration: Dict[str, int] = Field(default_factory=dict)
    subscriptions_migration: Dict[str, int] = Field(default_factory=dict)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    last_activity: Optional[str] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    progress: ProgressInfo = Field(default_factory=ProgressInfo)
