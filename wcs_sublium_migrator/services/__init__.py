"""Service layer for the migration engine."""

from .discovery import DiscoveryService
from .gateway_mapper import GatewayCompatibility, map_gateway
from .readiness import evaluate as evaluate_readiness
from .renewal_guard import RenewalAuditLog, RenewalGuard
from .scheduler import BaseScheduler, QueueScheduler
from .state_store import BaseStateStore, InMemoryStateStore, JSONFileStateStore
from .transformer import TransformEngine

__all__ = [
    "DiscoveryService",
    "GatewayCompatibility",
    "map_gateway",
    "evaluate_readiness",
    "RenewalAuditLog",
    "RenewalGuard",
    "BaseScheduler",
    "QueueScheduler",
    "BaseStateStore",
    "InMemoryStateStore",
    "JSONFileStateStore",
    "TransformEngine",
]
