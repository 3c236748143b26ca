"""Migration orchestrator - coordinates discovery, pipelines and state."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .models.migration import (
    MigrationConfig,
    MigrationState,
    MigrationStatus,
    ProductsProgress,
    SubscriptionsProgress,
)
from .models.results import (
    FeasibilityReport,
    OperationResult,
    ProgressInfo,
    StatusResponse,
)
from .models.record import BatchResult
from .services.discovery import DiscoveryService
from .services.renewal_guard import RenewalAuditLog, RenewalGuard
from .services.scheduler import (
    BaseScheduler,
    QueueScheduler,
    PRODUCTS_BATCH,
    SUBSCRIPTIONS_BATCH,
)
from .services.state_store import BaseStateStore, JSONFileStateStore
from .services.transformer import TransformEngine
from .pipelines.products import ProductsPipeline
from .pipelines.subscriptions import SubscriptionsPipeline
from .extractors.base import BaseExtractor
from .extractors.api_extractor import WooCommerceExtractor
from .extractors.json_extractor import JSONExtractor
from .loaders.base import BaseLoader
from .loaders.api_loader import SubliumAPILoader
from .loaders.json_loader import JSONLoader

logger = logging.getLogger(__name__)


ALREADY_RUNNING = "Migration is already in progress"
STARTED = "Migration started successfully"


def progress_percent(processed: int, total: int) -> float:
    """Percentage done, clamped to [0, 100] and rounded to 2 decimals."""
    if not total or total <= 0:
        return 0.0
    return round(min(max(processed / total * 100, 0.0), 100.0), 2)


class MigrationOrchestrator:
    """
    Orchestrates the complete migration process.

    Handles:
    - Feasibility discovery
    - Starting, pausing, resuming and cancelling both pipelines
    - Running queued batch units and chaining their successors
    - Progress reporting
    - Post-migration renewal cleanup

    Public commands never raise; failures come back as unsuccessful
    results and are written to the state's error log.
    """

    def __init__(
        self,
        config: MigrationConfig,
        extractor: BaseExtractor,
        loader: BaseLoader,
        state_store: BaseStateStore,
        scheduler: BaseScheduler,
        transformer: Optional[TransformEngine] = None,
        discovery: Optional[DiscoveryService] = None,
        renewal_guard: Optional[RenewalGuard] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            extractor: Source catalog
            loader: Target catalog
            state_store: Store for the migration state record
            scheduler: Queue of batch units
            transformer: Transform engine, built from config if omitted
            discovery: Discovery service, built from config if omitted
            renewal_guard: Renewal guard, built with an in-memory audit log if omitted
        """
        self.config = config
        self.extractor = extractor
        self.loader = loader
        self.state_store = state_store
        self.scheduler = scheduler
        self.transformer = transformer or TransformEngine(config.site_timezone)
        self.discovery = discovery or DiscoveryService(
            extractor, loader, min_source_version=config.min_source_version
        )
        self.renewal_guard = renewal_guard or RenewalGuard(extractor)

        self.products_pipeline = ProductsPipeline(
            extractor, loader, state_store, self.transformer,
            batch_size=config.products_batch_size,
        )
        self.subscriptions_pipeline = SubscriptionsPipeline(
            extractor, loader, state_store, self.transformer,
            batch_size=config.subscriptions_batch_size,
        )

    # Commands

    def discover(self) -> FeasibilityReport:
        """Build the feasibility report."""
        logger.info("=== DISCOVERY ===")
        return self.discovery.discover()

    def _is_running(self, state: MigrationState) -> bool:
        """Either pipeline is migrating or has a unit queued."""
        return (
            state.status in (MigrationStatus.PRODUCTS_MIGRATING, MigrationStatus.SUBSCRIPTIONS_MIGRATING)
            or self.scheduler.is_pending(PRODUCTS_BATCH)
            or self.scheduler.is_pending(SUBSCRIPTIONS_BATCH)
        )

    def start_products(self) -> OperationResult:
        """
        Start (or continue) the products pipeline.

        Returns:
            OperationResult; unsuccessful when a run is active, the work is
            already done or discovery is blocked
        """
        try:
            return self._start_products()
        except Exception as e:
            return self._failed("Failed to start products migration", e)

    def _start_products(self) -> OperationResult:
        state = self.state_store.get()
        if self._is_running(state):
            return OperationResult(success=False, message=ALREADY_RUNNING)

        progress = state.products_migration
        total = progress.total_products
        fresh = progress.processed_products == 0

        if total > 0 and progress.processed_products >= total:
            if progress.created_plans > 0:
                return OperationResult(success=False, message="Products have already been migrated")
            logger.info("Previous products run created no plans, starting over")
            fresh = True

        if total <= 0:
            self.state_store.set_status(MigrationStatus.DISCOVERING)
            report = self.discovery.discover()
            if report.is_blocked:
                self.state_store.set_status(MigrationStatus.ERROR)
                self.state_store.add_error(report.readiness.message, {"phase": "discovery"})
                return OperationResult(success=False, message=report.readiness.message)
            total = report.product_counts.total
            fresh = True

        logger.info("=== PRODUCTS MIGRATION ===")
        update: Dict[str, Any] = {"status": MigrationStatus.PRODUCTS_MIGRATING.value}
        if fresh:
            update["products_migration"] = ProductsProgress(total_products=total).to_dict()
        if fresh or not state.start_time:
            update["start_time"] = datetime.utcnow().isoformat()
            update["end_time"] = None
        state = self.state_store.update(update)

        offset = state.products_migration.processed_products
        self.scheduler.enqueue(PRODUCTS_BATCH, offset)
        logger.info(f"Products migration queued at offset {offset} ({total} products)")
        return OperationResult(success=True, message=STARTED, data={"total_products": total})

    def start_subscriptions(self) -> OperationResult:
        """
        Start (or continue) the subscriptions pipeline.

        Returns:
            OperationResult; unsuccessful when a run is active, either system
            is inactive or nothing is left to migrate
        """
        try:
            return self._start_subscriptions()
        except Exception as e:
            return self._failed("Failed to start subscriptions migration", e)

    def _start_subscriptions(self) -> OperationResult:
        state = self.state_store.get()
        if self._is_running(state):
            return OperationResult(success=False, message=ALREADY_RUNNING)

        if not self.discovery.check_source().active:
            return OperationResult(success=False, message="WooCommerce Subscriptions plugin is not active")
        if not self.discovery.check_target():
            return OperationResult(success=False, message="Sublium plugin is not active")

        remaining = self.subscriptions_pipeline.unmigrated_ids()
        if not remaining:
            return OperationResult(success=False, message="No subscriptions left to migrate")

        fresh = not (
            state.status == MigrationStatus.PAUSED
            and state.subscriptions_migration.processed_subscriptions > 0
        )

        logger.info("=== SUBSCRIPTIONS MIGRATION ===")
        update: Dict[str, Any] = {"status": MigrationStatus.SUBSCRIPTIONS_MIGRATING.value, "end_time": None}
        if fresh:
            update["subscriptions_migration"] = SubscriptionsProgress(
                total_subscriptions=len(remaining)
            ).to_dict()
        if not state.start_time:
            update["start_time"] = datetime.utcnow().isoformat()
        self.state_store.update(update)

        self.scheduler.enqueue(SUBSCRIPTIONS_BATCH, 0)
        logger.info(f"Subscriptions migration queued ({len(remaining)} subscriptions)")
        return OperationResult(success=True, message=STARTED, data={"total_subscriptions": len(remaining)})

    def status(self) -> StatusResponse:
        """Current state with progress percentages."""
        state = self.state_store.get()
        products = state.products_migration
        subscriptions = state.subscriptions_migration
        return StatusResponse(
            status=state.status.value,
            products_migration=products.to_dict(),
            subscriptions_migration=subscriptions.to_dict(),
            start_time=state.start_time,
            end_time=state.end_time,
            last_activity=state.last_activity,
            errors=state.errors,
            progress=ProgressInfo(
                products=progress_percent(products.processed_products, products.total_products),
                subscriptions=progress_percent(
                    subscriptions.processed_subscriptions, subscriptions.total_subscriptions
                ),
            ),
        )

    def pause(self) -> OperationResult:
        """Stop queued work; running batches finish and the next one is not queued."""
        try:
            self._clear_queues()
            self.state_store.set_status(MigrationStatus.PAUSED)
            return OperationResult(success=True, message="Migration paused")
        except Exception as e:
            return self._failed("Failed to pause migration", e)

    def resume(self) -> OperationResult:
        """Re-enter the first incomplete pipeline from its checkpoint."""
        try:
            state = self.state_store.get()
            if state.status != MigrationStatus.PAUSED:
                return OperationResult(success=False, message="Migration is not paused")

            products = state.products_migration
            if products.total_products > 0 and products.processed_products < products.total_products:
                self.state_store.set_status(MigrationStatus.PRODUCTS_MIGRATING)
                self.scheduler.enqueue(PRODUCTS_BATCH, products.processed_products)
                return OperationResult(success=True, message="Migration resumed", data={"pipeline": "products"})

            subscriptions = state.subscriptions_migration
            if (subscriptions.total_subscriptions > 0
                    and self.subscriptions_pipeline.unmigrated_ids(subscriptions.last_subscription_id)):
                self.state_store.set_status(MigrationStatus.SUBSCRIPTIONS_MIGRATING)
                self.scheduler.enqueue(SUBSCRIPTIONS_BATCH, 0)
                return OperationResult(
                    success=True, message="Migration resumed", data={"pipeline": "subscriptions"}
                )

            self.state_store.set_status(MigrationStatus.IDLE)
            return OperationResult(success=False, message="Nothing left to resume")
        except Exception as e:
            return self._failed("Failed to resume migration", e)

    def cancel(self) -> OperationResult:
        """Drop queued work and reset the state."""
        try:
            self._clear_queues()
            self.state_store.reset()
            logger.info("=== MIGRATION CANCELLED ===")
            return OperationResult(success=True, message="Migration cancelled")
        except Exception as e:
            return self._failed("Failed to cancel migration", e)

    def reset(self) -> OperationResult:
        """Drop queued work and reset the state."""
        try:
            self._clear_queues()
            self.state_store.reset()
            return OperationResult(success=True, message="Migration reset")
        except Exception as e:
            return self._failed("Failed to reset migration", e)

    def disable_renewals(self) -> OperationResult:
        """Switch every migrated source subscription to manual renewal."""
        try:
            summary = self.renewal_guard.disable_source_renewals()
            return OperationResult(
                success=bool(summary["completed"]),
                message=f"{summary['subscriptions_set_manual']} subscriptions set to manual renewal",
                data=summary,
            )
        except Exception as e:
            return self._failed("Failed to disable source renewals", e)

    # Batch handlers

    def handlers(self) -> Dict[str, Callable[[int], Any]]:
        """Scheduler unit name to handler mapping."""
        return {
            PRODUCTS_BATCH: self.process_products_batch,
            SUBSCRIPTIONS_BATCH: self.process_subscriptions_batch,
        }

    def process_products_batch(self, offset: int = 0) -> Optional[BatchResult]:
        """Run one products batch and queue its successor."""
        try:
            result = self.products_pipeline.process_batch(offset)
        except Exception as e:
            self._batch_failed("products", e)
            return None

        if result.paused:
            return result
        if self.state_store.get().status != MigrationStatus.PRODUCTS_MIGRATING:
            logger.info("Products migration no longer active, not queueing next batch")
            return result

        if result.has_more:
            self.scheduler.enqueue(PRODUCTS_BATCH, result.next_offset)
        else:
            self.state_store.set_status(MigrationStatus.IDLE)
            logger.info("=== PRODUCTS MIGRATION COMPLETED ===")
        return result

    def process_subscriptions_batch(self, offset: int = 0) -> Optional[BatchResult]:
        """Run one subscriptions batch and queue its successor."""
        try:
            result = self.subscriptions_pipeline.process_batch(offset)
        except Exception as e:
            self._batch_failed("subscriptions", e)
            return None

        if result.paused:
            return result
        if self.state_store.get().status != MigrationStatus.SUBSCRIPTIONS_MIGRATING:
            logger.info("Subscriptions migration no longer active, not queueing next batch")
            return result

        if result.has_more:
            self.scheduler.enqueue(SUBSCRIPTIONS_BATCH, result.next_offset)
        else:
            self.state_store.update({
                "status": MigrationStatus.COMPLETED.value,
                "end_time": datetime.utcnow().isoformat(),
            })
            logger.info("=== MIGRATION COMPLETED ===")
        return result

    def run_worker(self, max_units: Optional[int] = None) -> int:
        """
        Work the queue until it is empty.

        Args:
            max_units: Optional cap on units run

        Returns:
            Number of units run
        """
        return self.scheduler.run_pending(self.handlers(), max_units=max_units)

    # Helpers

    def _clear_queues(self) -> None:
        self.scheduler.clear(PRODUCTS_BATCH)
        self.scheduler.clear(SUBSCRIPTIONS_BATCH)

    def _batch_failed(self, pipeline: str, error: Exception) -> None:
        logger.exception(f"{pipeline.capitalize()} batch failed: {error}")
        self.state_store.add_error(f"{pipeline.capitalize()} batch failed: {error}", {"pipeline": pipeline})
        try:
            self.state_store.set_status(MigrationStatus.ERROR)
        except Exception as e:
            logger.error(f"Could not record error status: {e}")

    def _failed(self, message: str, error: Exception) -> OperationResult:
        logger.error(f"{message}: {error}")
        self.state_store.add_error(f"{message}: {error}")
        return OperationResult(success=False, message=f"{message}: {error}")


def create_extractor(config: MigrationConfig) -> BaseExtractor:
    """Create the source extractor described by the configuration."""
    source = config.source
    if source.type == "api":
        return WooCommerceExtractor(source)
    elif source.type == "json":
        return JSONExtractor.from_file(source.file_path)
    else:
        raise ValueError(f"Unsupported source type: {source.type}")


def create_loader(config: MigrationConfig) -> BaseLoader:
    """Create the target loader described by the configuration."""
    target = config.target
    if target.type == "api":
        return SubliumAPILoader(target)
    elif target.type == "json":
        return JSONLoader(file_path=target.file_path)
    else:
        raise ValueError(f"Unsupported target type: {target.type}")


def create_orchestrator(config: MigrationConfig) -> MigrationOrchestrator:
    """Wire an orchestrator with file-backed state, queue and audit log."""
    extractor = create_extractor(config)
    return MigrationOrchestrator(
        config=config,
        extractor=extractor,
        loader=create_loader(config),
        state_store=JSONFileStateStore(config.state_file, max_errors=config.max_errors),
        scheduler=QueueScheduler(config.queue_file),
        renewal_guard=RenewalGuard(extractor, RenewalAuditLog(config.audit_log_file)),
    )
