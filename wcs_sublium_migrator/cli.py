"""Command line interface for the subscription migration engine."""

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .models.migration import MigrationConfig
from .orchestrator import MigrationOrchestrator, create_orchestrator

logger = logging.getLogger(__name__)


def load_config(path: Optional[str]) -> MigrationConfig:
    """Load configuration from a file, or from the environment alone."""
    if path:
        return MigrationConfig.from_json_file(path)
    config = MigrationConfig()
    config.apply_env()
    return config


def print_result(result: Any) -> None:
    """Print a command result as JSON."""
    if hasattr(result, "model_dump"):
        result = result.model_dump(mode="json")
    print(json.dumps(result, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="WooCommerce Subscriptions to Sublium migration tool"
    )
    parser.add_argument("--config", help="Path to migration config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("discover", help="Report migration feasibility")
    subparsers.add_parser("start-products", help="Queue the products migration")
    subparsers.add_parser("start-subscriptions", help="Queue the subscriptions migration")
    subparsers.add_parser("status", help="Show migration status and progress")
    subparsers.add_parser("pause", help="Pause the running migration")
    subparsers.add_parser("resume", help="Resume a paused migration")
    subparsers.add_parser("cancel", help="Cancel the migration and reset its state")
    subparsers.add_parser("reset", help="Reset the migration state")
    subparsers.add_parser("disable-renewals", help="Set migrated source subscriptions to manual renewal")

    worker_parser = subparsers.add_parser("worker", help="Run queued batch units")
    worker_parser.add_argument("--max-units", type=int, help="Stop after this many units")

    subparsers.add_parser("run", help="Migrate products, then subscriptions, draining the queue")

    return parser


def run_all(orchestrator: MigrationOrchestrator) -> int:
    """Run both pipelines to completion in this process."""
    logger.info("=== STARTING FULL MIGRATION ===")
    report = orchestrator.discover()
    if report.is_blocked:
        print_result(report)
        return 1

    products = orchestrator.start_products()
    if products.success:
        orchestrator.run_worker()
    else:
        logger.info(f"Products not started: {products.message}")

    subscriptions = orchestrator.start_subscriptions()
    if subscriptions.success:
        orchestrator.run_worker()
    else:
        logger.info(f"Subscriptions not started: {subscriptions.message}")

    status = orchestrator.status()
    print_result(status)

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    print(f"Status: {status.status}")
    print(f"Plans Created: {status.products_migration.get('created_plans', 0)}")
    print(f"Subscriptions Created: {status.subscriptions_migration.get('created_subscriptions', 0)}")
    print(f"Subscriptions Failed: {status.subscriptions_migration.get('failed_subscriptions', 0)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.command:
        parser.print_help()
        return 1

    orchestrator = create_orchestrator(load_config(args.config))

    if args.command == "run":
        return run_all(orchestrator)
    elif args.command == "worker":
        ran = orchestrator.run_worker(max_units=args.max_units)
        print_result({"units_run": ran, "status": orchestrator.status().status})
        return 0

    commands = {
        "discover": orchestrator.discover,
        "start-products": orchestrator.start_products,
        "start-subscriptions": orchestrator.start_subscriptions,
        "status": orchestrator.status,
        "pause": orchestrator.pause,
        "resume": orchestrator.resume,
        "cancel": orchestrator.cancel,
        "reset": orchestrator.reset,
        "disable-renewals": orchestrator.disable_renewals,
    }
    result = commands[args.command]()
    print_result(result)
    return 0 if getattr(result, "success", True) else 1


if __name__ == "__main__":
    sys.exit(main())
