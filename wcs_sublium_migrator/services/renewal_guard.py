"""Renewal suppression for subscriptions that have moved to the target."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..extractors.base import BaseExtractor

logger = logging.getLogger(__name__)


SCHEDULED_HOOKS = frozenset([
    "woocommerce_scheduled_subscription_payment",
    "woocommerce_scheduled_subscription_expiration",
    "woocommerce_scheduled_subscription_trial_end",
    "woocommerce_scheduled_subscription_end_of_prepaid_term",
])


class VetoType:
    ACTION_SCHEDULER_PREVENTED = "action_scheduler_prevented"
    SCHEDULED_PAYMENT = "scheduled_payment"
    MANUAL_RENEWAL_ORDER = "manual_renewal_order_creation"
    MANUAL_RENEWAL_PROCESSING = "manual_renewal_processing"
    EARLY_RENEWAL = "early_renewal"
    AUTO_RENEWAL_TOGGLE = "auto_renewal_toggle"


class RenewalAuditLog:
    """Append-only log of vetoed renewals, kept apart from the migration error log."""

    def __init__(self, file_path: Optional[str] = None):
        """
        Initialize the audit log.

        Args:
            file_path: Optional JSON-lines file; entries stay in memory without one
        """
        self.file_path = Path(file_path) if file_path else None
        self._entries: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def append(self, entry: Dict[str, Any]) -> None:
        with self._lock:
            if self.file_path is None:
                self._entries.append(dict(entry))
                return
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            if self.file_path is None:
                return list(self._entries)
            if not self.file_path.exists():
                return []
            with open(self.file_path, "r", encoding="utf-8") as f:
                return [json.loads(line) for line in f if line.strip()]


class RenewalGuard:
    """
    Vetoes source-side renewals for migrated subscriptions.

    Each allow_* predicate returns True when the source system may go
    ahead. A subscription counts as migrated once it carries a target
    reference; every veto is written to the audit log.
    """

    def __init__(self, extractor: BaseExtractor, audit_log: Optional[RenewalAuditLog] = None):
        self.extractor = extractor
        self.audit_log = audit_log or RenewalAuditLog()

    def is_migrated(self, subscription_id: int) -> bool:
        """Check whether a source subscription has a target reference."""
        if not subscription_id:
            return False
        return self.extractor.get_migration_reference(int(subscription_id)) is not None

    def _veto(self, subscription_id: int, veto_type: str) -> bool:
        if not self.is_migrated(subscription_id):
            return True

        self.audit_log.append({
            "subscription_id": int(subscription_id),
            "type": veto_type,
            "timestamp": datetime.utcnow().isoformat(),
        })
        logger.info(f"Blocked {veto_type} for migrated subscription {subscription_id}")
        return False

    @staticmethod
    def subscription_id_from_args(args: Union[Sequence[Any], Dict[str, Any], None]) -> int:
        """Pull the subscription ID out of scheduled action arguments."""
        if isinstance(args, dict):
            value = args.get("subscription_id", 0)
        elif args:
            value = args[0]
        else:
            value = 0
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    def allow_scheduled_action(self, hook: str, args: Union[Sequence[Any], Dict[str, Any], None]) -> bool:
        """Gate scheduling of renewal, expiry, trial-end and prepaid-term actions."""
        if hook not in SCHEDULED_HOOKS:
            return True
        subscription_id = self.subscription_id_from_args(args)
        return self._veto(subscription_id, VetoType.ACTION_SCHEDULER_PREVENTED)

    def allow_renewal_order(self, subscription_id: int, manual: bool = False) -> bool:
        """Gate creation of a renewal order, scheduled or manually triggered."""
        veto_type = VetoType.MANUAL_RENEWAL_ORDER if manual else VetoType.SCHEDULED_PAYMENT
        return self._veto(subscription_id, veto_type)

    def allow_renewal_payment(self, subscription_id: int) -> bool:
        """Gate processing of a manual renewal payment."""
        return self._veto(subscription_id, VetoType.MANUAL_RENEWAL_PROCESSING)

    def allow_early_renewal(self, subscription_id: int) -> bool:
        """Gate an early renewal request."""
        return self._veto(subscription_id, VetoType.EARLY_RENEWAL)

    def allow_auto_renewal_toggle(self, subscription_id: int, enable_automatic: bool) -> bool:
        """Gate switching a subscription back to automatic renewal."""
        if not enable_automatic:
            return True
        return self._veto(subscription_id, VetoType.AUTO_RENEWAL_TOGGLE)

    def blocked_renewals(self) -> List[Dict[str, Any]]:
        """Every veto recorded so far."""
        return [e for e in self.audit_log.entries() if "subscription_id" in e]

    def disable_source_renewals(self) -> Dict[str, Any]:
        """
        Switch every migrated source subscription to manual renewal.

        Returns:
            Summary with counts of subscriptions switched and failures
        """
        logger.info("=== POST-MIGRATION CLEANUP ===")
        switched = 0
        failed = []

        for subscription_id in self.extractor.list_migrated_subscription_ids():
            try:
                self.extractor.set_manual_renewal(subscription_id)
                switched += 1
            except Exception as e:
                logger.error(f"Failed to disable renewals for subscription {subscription_id}: {e}")
                failed.append(subscription_id)

        summary = {
            "type": "post_migration_cleanup",
            "completed": not failed,
            "completed_at": datetime.utcnow().isoformat(),
            "subscriptions_set_manual": switched,
            "failed_subscriptions": failed,
        }
        self.audit_log.append(summary)
        logger.info(f"Set {switched} migrated subscriptions to manual renewal")
        return summary
