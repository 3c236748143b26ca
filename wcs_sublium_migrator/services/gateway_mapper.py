"""Payment gateway compatibility mapping."""

import logging
from typing import Dict, Optional

from ..loaders.base import BaseLoader

logger = logging.getLogger(__name__)


STRIPE = "fkwcs_stripe"
PAYPAL = "fkwcppcp_paypal"
SQUARE = "fkwcsq_square"
AUTHORIZE_NET = "authorize_net"

GATEWAY_MAP: Dict[str, str] = {
    "stripe": STRIPE,
    "stripe_cc": STRIPE,
    "fkwcs_stripe": STRIPE,
    "paypal": PAYPAL,
    "ppcp": PAYPAL,
    "ppcp-gateway": PAYPAL,
    "paypal_standard": PAYPAL,
    "paypal_express": PAYPAL,
    "angelleye_ppcp": PAYPAL,
    "ppec_paypal": PAYPAL,
    "ppec": PAYPAL,
    "fkwcppcp_paypal": PAYPAL,
    "square_credit_card": SQUARE,
    "fkwcsq_square": SQUARE,
    "authorize_net_cim": AUTHORIZE_NET,
}

MANUAL_GATEWAYS = frozenset(["bacs", "cheque", "cod", "manual"])

# Source gateways whose billing agreement has to be copied across
PAYPAL_AGREEMENT_GATEWAYS = frozenset(["ppcp", "ppcp-gateway"])


def map_gateway(source_gateway_id: Optional[str]) -> Optional[str]:
    """
    Map a source gateway ID to its target gateway ID.

    Args:
        source_gateway_id: Gateway ID as stored on the source subscription

    Returns:
        Canonical target gateway ID, the ID itself for manual gateways,
        or None when the gateway is unsupported
    """
    gateway_id = (source_gateway_id or "").strip()
    if not gateway_id:
        return None
    if gateway_id in GATEWAY_MAP:
        return GATEWAY_MAP[gateway_id]
    if gateway_id in MANUAL_GATEWAYS:
        return gateway_id
    return None


def gateway_title(gateway_id: str) -> str:
    """Readable fallback title for a gateway ID."""
    return gateway_id.replace("_", " ").replace("-", " ").capitalize()


class GatewayCompatibility:
    """Checks mapped gateways against the target's live gateway registry."""

    def __init__(self, loader: BaseLoader):
        self.loader = loader
        self._supported: Optional[frozenset] = None

    def supported_gateways(self) -> frozenset:
        if self._supported is None:
            self._supported = frozenset(self.loader.get_supported_gateways() or [])
        return self._supported

    def is_supported(self, target_gateway_id: Optional[str]) -> bool:
        """
        Check whether a target gateway can take over billing.

        Empty and manual IDs are always supported.
        """
        if not target_gateway_id or target_gateway_id in MANUAL_GATEWAYS:
            return True
        if target_gateway_id in self.supported_gateways():
            return True
        return self.loader.get_gateway(target_gateway_id) is not None
