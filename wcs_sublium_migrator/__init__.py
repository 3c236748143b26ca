"""
WooCommerce Subscriptions to Sublium Migration Engine

Moves recurring billing from WooCommerce Subscriptions to Sublium without
double-charging customers.

Supports:
- Feasibility discovery (plugin status, gateway compatibility, counts)
- Product pricing schemes converted into Sublium plans
- Subscriptions recreated with their dates, items and gateway
- Resumable, pausable batch processing with persisted progress
- Suppression of source renewals for migrated subscriptions
"""

__version__ = "0.1.0"
