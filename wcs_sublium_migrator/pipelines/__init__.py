"""Batch pipelines that move products and subscriptions."""

from .base import BasePipeline
from .products import ProductsPipeline
from .subscriptions import SubscriptionsPipeline

__all__ = [
    "BasePipeline",
    "ProductsPipeline",
    "SubscriptionsPipeline",
]
