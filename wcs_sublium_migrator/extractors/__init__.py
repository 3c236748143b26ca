"""Source catalog extractors."""

from .base import BaseExtractor
from .api_extractor import WooCommerceExtractor
from .json_extractor import JSONExtractor

__all__ = [
    "BaseExtractor",
    "WooCommerceExtractor",
    "JSONExtractor",
]
