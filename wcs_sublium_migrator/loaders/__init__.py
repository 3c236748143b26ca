"""Target catalog loaders."""

from .base import BaseLoader
from .api_loader import SubliumAPILoader
from .json_loader import JSONLoader

__all__ = [
    "BaseLoader",
    "SubliumAPILoader",
    "JSONLoader",
]
