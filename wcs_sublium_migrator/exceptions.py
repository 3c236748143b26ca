"""Exception types raised inside the migration engine."""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for migration engine errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class CatalogError(MigrationError):
    """A source or target catalog call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.status_code = status_code


class TransformError(MigrationError):
    """A source record could not be converted into its target shape."""


class StateStoreError(MigrationError):
    """The migration state record could not be read or written."""
