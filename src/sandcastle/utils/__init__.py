"""Shared helpers: logging setup and JSON schema validation."""

from .logging import WorkspaceLogFilter, configure_logging
from .schema import validate_data

__all__ = ["WorkspaceLogFilter", "configure_logging", "validate_data"]
