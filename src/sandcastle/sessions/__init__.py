"""Interactive terminal sessions per workspace."""

from .descriptors import DescriptorStore
from .health import SessionHealthMonitor
from .manager import InteractiveSessionManager, Session

__all__ = [
    "DescriptorStore",
    "InteractiveSessionManager",
    "Session",
    "SessionHealthMonitor",
]
