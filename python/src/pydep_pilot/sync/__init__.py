"""
Synchronization Module

Reconciles the local pip listing with PyPI metadata and pushes progressive
snapshots to display surfaces.

Components:
- coordinator: refresh state machine and user actions
- channel: outbound view message fan-out
- messages: outbound message and inbound command types
- search: debounced, superseding search session
"""

from .channel import ViewStateChannel
from .coordinator import SyncCoordinator, SyncState
from .messages import CommandType, MessageType, NoticeLevel, ViewCommand, ViewMessage
from .search import SearchSession

__all__ = [
    "CommandType",
    "MessageType",
    "NoticeLevel",
    "SearchSession",
    "SyncCoordinator",
    "SyncState",
    "ViewCommand",
    "ViewMessage",
    "ViewStateChannel"
]
