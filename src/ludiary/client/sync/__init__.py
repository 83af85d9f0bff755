"""Record synchronization between the local store and the server.

Architecture:
    SyncScheduler → SyncCoordinator (one per domain) → RemoteStore

Components:
- **SyncCoordinator**: Initial sync, incremental pull, pending-write flush
- **SyncScheduler**: Run-now / periodic passes over every domain
- **Types**: PullResult, FlushResult, SyncReport

All public symbols are re-exported here.
"""

from ludiary.client.sync.coordinator import SyncCoordinator
from ludiary.client.sync.scheduler import DOMAIN_ORDER, SyncScheduler
from ludiary.client.sync.types import (
    CancelCheck,
    DomainReport,
    FlushResult,
    PullResult,
    PushWarning,
    SyncReport,
)

__all__ = [
    # Types and dataclasses
    "CancelCheck",
    "DomainReport",
    "FlushResult",
    "PullResult",
    "PushWarning",
    "SyncReport",
    # Coordinator & scheduler
    "DOMAIN_ORDER",
    "SyncCoordinator",
    "SyncScheduler",
]
