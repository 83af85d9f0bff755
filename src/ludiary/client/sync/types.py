"""Shared types and dataclasses for sync operations.

This module provides:
- PullResult: Outcome of an initial or incremental pull
- PushWarning, FlushResult: Outcome of a pending-write flush
- DomainReport, SyncReport: Outcome of a scheduler pass over all domains
- CancelCheck: Type alias for cancellation callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from ludiary.core.types import Domain

# Returns True when the running pass should stop at the next entry
CancelCheck = Callable[[], bool]


@dataclass
class PullResult:
    """Result of applying a batch of remote changes.

    Attributes:
        applied: Number of entries written to the local store.
        skipped: Entries received but not applied (local pending write
            kept, or already at or below the cursor).
        cursor: Cursor value after the pull (None if still never synced).
    """

    applied: int = 0
    skipped: int = 0
    cursor: int | None = None


@dataclass
class PushWarning:
    """A pending record the server refused.

    The record stays PENDING locally; nothing is dropped.
    """

    record_id: str
    reason: str


@dataclass
class FlushResult:
    """Result of a pending-write flush.

    Attributes:
        flushed: Records acknowledged by the server.
        warnings: Records rejected by the server (kept PENDING).
        interrupted: True if a transient error stopped the pass early.
    """

    flushed: int = 0
    warnings: list[PushWarning] = field(default_factory=list)
    interrupted: bool = False

    @property
    def has_warnings(self) -> bool:
        """Check if any record was rejected."""
        return len(self.warnings) > 0


@dataclass
class DomainReport:
    """Per-domain, per-owner outcome of a scheduler pass."""

    domain: Domain
    owner_id: str
    initial: PullResult | None = None
    flush: FlushResult | None = None
    pull: PullResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True if the domain synced without a fatal error."""
        return self.error is None


@dataclass
class SyncReport:
    """Outcome of one scheduler pass."""

    reports: list[DomainReport] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None

    @property
    def ok(self) -> bool:
        """True if no domain failed."""
        return not self.skipped and all(r.ok for r in self.reports)

    @property
    def flushed(self) -> int:
        """Total records pushed across domains."""
        return sum(r.flush.flushed for r in self.reports if r.flush)

    @property
    def applied(self) -> int:
        """Total remote entries applied across domains."""
        total = 0
        for r in self.reports:
            if r.initial:
                total += r.initial.applied
            if r.pull:
                total += r.pull.applied
        return total

    @property
    def warnings(self) -> list[PushWarning]:
        """All rejected records across domains."""
        return [w for r in self.reports if r.flush for w in r.flush.warnings]
