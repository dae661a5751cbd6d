"""
Snapshot planning.

Decides whether a backup run is due and whether it must be a full snapshot
or may be incremental. Planning is a pure function of the current time, the
persisted backup state and the policy values; it performs no I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from snapvault.utils.timeutil import EPOCH


@dataclass(frozen=True)
class SnapshotPlan:
    """
    Outcome of planning one backup attempt.

    Attributes:
        should_run: Whether a run should happen now
        is_full: Whether every file is archived regardless of mtime
        cutoff_time: Files modified at or before this instant are skipped
            when is_full is False; None for full snapshots
    """
    should_run: bool
    is_full: bool = False
    cutoff_time: Optional[datetime] = None

    def includes(self, modified_at: datetime) -> bool:
        """Selection predicate applied to each file during the walk."""
        return self.is_full or modified_at > self.cutoff_time


NOT_DUE = SnapshotPlan(should_run=False)


def plan_snapshot(
    now: datetime,
    state,
    min_interval: timedelta,
    full_interval: timedelta,
    only_incremental: bool,
    since_full: bool = False,
    force: bool = False
) -> SnapshotPlan:
    """
    Plan a backup run.

    Args:
        now: Current time (naive UTC)
        state: Object with last_snapshot_at and last_full_snapshot_at
            attributes, or None if no backup was ever made
        min_interval: Minimum time between two snapshots
        full_interval: Maximum time between two full snapshots when only
            modified files are archived
        only_incremental: If False, every snapshot is full
        since_full: Use the last full snapshot as cutoff instead of the
            last snapshot of any kind
        force: Skip the due check (manual trigger)

    Returns:
        SnapshotPlan for this attempt
    """
    last_snapshot = getattr(state, 'last_snapshot_at', None) or EPOCH
    last_full = getattr(state, 'last_full_snapshot_at', None) or EPOCH

    if not force and not (now - last_snapshot) > min_interval:
        return NOT_DUE

    # Nothing to diff against yet
    if last_snapshot <= EPOCH or last_full <= EPOCH:
        return SnapshotPlan(should_run=True, is_full=True)

    if not only_incremental:
        return SnapshotPlan(should_run=True, is_full=True)

    if (now - last_full) > full_interval:
        return SnapshotPlan(should_run=True, is_full=True)

    cutoff = last_full if since_full else last_snapshot
    return SnapshotPlan(should_run=True, is_full=False, cutoff_time=cutoff)
