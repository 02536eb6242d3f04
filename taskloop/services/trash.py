"""Retention policy for the trash bin."""

from datetime import datetime, timedelta
from typing import List, Sequence

from ..models.task import DeletedTask


def enforce_capacity(entries: Sequence[DeletedTask], capacity: int) -> List[DeletedTask]:
    """Keep the ``capacity`` most recently deleted entries, in their stored order.

    Entries deleted at the same instant rank by position, later entries being newer.
    """
    if capacity <= 0:
        return []
    if len(entries) <= capacity:
        return list(entries)

    ranked = sorted(range(len(entries)), key=lambda i: (entries[i].deleted_at, i))
    keep = set(ranked[-capacity:])
    return [entry for i, entry in enumerate(entries) if i in keep]


def drop_expired(
    entries: Sequence[DeletedTask], *, now: datetime, retention_days: int
) -> List[DeletedTask]:
    """Drop entries deleted more than ``retention_days`` before ``now``."""
    cutoff = now - timedelta(days=retention_days)
    return [entry for entry in entries if entry.deleted_at >= cutoff]


def prune_trash(
    entries: Sequence[DeletedTask],
    *,
    now: datetime,
    retention_days: int,
    capacity: int,
) -> List[DeletedTask]:
    """Apply expiry, then capacity."""
    fresh = drop_expired(entries, now=now, retention_days=retention_days)
    return enforce_capacity(fresh, capacity)
