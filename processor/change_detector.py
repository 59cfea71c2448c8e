"""Detect drift between a canonical event and its matched remote event."""
from datetime import datetime
from typing import List, Optional

from processor.models import CanonicalEvent, RemoteEvent


def changed_fields(canonical: CanonicalEvent, remote: RemoteEvent) -> List[str]:
    """
    List the mutable fields that differ between the two events.

    Title and start form the match key and are never compared here.
    """
    changes = []
    if canonical.description != (remote.description or ''):
        changes.append('description')
    if canonical.location != (remote.location or ''):
        changes.append('location')
    if not _same_end(canonical.end, None, remote.end, remote.end_date):
        changes.append('end')
    return changes


def needs_update(canonical: CanonicalEvent, remote: RemoteEvent) -> bool:
    """Return True if the remote event must be updated to mirror the canonical one."""
    return bool(changed_fields(canonical, remote))


def _same_end(
    left: Optional[datetime],
    left_date: Optional[str],
    right: Optional[datetime],
    right_date: Optional[str],
) -> bool:
    if left is not None and right is not None:
        return left == right
    if left is None and right is None and left_date is not None and right_date is not None:
        return left_date == right_date
    # one side has an end the other lacks, or the representations differ
    return False
