"""Match canonical events against remote calendar events."""
from datetime import datetime
from typing import Container, Iterable, Optional, Tuple, Union

from processor.models import CanonicalEvent, RemoteEvent

MatchKey = Tuple[str, Union[datetime, str, None]]


def match_key(event: Union[CanonicalEvent, RemoteEvent]) -> MatchKey:
    """
    Return the (title, start) identity of an event.

    The start component is an aware datetime for timed events and a
    YYYY-MM-DD string for all-day events. Aware datetimes compare as
    absolute instants regardless of their UTC offset.
    """
    if isinstance(event, RemoteEvent) and event.start is None:
        return event.title, event.start_date
    return event.title, event.start


def same_start(canonical: CanonicalEvent, remote: RemoteEvent) -> bool:
    if remote.start is None:
        # all-day remote events never match a timed meeting
        return False
    return canonical.start == remote.start


def find_match(
    canonical: CanonicalEvent,
    remote_events: Iterable[RemoteEvent],
    exclude: Container[str] = (),
) -> Optional[RemoteEvent]:
    """
    Find the remote event representing the same meeting.

    The first remote event in list order whose title is identical and whose
    start is the same instant wins. Duplicate remote events sharing a key are
    not expected; later duplicates are left unmatched.

    Args:
        canonical: Normalized scraped event
        remote_events: Remote events loaded for the sync window
        exclude: Remote ids already claimed by another canonical event

    Returns:
        Matching RemoteEvent or None
    """
    for remote in remote_events:
        if remote.id in exclude:
            continue
        if remote.title == canonical.title and same_start(canonical, remote):
            return remote
    return None
