"""Data models for meeting normalization and calendar reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


@dataclass
class RawMeeting:
    """Raw meeting record from the calendar scraper."""
    title: str
    date: str
    time: Optional[str]
    location: Optional[str]
    board: Optional[str]
    details_url: Optional[str]
    scraped_at: str


@dataclass
class EventSource:
    """Provenance of a canonical event, kept for audit only."""
    details_url: Optional[str]
    original_date: str
    scraped_at: str


@dataclass
class CanonicalEvent:
    """Normalized meeting with timezone-resolved start and end instants."""
    title: str
    start: datetime
    end: datetime
    location: str
    description: str
    source: EventSource


@dataclass
class RemoteEvent:
    """Event already present in the remote calendar.

    Timed events carry ``start``/``end`` datetimes; all-day events carry
    ``start_date``/``end_date`` strings (YYYY-MM-DD) instead.
    """
    id: str
    title: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None


@dataclass
class SyncWindow:
    """Time range within which remote events are loaded and reconciled."""
    time_min: datetime
    time_max: datetime

    def contains(self, event: RemoteEvent, tz=None) -> bool:
        """
        Check whether a remote event overlaps the window.

        Args:
            event: Remote event to check
            tz: Timezone used to place all-day dates on the time line

        Returns:
            True if any part of the event lies inside the window
        """
        start = event.start
        end = event.end
        if start is None and event.start_date:
            start = datetime.fromisoformat(event.start_date).replace(tzinfo=tz or self.time_min.tzinfo)
        if end is None and event.end_date:
            end = datetime.fromisoformat(event.end_date).replace(tzinfo=tz or self.time_min.tzinfo)
        if start is None:
            return False
        if end is None:
            end = start
        return start <= self.time_max and end >= self.time_min


class ActionType(str, Enum):
    """Decision taken for one event during a sync pass."""
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'
    SKIP = 'skip'


@dataclass
class SyncAction:
    """Single planned step of a sync pass."""
    action: ActionType
    event: Optional[CanonicalEvent] = None
    remote: Optional[RemoteEvent] = None

    @property
    def title(self) -> str:
        if self.event is not None:
            return self.event.title
        if self.remote is not None:
            return self.remote.title
        return ''


@dataclass
class SyncPlan:
    """Ordered set of decisions produced by the reconciler."""
    creates: List[SyncAction] = field(default_factory=list)
    updates: List[SyncAction] = field(default_factory=list)
    deletes: List[SyncAction] = field(default_factory=list)
    skips: List[SyncAction] = field(default_factory=list)

    @property
    def mutations(self) -> List[SyncAction]:
        """Mutations in execution order: creates, then updates, then deletes."""
        return self.creates + self.updates + self.deletes

    @property
    def is_empty(self) -> bool:
        return not self.mutations


@dataclass
class SyncResult:
    """Result of sync operation."""
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)
    calendar_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'events_created': self.created,
            'events_updated': self.updated,
            'events_deleted': self.deleted,
            'events_unchanged': self.unchanged,
            'events_failed': self.failed,
            'total_events': self.total,
        }
