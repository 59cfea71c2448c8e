"""Unit tests for Reconciler."""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from processor.config import SyncConfig
from processor.event_processor import EventProcessor
from processor.exceptions import AuthenticationError, MutationError
from processor.models import ActionType, RawMeeting, RemoteEvent, SyncWindow
from processor.reconciler import Reconciler

NEW_YORK = ZoneInfo('America/New_York')


class FakeEventStore:
    """In-memory stand-in for the remote calendar."""

    def __init__(self, events=None):
        self.events = {e.id: e for e in events or []}
        self.calls = []
        self.fail_on = set()
        self._next_id = 1

    def list_events(self, window):
        self.calls.append(('list', window))
        return [e for e in self.events.values() if window.contains(e, NEW_YORK)]

    def create_event(self, event):
        self.calls.append(('create', event.title))
        if event.title in self.fail_on:
            raise MutationError(f"create of {event.title} rejected")
        remote = self._to_remote(f"evt{self._next_id}", event)
        self._next_id += 1
        self.events[remote.id] = remote
        return remote

    def update_event(self, event_id, event):
        self.calls.append(('update', event_id))
        if event_id in self.fail_on:
            raise MutationError(f"update of {event_id} rejected")
        remote = self._to_remote(event_id, event)
        self.events[event_id] = remote
        return remote

    def delete_event(self, event_id):
        self.calls.append(('delete', event_id))
        if event_id in self.fail_on:
            raise MutationError(f"delete of {event_id} rejected")
        del self.events[event_id]

    def _to_remote(self, event_id, event):
        # the calendar hands times back in the calendar's own offset
        return RemoteEvent(
            id=event_id,
            title=event.title,
            start=event.start.astimezone(NEW_YORK),
            end=event.end.astimezone(NEW_YORK),
            description=event.description,
            location=event.location,
        )


@pytest.fixture
def processor():
    return EventProcessor()


@pytest.fixture
def reconciler():
    return Reconciler(SyncConfig())


@pytest.fixture
def planning_board(processor):
    return processor.normalize(RawMeeting(
        title="Planning Board",
        date="June 1, 2025",
        time="7:00 PM",
        location=None,
        board="Planning",
        details_url=None,
        scraped_at="2025-05-20T12:00:00+00:00",
    ))


def remote_copy(event, event_id="r1", **overrides):
    fields = dict(
        id=event_id,
        title=event.title,
        start=event.start,
        end=event.end,
        description=event.description,
        location=event.location,
    )
    fields.update(overrides)
    return RemoteEvent(**fields)


def scrape(processor, *rows):
    return processor.process_events([
        RawMeeting(
            title=title,
            date=date,
            time=time,
            location="City Hall",
            board=None,
            details_url=None,
            scraped_at="2025-05-20T12:00:00+00:00",
        )
        for title, date, time in rows
    ])


class TestSyncWindow:
    """Test cases for sync window computation."""

    def test_window_padded_thirty_days(self, reconciler, processor):
        """Test the window spans min/max start padded by 30 days."""
        events = scrape(
            processor,
            ("A", "June 1, 2025", "7:00 PM"),
            ("B", "May 1, 2025", "9:00 AM"),
            ("C", "July 1, 2025", "6:00 PM"),
        )

        window = reconciler.compute_sync_window(events)

        assert window.time_min == events[1].start - timedelta(days=30)
        assert window.time_max == events[2].start + timedelta(days=30)

    def test_no_events_no_window(self, reconciler):
        """Test an empty scrape yields no window."""
        assert reconciler.compute_sync_window([]) is None

    def test_all_day_event_inside_window(self):
        """Test all-day remote events are placed on the time line."""
        window = SyncWindow(
            time_min=datetime(2025, 5, 2, tzinfo=timezone.utc),
            time_max=datetime(2025, 7, 1, tzinfo=timezone.utc),
        )
        inside = RemoteEvent(id="a", title="Holiday", start_date="2025-06-01", end_date="2025-06-02")
        outside = RemoteEvent(id="b", title="Holiday", start_date="2025-01-01", end_date="2025-01-02")

        assert window.contains(inside, NEW_YORK)
        assert not window.contains(outside, NEW_YORK)


class TestBuildPlan:
    """Test cases for plan construction."""

    def test_empty_store_creates(self, reconciler, planning_board):
        """Test an unmatched event produces exactly one create."""
        plan = reconciler.build_plan([planning_board], [])

        assert [a.action for a in plan.mutations] == [ActionType.CREATE]
        assert plan.creates[0].event is planning_board
        assert planning_board.start == datetime(2025, 6, 1, 23, 0, tzinfo=timezone.utc)
        assert planning_board.end == datetime(2025, 6, 2, 1, 0, tzinfo=timezone.utc)

    def test_unchanged_match_is_skipped(self, reconciler, planning_board):
        """Test a matched pair with equal fields is skipped."""
        plan = reconciler.build_plan([planning_board], [remote_copy(planning_board)])

        assert plan.is_empty
        assert len(plan.skips) == 1

    def test_changed_location_is_updated(self, reconciler, planning_board):
        """Test a matched pair with a different location is updated."""
        remote = remote_copy(planning_board, location="Old Library")

        plan = reconciler.build_plan([planning_board], [remote])

        assert [a.action for a in plan.mutations] == [ActionType.UPDATE]
        assert plan.updates[0].remote.id == "r1"
        assert plan.updates[0].event is planning_board

    def test_orphan_in_window_is_deleted(self, reconciler, planning_board):
        """Test a remote event absent from the scrape is deleted."""
        orphan = RemoteEvent(
            id="old",
            title="Cancelled Committee",
            start=planning_board.start + timedelta(days=3),
            end=planning_board.start + timedelta(days=3, hours=2),
        )

        plan = reconciler.build_plan([planning_board], [remote_copy(planning_board), orphan])

        assert [(a.action, a.remote.id) for a in plan.mutations] == [(ActionType.DELETE, "old")]

    def test_out_of_window_events_never_planned(self, reconciler, planning_board):
        """Test remote events outside the window are never touched."""
        far_future = RemoteEvent(
            id="far",
            title="Budget Hearing",
            start=planning_board.start + timedelta(days=120),
            end=planning_board.start + timedelta(days=120, hours=2),
        )
        far_past = RemoteEvent(
            id="past",
            title="Budget Hearing",
            start_date="2024-01-10",
            end_date="2024-01-11",
        )

        plan = reconciler.build_plan([planning_board], [far_future, far_past])

        planned_ids = {a.remote.id for a in plan.mutations + plan.skips if a.remote}
        assert planned_ids == set()
        assert [a.action for a in plan.mutations] == [ActionType.CREATE]

    def test_recurring_board_on_other_day(self, reconciler, processor):
        """Test same-title meetings on different days are separate events."""
        events = scrape(
            processor,
            ("City Council", "June 2, 2025", "7:00 PM"),
            ("City Council", "June 16, 2025", "7:00 PM"),
        )

        plan = reconciler.build_plan(events, [remote_copy(events[0])])

        assert len(plan.skips) == 1
        assert [a.event for a in plan.creates] == [events[1]]

    def test_duplicate_scraped_meetings_do_not_share_remote(self, reconciler, processor):
        """Test a remote event is claimed by at most one scraped meeting."""
        events = scrape(
            processor,
            ("City Council", "June 2, 2025", "7:00 PM"),
            ("City Council", "June 2, 2025", "7:00 PM"),
        )

        plan = reconciler.build_plan(events, [remote_copy(events[0])])

        assert len(plan.skips) == 1
        assert len(plan.creates) == 1

    def test_mutation_order(self, reconciler, processor):
        """Test creates come before updates, updates before deletes."""
        events = scrape(
            processor,
            ("Zoning Board", "June 3, 2025", "7:00 PM"),
            ("Planning Board", "June 5, 2025", "7:00 PM"),
            ("Conservation Commission", "June 4, 2025", "7:00 PM"),
        )
        stale = remote_copy(events[1], event_id="u1", location="Elsewhere")
        orphan = remote_copy(events[0], event_id="d1", title="Gone")

        plan = reconciler.build_plan(events, [orphan, stale])

        assert [a.action for a in plan.mutations] == [
            ActionType.CREATE, ActionType.CREATE, ActionType.UPDATE, ActionType.DELETE,
        ]
        assert [a.event.title for a in plan.creates] == ["Zoning Board", "Conservation Commission"]


class TestSync:
    """Test cases for full sync passes."""

    def test_first_pass_creates_everything(self, reconciler, processor):
        """Test an empty store receives every meeting."""
        events = scrape(
            processor,
            ("Planning Board", "June 1, 2025", "7:00 PM"),
            ("City Council", "June 2, 2025", "7:00 PM"),
        )
        store = FakeEventStore()

        result = reconciler.sync(events, store)

        assert result.created == 2
        assert result.total == 2
        assert result.failed == 0
        assert len(store.events) == 2

    def test_second_pass_is_idempotent(self, reconciler, processor):
        """Test re-running with the same scrape produces no mutations."""
        events = scrape(
            processor,
            ("Planning Board", "March 9, 2025", "2:00 PM"),
            ("City Council", "July 9, 2025", "2:00 PM"),
            ("Library Trustees", "June 4, 2025", None),
        )
        store = FakeEventStore()
        reconciler.sync(events, store)
        store.calls.clear()

        result = reconciler.sync(events, store)

        assert (result.created, result.updated, result.deleted) == (0, 0, 0)
        assert result.unchanged == 3
        assert [call[0] for call in store.calls] == ['list']

    def test_sync_updates_and_deletes(self, reconciler, processor):
        """Test changed meetings are updated and orphans removed."""
        events = scrape(processor, ("Planning Board", "June 1, 2025", "7:00 PM"))
        store = FakeEventStore([
            remote_copy(events[0], event_id="r1", location="Old Library"),
            remote_copy(events[0], event_id="r2", title="Cancelled Meeting"),
        ])

        result = reconciler.sync(events, store)

        assert (result.created, result.updated, result.deleted, result.unchanged) == (0, 1, 1, 0)
        assert store.events["r1"].location == "City Hall"
        assert "r2" not in store.events

    def test_failed_mutation_does_not_abort_pass(self, reconciler, processor):
        """Test a failing create is counted and the pass continues."""
        events = scrape(
            processor,
            ("Broken Meeting", "June 1, 2025", "7:00 PM"),
            ("City Council", "June 2, 2025", "7:00 PM"),
        )
        orphan = remote_copy(events[1], event_id="d1", title="Gone")
        store = FakeEventStore([orphan])
        store.fail_on.add("Broken Meeting")

        result = reconciler.sync(events, store)

        assert result.failed == 1
        assert result.created == 1
        assert result.deleted == 1
        assert len(result.errors) == 1
        assert "Broken Meeting" in result.errors[0]

    def test_authentication_failure_is_fatal(self, reconciler, processor):
        """Test an authentication error mid-pass propagates."""
        events = scrape(processor, ("Planning Board", "June 1, 2025", "7:00 PM"))

        class ExpiredStore(FakeEventStore):
            def create_event(self, event):
                raise AuthenticationError("token expired")

        with pytest.raises(AuthenticationError):
            reconciler.sync(events, ExpiredStore())

    def test_authentication_failure_keeps_partial_summary(self, reconciler, processor):
        """Test mutations applied before an authentication error are still reported."""
        events = scrape(processor, ("Planning Board", "June 1, 2025", "7:00 PM"))
        orphan = remote_copy(events[0], event_id="d1", title="Gone")

        class RevokedStore(FakeEventStore):
            def delete_event(self, event_id):
                self.calls.append(('delete', event_id))
                raise AuthenticationError("token revoked")

        store = RevokedStore([orphan])

        with pytest.raises(AuthenticationError) as excinfo:
            reconciler.sync(events, store)

        assert [call[0] for call in store.calls] == ['list', 'create', 'delete']
        result = excinfo.value.result
        assert (result.created, result.updated, result.deleted) == (1, 0, 0)
        assert result.total == 1
        assert result.to_dict()["events_created"] == 1

    def test_no_events_makes_no_calls(self, reconciler):
        """Test an empty scrape never touches the store."""
        store = FakeEventStore([RemoteEvent(id="keep", title="Existing", start_date="2025-06-01")])

        result = reconciler.sync([], store)

        assert result.total == 0
        assert store.calls == []
        assert "keep" in store.events

    def test_dry_run_does_not_mutate(self, processor):
        """Test dry run only lists remote events."""
        reconciler = Reconciler(SyncConfig(dry_run=True))
        events = scrape(processor, ("Planning Board", "June 1, 2025", "7:00 PM"))
        store = FakeEventStore()

        result = reconciler.sync(events, store)

        assert [call[0] for call in store.calls] == ['list']
        assert result.created == 0
        assert store.events == {}
