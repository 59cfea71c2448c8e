"""Reconcile scraped meetings against the remote calendar."""
import logging
from collections import Counter
from typing import List, Optional

from processor.change_detector import changed_fields
from processor.config import SyncConfig
from processor.exceptions import AuthenticationError
from processor.matcher import find_match, match_key
from processor.models import (
    ActionType,
    CanonicalEvent,
    RemoteEvent,
    SyncAction,
    SyncPlan,
    SyncResult,
    SyncWindow,
)

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Turns freshly scraped events and previously synced remote events into a
    minimal set of create, update and delete calls.

    The event store is any object providing ``list_events(window)``,
    ``create_event(event)``, ``update_event(event_id, event)`` and
    ``delete_event(event_id)``.
    """

    def __init__(self, config: Optional[SyncConfig] = None):
        self.config = config or SyncConfig()

    def compute_sync_window(self, events: List[CanonicalEvent]) -> Optional[SyncWindow]:
        """
        Derive the padded window spanned by the scraped events.

        Args:
            events: Canonical events from the current scrape

        Returns:
            SyncWindow, or None when there are no events
        """
        if not events:
            return None
        starts = [event.start for event in events]
        padding = self.config.window_padding
        return SyncWindow(time_min=min(starts) - padding, time_max=max(starts) + padding)

    def build_plan(
        self,
        canonical_events: List[CanonicalEvent],
        remote_events: List[RemoteEvent],
        window: Optional[SyncWindow] = None,
    ) -> SyncPlan:
        """
        Classify every event without touching the store.

        Each canonical event, in scrape order, is matched against the remote
        events: unmatched events become creates, matched events become
        updates or skips. Remote events inside the window that no canonical
        event claimed are orphans and become deletes. Remote events outside
        the window are ignored.

        Args:
            canonical_events: Normalized scraped events
            remote_events: Snapshot of remote events
            window: Sync window; computed from canonical_events when omitted

        Returns:
            SyncPlan
        """
        plan = SyncPlan()
        if window is None:
            window = self.compute_sync_window(canonical_events)
        if window is None:
            return plan

        candidates = [r for r in remote_events if window.contains(r, self.config.tz)]
        ignored = len(remote_events) - len(candidates)
        if ignored:
            logger.debug(f"Ignoring {ignored} remote events outside the sync window")

        duplicates = [key for key, count in Counter(match_key(r) for r in candidates).items() if count > 1]
        for title, start in duplicates:
            logger.warning(f"Multiple remote events share title '{title}' and start {start}")

        seen = set()
        for event in canonical_events:
            remote = find_match(event, candidates, exclude=seen)
            if remote is None:
                plan.creates.append(SyncAction(ActionType.CREATE, event=event))
                continue

            seen.add(remote.id)
            changes = changed_fields(event, remote)
            if changes:
                logger.debug(f"'{event.title}' changed fields: {', '.join(changes)}")
                plan.updates.append(SyncAction(ActionType.UPDATE, event=event, remote=remote))
            else:
                plan.skips.append(SyncAction(ActionType.SKIP, event=event, remote=remote))

        for remote in candidates:
            if remote.id not in seen:
                plan.deletes.append(SyncAction(ActionType.DELETE, remote=remote))

        logger.info(
            f"Sync plan: {len(plan.creates)} to create, "
            f"{len(plan.updates)} to update, "
            f"{len(plan.deletes)} to delete, "
            f"{len(plan.skips)} unchanged"
        )
        return plan

    def execute_plan(self, plan: SyncPlan, store, dry_run: bool = False) -> SyncResult:
        """
        Apply planned mutations one at a time.

        A failed mutation is logged and counted; the remaining mutations still
        run. Authentication failures abort the pass; the summary so far is
        attached to the raised AuthenticationError as ``result``.

        Args:
            plan: Plan from build_plan
            store: Remote event store
            dry_run: Log mutations without calling the store

        Returns:
            SyncResult summary
        """
        result = SyncResult(
            unchanged=len(plan.skips),
            total=len(plan.creates) + len(plan.updates) + len(plan.skips),
        )

        for step in plan.mutations:
            if dry_run:
                logger.info(f"[dry run] {step.action.value.upper()} '{step.title}'")
                continue
            try:
                self._apply(step, store)
            except AuthenticationError as e:
                logger.error(f"Authentication failed during {step.action.value} of '{step.title}'; aborting pass")
                self._log_summary(result)
                e.result = result
                raise
            except Exception as e:
                error_msg = f"Failed to {step.action.value} '{step.title}': {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)
                result.failed += 1
                continue

            if step.action is ActionType.CREATE:
                result.created += 1
            elif step.action is ActionType.UPDATE:
                result.updated += 1
            else:
                result.deleted += 1

        self._log_summary(result)
        return result

    def sync(self, canonical_events: List[CanonicalEvent], store, dry_run: Optional[bool] = None) -> SyncResult:
        """
        Run a full reconciliation pass against the store.

        Args:
            canonical_events: Normalized scraped events in scrape order
            store: Remote event store
            dry_run: Overrides config.dry_run when given

        Returns:
            SyncResult summary
        """
        if dry_run is None:
            dry_run = self.config.dry_run

        window = self.compute_sync_window(canonical_events)
        if window is None:
            logger.info("No events to sync")
            return SyncResult()

        logger.info(f"Loading remote events from {window.time_min.isoformat()} to {window.time_max.isoformat()}")
        remote_events = store.list_events(window)
        logger.info(f"Found {len(remote_events)} remote events in sync window")

        plan = self.build_plan(canonical_events, remote_events, window)
        return self.execute_plan(plan, store, dry_run=dry_run)

    def _log_summary(self, result: SyncResult) -> None:
        logger.info(
            f"Sync complete: {result.created} created, {result.updated} updated, "
            f"{result.deleted} deleted, {result.unchanged} unchanged, "
            f"{result.failed} failed, {result.total} total"
        )

    def _apply(self, step: SyncAction, store) -> None:
        if step.action is ActionType.CREATE:
            logger.info(f"Creating '{step.event.title}' at {step.event.start.isoformat()}")
            store.create_event(step.event)
        elif step.action is ActionType.UPDATE:
            logger.info(f"Updating '{step.event.title}' at {step.event.start.isoformat()}")
            store.update_event(step.remote.id, step.event)
        elif step.action is ActionType.DELETE:
            logger.info(f"Deleting orphaned event '{step.remote.title}' ({step.remote.id})")
            store.delete_event(step.remote.id)
