"""Google Calendar manager for remote event storage operations."""
import logging
from datetime import datetime
from typing import List, Optional

from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from processor.config import SyncConfig
from processor.exceptions import AuthenticationError, MutationError
from processor.models import CanonicalEvent, RemoteEvent, SyncWindow

logger = logging.getLogger(__name__)

AUTH_STATUSES = (401, 403)


class GoogleCalendarManager:
    """Manager for Google Calendar operations."""

    CALENDAR_SUMMARY = 'Portsmouth NH Municipal Meetings'
    CALENDAR_DESCRIPTION = (
        'Automated calendar of Portsmouth, NH municipal meetings and events. '
        'Scraped from portsmouthnh.gov'
    )
    SOURCE_TITLE = 'Portsmouth Municipal Calendar'
    PAGE_SIZE = 2500

    def __init__(self, service, config: Optional[SyncConfig] = None, calendar_id: Optional[str] = None):
        """
        Initialize the manager.

        Args:
            service: Google Calendar v3 service resource
            config: Sync configuration
            calendar_id: Calendar to operate on; resolve with get_or_create_calendar
        """
        self.service = service
        self.config = config or SyncConfig()
        self.calendar_id = calendar_id
        self.created_calendar = False

    @classmethod
    def from_credentials(cls, credentials, config: Optional[SyncConfig] = None) -> 'GoogleCalendarManager':
        service = build('calendar', 'v3', credentials=credentials, cache_discovery=False)
        return cls(service, config=config)

    def get_or_create_calendar(self, calendar_id: Optional[str] = None) -> str:
        """
        Confirm the target calendar, creating one when it is missing.

        Args:
            calendar_id: Existing calendar id, if configured

        Returns:
            Calendar id to sync into
        """
        if calendar_id:
            try:
                calendar = self._execute(self.service.calendars().get(calendarId=calendar_id))
                logger.info(f"Using existing calendar: {calendar.get('summary', calendar_id)}")
                self.calendar_id = calendar_id
                return calendar_id
            except HttpError as e:
                logger.warning(f"Calendar {calendar_id} not found ({e}), creating new one")

        body = {
            'summary': self.CALENDAR_SUMMARY,
            'description': self.CALENDAR_DESCRIPTION,
            'timeZone': self.config.timezone,
        }
        calendar = self._execute(self.service.calendars().insert(body=body))
        self.calendar_id = calendar['id']
        self.created_calendar = True
        logger.info(f"Created new calendar: {calendar.get('summary')} ({self.calendar_id})")
        return self.calendar_id

    def list_events(self, window: SyncWindow) -> List[RemoteEvent]:
        """
        Retrieve events overlapping the sync window.

        Args:
            window: Sync window

        Returns:
            List of RemoteEvent objects ordered by start
        """
        events = []
        page_token = None

        while True:
            response = self._execute(
                self.service.events().list(
                    calendarId=self._require_calendar(),
                    timeMin=window.time_min.isoformat(),
                    timeMax=window.time_max.isoformat(),
                    singleEvents=True,
                    orderBy='startTime',
                    maxResults=self.PAGE_SIZE,
                    pageToken=page_token,
                )
            )
            for item in response.get('items', []):
                event = self._item_to_remote_event(item)
                if event:
                    events.append(event)
            page_token = response.get('nextPageToken')
            if not page_token:
                break

        logger.info(f"Retrieved {len(events)} events from Google Calendar")
        return events

    def create_event(self, event: CanonicalEvent) -> RemoteEvent:
        item = self._mutate(
            'create', event.title,
            self.service.events().insert(calendarId=self._require_calendar(), body=self.event_to_body(event)),
        )
        return self._item_to_remote_event(item)

    def update_event(self, event_id: str, event: CanonicalEvent) -> RemoteEvent:
        item = self._mutate(
            'update', event.title,
            self.service.events().update(
                calendarId=self._require_calendar(), eventId=event_id, body=self.event_to_body(event)
            ),
        )
        return self._item_to_remote_event(item)

    def delete_event(self, event_id: str) -> None:
        self._mutate(
            'delete', event_id,
            self.service.events().delete(calendarId=self._require_calendar(), eventId=event_id),
        )

    def event_to_body(self, event: CanonicalEvent) -> dict:
        """
        Convert a CanonicalEvent to a Google Calendar event resource.

        Args:
            event: CanonicalEvent object

        Returns:
            Event resource dictionary
        """
        return {
            'summary': event.title,
            'location': event.location,
            'description': event.description,
            'start': {
                'dateTime': event.start.isoformat(),
                'timeZone': self.config.timezone,
            },
            'end': {
                'dateTime': event.end.isoformat(),
                'timeZone': self.config.timezone,
            },
            'source': {
                'title': self.SOURCE_TITLE,
                'url': event.source.details_url or self.config.calendar_url,
            },
            'extendedProperties': {
                'private': {
                    'sourceUrl': self.config.calendar_url,
                    'detailsUrl': event.source.details_url or '',
                    'scrapedAt': event.source.scraped_at,
                    'originalDate': event.source.original_date,
                }
            },
        }

    def _item_to_remote_event(self, item: dict) -> Optional[RemoteEvent]:
        """
        Convert an event resource to a RemoteEvent.

        Args:
            item: Event resource dictionary

        Returns:
            RemoteEvent or None if the resource is unusable
        """
        try:
            start = item.get('start', {})
            end = item.get('end', {})
            return RemoteEvent(
                id=item['id'],
                title=item.get('summary', ''),
                start=_parse_datetime(start.get('dateTime')),
                end=_parse_datetime(end.get('dateTime')),
                start_date=start.get('date'),
                end_date=end.get('date'),
                description=item.get('description'),
                location=item.get('location'),
            )
        except (KeyError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to convert event resource: {e}")
            return None

    def _require_calendar(self) -> str:
        if not self.calendar_id:
            raise ValueError("No calendar selected; call get_or_create_calendar first")
        return self.calendar_id

    def _mutate(self, action: str, label: str, request) -> dict:
        try:
            return self._execute(request)
        except HttpError as e:
            raise MutationError(f"Google Calendar rejected {action} of '{label}': {e}") from e

    def _execute(self, request) -> dict:
        try:
            return request.execute()
        except RefreshError as e:
            raise AuthenticationError(f"Google credentials rejected: {e}") from e
        except HttpError as e:
            if e.resp.status in AUTH_STATUSES and _is_auth_error(e):
                raise AuthenticationError(f"Google Calendar denied access: {e}") from e
            raise


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def _is_auth_error(error: HttpError) -> bool:
    # 403 is also used for rate limits, which are not credential problems
    if error.resp.status == 401:
        return True
    content = error.content.decode('utf-8', errors='replace') if isinstance(error.content, bytes) else str(error.content)
    return 'rateLimitExceeded' not in content and 'usageLimits' not in content
