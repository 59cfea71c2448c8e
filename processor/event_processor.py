"""Event processor for normalizing scraped meetings into canonical events."""
import logging
import re
from datetime import date, datetime, time, timezone
from typing import List, Optional

from processor.config import SyncConfig
from processor.models import CanonicalEvent, EventSource, RawMeeting

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'(\d{1,2}):(\d{2})\s*(AM|PM)', re.IGNORECASE)


class EventProcessor:
    """Processor for validating and normalizing meeting data."""

    DATE_FORMATS = [
        '%A, %B %d, %Y',  # Monday, June 2, 2025
        '%a, %B %d, %Y',  # Mon, June 2, 2025
        '%A, %b %d, %Y',  # Monday, Jun 2, 2025
        '%a, %b %d, %Y',  # Mon, Jun 2, 2025
        '%B %d, %Y',      # June 2, 2025
        '%b %d, %Y',      # Jun 2, 2025
        '%m/%d/%Y',       # US format
        '%Y-%m-%d',       # ISO 8601
    ]

    def __init__(self, config: Optional[SyncConfig] = None):
        """
        Initialize the processor.

        Args:
            config: Sync configuration (timezone, duration, defaults)
        """
        self.config = config or SyncConfig()
        self.tz = self.config.tz

    def process_events(self, raw_meetings: List[RawMeeting]) -> List[CanonicalEvent]:
        """
        Normalize raw meetings, dropping records that cannot be normalized.

        Args:
            raw_meetings: List of RawMeeting objects from scraper

        Returns:
            List of CanonicalEvent objects in scrape order
        """
        events = []

        for meeting in raw_meetings:
            event = self.normalize(meeting)
            if event:
                events.append(event)

        logger.info(
            f"Normalized {len(events)} valid events out of "
            f"{len(raw_meetings)} scraped meetings"
        )
        return events

    def normalize(self, meeting: RawMeeting) -> Optional[CanonicalEvent]:
        """
        Convert a raw meeting into a canonical event.

        Meetings without a title or with an unparseable date are rejected
        rather than synced with a guessed date.

        Args:
            meeting: Raw scraped meeting

        Returns:
            CanonicalEvent or None if the meeting is rejected
        """
        title = (meeting.title or '').strip()
        if not title:
            logger.warning("Meeting missing required field: title")
            return None

        civil_date = self.parse_date(meeting.date)
        if civil_date is None:
            logger.warning(
                f"Rejecting meeting '{title}': unparseable date '{meeting.date}'"
            )
            return None

        civil_time = self.parse_time(meeting.time)
        if civil_time is None:
            if meeting.time and meeting.time.strip():
                logger.debug(
                    f"Unrecognized time '{meeting.time}' for '{title}', "
                    f"using default start time"
                )
            civil_time = self.config.default_start_time

        start = self.to_instant(civil_date, civil_time)
        end = start + self.config.event_duration

        location = (meeting.location or '').strip() or self.config.default_location

        return CanonicalEvent(
            title=title,
            start=start,
            end=end,
            location=location,
            description=self.build_description(meeting.board, meeting.details_url),
            source=EventSource(
                details_url=meeting.details_url,
                original_date=meeting.date,
                scraped_at=meeting.scraped_at,
            ),
        )

    def parse_date(self, date_str: Optional[str]) -> Optional[date]:
        """
        Parse a human-readable date.

        Args:
            date_str: Date string in one of DATE_FORMATS

        Returns:
            date or None if parsing fails
        """
        if not date_str:
            return None
        text = ' '.join(date_str.split())

        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue

        return None

    def parse_time(self, time_str: Optional[str]) -> Optional[time]:
        """
        Parse the first 12-hour clock time (H:MM AM|PM) in a string.

        Args:
            time_str: Time text, possibly a range like "7:00 PM - 9:00 PM"

        Returns:
            time or None if no valid time is found
        """
        if not time_str:
            return None
        match = TIME_PATTERN.search(time_str)
        if not match:
            return None

        hour = int(match.group(1))
        minute = int(match.group(2))
        meridiem = match.group(3).upper()
        if hour < 1 or hour > 12 or minute > 59:
            return None

        if meridiem == 'PM' and hour != 12:
            hour += 12
        elif meridiem == 'AM' and hour == 12:
            hour = 0

        return time(hour, minute)

    def to_instant(self, civil_date: date, civil_time: time) -> datetime:
        """
        Interpret a civil date and time as wall-clock time in the configured
        timezone and return the matching UTC instant.
        """
        local = datetime.combine(civil_date, civil_time, tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def build_description(self, board: Optional[str], details_url: Optional[str]) -> str:
        description = 'Portsmouth Municipal Meeting\n\n'
        if board and board.strip():
            description += f"Board/Committee: {board.strip()}\n"
        if details_url:
            description += f"\nMore information: {details_url}"
        description += f"\n\nAutomatically scraped from: {self.config.calendar_url}"
        return description.strip()
