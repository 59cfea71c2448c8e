"""Calendar scraper for the Portsmouth, NH municipal meetings calendar."""
import argparse
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from processor.config import SyncConfig
from processor.event_processor import EventProcessor
from processor.exceptions import SourceUnavailableError
from processor.models import RawMeeting

logger = logging.getLogger(__name__)


class PortsmouthCalendarScraper:
    """Scraper for the Portsmouth municipal meetings calendar."""

    def __init__(self, config: Optional[SyncConfig] = None):
        """
        Initialize the calendar scraper.

        Args:
            config: Sync configuration (calendar URL, timeout, page cap and delay)
        """
        self.config = config or SyncConfig()
        self.base_url = self.config.calendar_url
        self.timeout = self.config.timeout_seconds
        self.max_pages = self.config.max_pages
        self.page_delay = self.config.page_delay_seconds
        self.session = requests.Session()

    def fetch_meetings(self) -> List[RawMeeting]:
        """
        Fetch all meetings, following "load more" pages up to max_pages.

        Returns:
            List of RawMeeting objects in calendar order

        Raises:
            SourceUnavailableError: If the calendar listing is not found
            requests.RequestException: If all retry attempts fail
        """
        scraped_at = datetime.now(timezone.utc).isoformat()
        meetings: List[RawMeeting] = []
        url = self.base_url
        current_date = None
        pages = 0

        while url and pages < self.max_pages:
            if pages:
                # let the server settle between pages
                time.sleep(self.page_delay)
            html_content = self._fetch_page_html(url)
            pages += 1

            soup = BeautifulSoup(html_content, 'html.parser')
            rows = self._find_rows(soup)
            if rows is None:
                if pages == 1:
                    raise SourceUnavailableError(
                        f"Meeting listing not found on {url}"
                    )
                logger.warning(f"Meeting listing missing on page {pages}, stopping")
                break

            page_meetings, current_date = self._parse_rows(rows, url, scraped_at, current_date)
            meetings.extend(page_meetings)
            logger.info(f"Loaded page {pages}: {len(page_meetings)} meetings")

            url = self._next_page_url(soup, url)

        if url and pages >= self.max_pages:
            logger.warning(f"Stopped after {self.max_pages} pages; more pages remain")

        logger.info(f"Successfully scraped {len(meetings)} meetings")
        return meetings

    def _fetch_page_html(self, url: str) -> str:
        """
        Fetch one calendar page with retry logic.

        Args:
            url: Page URL

        Returns:
            HTML content as string

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching {url} (attempt {attempt + 1}/{max_retries})")
                response = self.session.get(url, timeout=self.timeout)
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _find_rows(self, soup: BeautifulSoup):
        view = soup.select_one('.view-events')
        if view is None:
            return None
        return view.select_one('.rows')

    def _parse_rows(
        self,
        rows,
        page_url: str,
        scraped_at: str,
        current_date: Optional[str],
    ) -> Tuple[List[RawMeeting], Optional[str]]:
        """
        Walk the listing: h2 date headers followed by event articles.

        The date header in effect at the end of a page carries over to the
        next page, whose first articles may belong to the same day.

        Returns:
            Tuple of (meetings, date header in effect at the end)
        """
        meetings = []

        for child in rows.find_all(recursive=False):
            if child.name == 'h2':
                current_date = child.get_text(strip=True)
                continue
            if child.name != 'article' or 'event' not in (child.get('class') or []):
                continue
            try:
                meeting = self._parse_article(child, current_date, page_url, scraped_at)
            except Exception as e:
                logger.warning(f"Failed to parse meeting element: {e}")
                continue
            if meeting:
                meetings.append(meeting)

        return meetings, current_date

    def _parse_article(
        self,
        article,
        current_date: Optional[str],
        page_url: str,
        scraped_at: str,
    ) -> Optional[RawMeeting]:
        """
        Parse a single meeting article.

        Returns:
            RawMeeting or None if title or date is missing
        """
        title_elem = article.select_one('h3 a')
        title = title_elem.get_text(strip=True) if title_elem else ''
        if not title or not current_date:
            return None

        href = title_elem.get('href')
        time_elem = article.select_one('.time')
        location_elem = article.select_one('.field--name-field-location')
        badge_elem = article.select_one('.abbrev-badge')

        return RawMeeting(
            title=title,
            date=current_date,
            time=time_elem.get_text(strip=True) if time_elem else None,
            location=location_elem.get_text(' ', strip=True) if location_elem else None,
            board=badge_elem.get_text(strip=True) if badge_elem else None,
            details_url=urljoin(page_url, href) if href else None,
            scraped_at=scraped_at,
        )

    def _next_page_url(self, soup: BeautifulSoup, page_url: str) -> Optional[str]:
        link = soup.select_one('.pager a[rel="next"]')
        if link is None or not link.get('href'):
            return None
        return urljoin(page_url, link['href'])


def main(argv: Optional[List[str]] = None) -> int:
    """Scrape the live calendar and print a sample, without touching Google Calendar."""
    parser = argparse.ArgumentParser(description="Check the Portsmouth meetings scraper")
    parser.add_argument("--limit", type=int, default=5, help="Number of meetings to print")
    parser.add_argument("--max-pages", type=int, help="Override the page cap")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    config = SyncConfig.from_env()
    if args.max_pages:
        config.max_pages = args.max_pages

    try:
        meetings = PortsmouthCalendarScraper(config).fetch_meetings()
    except (SourceUnavailableError, requests.RequestException) as e:
        logger.error(f"Scrape failed: {e}")
        return 1

    print(f"{len(meetings)} meetings scraped")
    if not meetings:
        print("No meetings found; the page layout may have changed")
        return 0

    for index, meeting in enumerate(meetings[:args.limit], 1):
        print(f"\n{index}. {meeting.title}")
        print(f"   Date: {meeting.date}")
        print(f"   Time: {meeting.time or 'Not specified'}")
        print(f"   Location: {meeting.location or 'Not specified'}")
        if meeting.board:
            print(f"   Board: {meeting.board}")
        if meeting.details_url:
            print(f"   Details: {meeting.details_url}")

    events = EventProcessor(config).process_events(meetings)
    if events:
        first = events[0]
        print(f"\nFirst normalized event: {first.title}")
        print(f"   Start: {first.start.isoformat()}")
        print(f"   End: {first.end.isoformat()}")
        print(f"   Location: {first.location}")
    print(f"\n{len(events)} of {len(meetings)} meetings normalized")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
