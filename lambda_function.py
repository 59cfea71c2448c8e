"""AWS Lambda handler for Portsmouth Municipal Meetings Calendar Sync."""
import json
import logging
import time
from typing import Dict, Any

import requests

from processor.config import SyncConfig, parse_flag
from processor.event_processor import EventProcessor
from processor.exceptions import (
    AuthenticationError,
    ConfigurationError,
    SourceUnavailableError,
)
from processor.reconciler import Reconciler
from scraper.portsmouth_calendar import PortsmouthCalendarScraper
from storage.credentials import load_credentials
from storage.google_calendar_manager import GoogleCalendarManager


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _error_response(status_code: int, message: str, error: Exception, start_time: float, **extra: Any) -> Dict[str, Any]:
    return _response(status_code, {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2),
        **extra
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the meetings calendar sync.

    Args:
        event: EventBridge event payload; an optional "dry_run" key
            overrides the DRY_RUN setting
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    start_time = time.time()
    logger = logging.getLogger(__name__)

    try:
        config = SyncConfig.from_env()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return _error_response(500, 'Invalid configuration', e, start_time)

    setup_logging(config.log_level)
    dry_run = parse_flag((event or {}).get('dry_run', config.dry_run))

    logger.info(
        "Lambda execution started",
        extra={
            'calendar_url': config.calendar_url,
            'calendar_id': config.calendar_id,
            'dry_run': dry_run
        }
    )

    try:
        scraper = PortsmouthCalendarScraper(config)
        processor = EventProcessor(config)
        reconciler = Reconciler(config)

        # Scrape meetings
        try:
            logger.info("Fetching meetings from calendar")
            raw_meetings = scraper.fetch_meetings()
            logger.info(f"Fetched {len(raw_meetings)} raw meetings from calendar")
        except (SourceUnavailableError, requests.RequestException) as e:
            logger.error(
                f"Calendar source unavailable: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(502, 'Failed to fetch calendar meetings', e, start_time)

        logger.info("Normalizing meetings")
        events = processor.process_events(raw_meetings)

        if not events:
            logger.warning("No meetings found; nothing to sync")
            return _response(200, {
                'message': 'No meetings found; nothing to sync',
                'statistics': {
                    'raw_meetings_fetched': len(raw_meetings),
                    'valid_events_processed': 0,
                    'duration_seconds': round(time.time() - start_time, 2)
                },
                'errors': []
            })

        # Reconcile with Google Calendar
        try:
            logger.info("Authorizing with Google Calendar")
            credentials = load_credentials(config.token_file, config.token_json)
            manager = GoogleCalendarManager.from_credentials(credentials, config)
            calendar_id = manager.get_or_create_calendar(config.calendar_id)
            if manager.created_calendar:
                logger.info(f"Set GOOGLE_CALENDAR_ID={calendar_id} to reuse the new calendar")

            logger.info("Reconciling events with Google Calendar")
            result = reconciler.sync(events, manager, dry_run=dry_run)
            result.calendar_id = calendar_id
        except AuthenticationError as e:
            logger.error(
                f"Google Calendar authentication failed: {str(e)}",
                extra={'error_type': type(e).__name__}
            )
            extra = {}
            if e.result is not None:
                # mutations applied before the failure are still reported
                extra = {
                    'statistics': {
                        'raw_meetings_fetched': len(raw_meetings),
                        'valid_events_processed': len(events),
                        **e.result.to_dict()
                    },
                    'errors': e.result.errors
                }
            return _error_response(401, 'Google Calendar authentication failed', e, start_time, **extra)

        duration = time.time() - start_time

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events_created': result.created,
                'events_updated': result.updated,
                'events_deleted': result.deleted,
                'events_unchanged': result.unchanged,
                'events_failed': result.failed
            }
        )

        statistics = {
            'raw_meetings_fetched': len(raw_meetings),
            'valid_events_processed': len(events),
            **result.to_dict(),
            'duration_seconds': round(duration, 2)
        }
        return _response(200, {
            'message': 'Sync completed successfully' if not result.failed else 'Sync completed with errors',
            'calendar_id': calendar_id,
            'dry_run': dry_run,
            'statistics': statistics,
            'errors': result.errors
        })

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _error_response(500, 'Sync failed', e, start_time)
