"""Sync configuration passed explicitly to the normalizer, scraper and reconciler."""
import os
from dataclasses import dataclass, field
from datetime import time, timedelta
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.exceptions import ConfigurationError

CALENDAR_URL = 'https://www.portsmouthnh.gov/city-municipal-meetings-calendar'


@dataclass
class SyncConfig:
    """Policy values and settings for one sync pass."""
    calendar_id: Optional[str] = None
    timezone: str = 'America/New_York'
    event_duration: timedelta = field(default_factory=lambda: timedelta(hours=2))
    default_start_time: time = time(9, 0)
    window_padding: timedelta = field(default_factory=lambda: timedelta(days=30))
    default_location: str = 'Portsmouth, NH'
    calendar_url: str = CALENDAR_URL
    max_pages: int = 20
    page_delay_seconds: float = 2.0
    timeout_seconds: int = 30
    dry_run: bool = False
    token_file: str = 'config/token.json'
    token_json: Optional[str] = None
    credentials_file: str = 'config/credentials.json'
    log_level: str = 'INFO'

    def __post_init__(self):
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown timezone '{self.timezone}'") from e
        if self.event_duration <= timedelta(0):
            raise ConfigurationError("Event duration must be positive")
        if self.window_padding < timedelta(0):
            raise ConfigurationError("Window padding must not be negative")
        if self.max_pages < 1:
            raise ConfigurationError("MAX_PAGES must be at least 1")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            SyncConfig instance

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        env = os.environ if environ is None else environ
        try:
            return cls(
                calendar_id=env.get('GOOGLE_CALENDAR_ID') or None,
                timezone=env.get('TIMEZONE', 'America/New_York'),
                event_duration=timedelta(hours=float(env.get('EVENT_DURATION_HOURS', '2'))),
                default_start_time=_parse_clock(env.get('DEFAULT_START_TIME', '09:00')),
                window_padding=timedelta(days=int(env.get('WINDOW_PADDING_DAYS', '30'))),
                calendar_url=env.get('CALENDAR_URL', CALENDAR_URL),
                max_pages=int(env.get('MAX_PAGES', '20')),
                page_delay_seconds=float(env.get('PAGE_DELAY_SECONDS', '2')),
                timeout_seconds=int(env.get('TIMEOUT_SECONDS', '30')),
                dry_run=parse_flag(env.get('DRY_RUN')),
                token_file=env.get('GOOGLE_TOKEN_FILE', 'config/token.json'),
                token_json=env.get('GOOGLE_TOKEN_JSON') or None,
                credentials_file=env.get('GOOGLE_CREDENTIALS_FILE', 'config/credentials.json'),
                log_level=env.get('LOG_LEVEL', 'INFO'),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e


def parse_flag(value) -> bool:
    """Interpret an on/off setting; strings count as true only for 1, true or yes."""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)

def _parse_clock(value: str) -> time:
    hour, minute = value.strip().split(':', 1)
    return time(int(hour), int(minute))
