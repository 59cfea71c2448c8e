"""Exception hierarchy for calendar sync operations."""


class CalendarSyncError(Exception):
    """Base exception for calendar sync operations."""

    pass


class SourceUnavailableError(CalendarSyncError):
    """Calendar page could not be fetched or its structure was not found."""

    pass


class MutationError(CalendarSyncError):
    """A single create, update or delete against the remote calendar failed."""

    pass


class AuthenticationError(CalendarSyncError):
    """Remote calendar credentials are missing, expired or rejected.

    When raised partway through a sync pass, ``result`` holds the summary of
    the mutations applied before the failure.
    """

    result = None


class ConfigurationError(CalendarSyncError):
    """Invalid configuration value."""

    pass
