"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError, so callers that
treat storage as a soft dependency (the scheduler at start-up) can catch a
single type.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialized or is not initialized yet.

    Examples:
    - Invalid database URL
    - Database file not accessible
    - get_session() called before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an update targets a run that does not exist.

    Lookups that may legitimately miss return None instead.
    """

    pass
