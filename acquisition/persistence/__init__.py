"""Persistence layer for pipeline run records and scheduler configuration.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None

    # Store used by the orchestrator and scheduler
    - RunStore: abstract storage contract
    - SqlRunStore: SQLAlchemy implementation

    # Repositories (session-scoped)
    - RunRepository, SchedulerConfigRepository

    # Exceptions
    - PersistenceError, DatabaseConnectionError, RecordNotFoundError

Example usage:
    >>> from acquisition.persistence import init_database, SqlRunStore
    >>> init_database("sqlite:///./data/pipeline.db")
    >>> store = SqlRunStore()
    >>> store.list_runs(limit=10)
"""

from .database import close_database, get_engine, get_session, init_database, is_initialized
from .exceptions import DatabaseConnectionError, PersistenceError, RecordNotFoundError
from .repositories import RunRepository, SchedulerConfigRepository
from .store import RunStore, SqlRunStore

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "is_initialized",
    # Store
    "RunStore",
    "SqlRunStore",
    # Repositories
    "RunRepository",
    "SchedulerConfigRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
]
