"""Unit tests for persistence layer."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from acquisition.domain.models import (
    DEFAULT_CRON_EXPRESSION,
    RunStatus,
    SchedulerConfig,
    TriggerType,
)
from acquisition.persistence import (
    DatabaseConnectionError,
    PersistenceError,
    RecordNotFoundError,
    RunRepository,
    SchedulerConfigRepository,
    SqlRunStore,
    close_database,
    get_session,
    init_database,
    is_initialized,
)
from acquisition.persistence.schema import RunModel

STARTED = datetime(2025, 11, 4, 9, 0, 0, 123456, tzinfo=timezone.utc)


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_success(self, tmp_path):
        """Test successful database initialization."""
        db_file = tmp_path / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        assert is_initialized()
        with get_session() as session:
            assert session is not None

        close_database()

    def test_init_database_creates_parent_directories(self, tmp_path):
        """Test initialization creates parent directories if missing."""
        db_file = tmp_path / "subdir" / "nested" / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        close_database()

    def test_init_database_invalid_url_raises_error(self):
        """Test initialization with invalid URL raises DatabaseConnectionError."""
        with pytest.raises(DatabaseConnectionError):
            init_database("")

        with pytest.raises(DatabaseConnectionError):
            init_database(None)

        with pytest.raises(DatabaseConnectionError):
            init_database("nosuchdialect://host/db")

    def test_schema_creation_is_idempotent(self, tmp_path):
        """Test schema creation can run multiple times."""
        db_url = f"sqlite:///{tmp_path / 'test.db'}"

        init_database(db_url)
        init_database(db_url)

        with get_session() as session:
            result = session.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
            tables = [row[0] for row in result.fetchall()]
            assert "pipeline_runs" in tables
            assert "scheduler_config" in tables

        close_database()

    def test_get_session_before_init_raises(self):
        close_database()

        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_close_database_is_idempotent(self):
        init_database("sqlite:///:memory:")

        close_database()
        close_database()

        assert not is_initialized()


class TestSessionManagement:
    """Tests for the session context manager."""

    @pytest.fixture(autouse=True)
    def setup_database(self):
        """Setup test database before each test."""
        init_database("sqlite:///:memory:")
        yield
        close_database()

    def test_session_commits_on_success(self):
        with get_session() as session:
            run_id = RunRepository(session).create(TriggerType.MANUAL, STARTED).id

        with get_session() as session:
            assert RunRepository(session).get_by_id(run_id) is not None

    def test_sqlalchemy_error_in_block_is_persistence_error(self):
        with pytest.raises(PersistenceError):
            with get_session() as session:
                session.execute(text("SELECT * FROM no_such_table"))

    def test_session_rolls_back_on_error(self):
        with pytest.raises(RuntimeError):
            with get_session() as session:
                RunRepository(session).create(TriggerType.MANUAL, STARTED)
                raise RuntimeError("abort transaction")

        with get_session() as session:
            assert RunRepository(session).count() == 0

    def test_in_memory_database_shared_across_threads(self):
        """Test that rows written on a worker thread are visible to the caller."""

        def write():
            with get_session() as session:
                RunRepository(session).create(TriggerType.SCHEDULED, STARTED)

        worker = threading.Thread(target=write)
        worker.start()
        worker.join(5)

        with get_session() as session:
            assert RunRepository(session).count() == 1


class TestRunRepository:
    """Tests for RunRepository."""

    @pytest.fixture(autouse=True)
    def setup_database(self):
        """Setup test database before each test."""
        init_database("sqlite:///:memory:")
        yield
        close_database()

    def test_create_returns_running_run(self):
        with get_session() as session:
            run = RunRepository(session).create(TriggerType.MANUAL, STARTED)

        assert run.id == 1
        assert run.status == RunStatus.RUNNING
        assert run.trigger_type == TriggerType.MANUAL
        assert run.started_at == STARTED
        assert run.completed_at is None
        assert run.output == ""
        assert run.sellers_processed == 0

    def test_ids_are_monotonic(self):
        with get_session() as session:
            repo = RunRepository(session)
            ids = [repo.create(TriggerType.MANUAL, STARTED).id for _ in range(3)]

        assert ids == [1, 2, 3]

    def test_ids_not_reused_after_delete(self):
        with get_session() as session:
            repo = RunRepository(session)
            repo.create(TriggerType.MANUAL, STARTED)
            second = repo.create(TriggerType.MANUAL, STARTED)

        with get_session() as session:
            session.query(RunModel).filter(RunModel.id == second.id).delete()

        with get_session() as session:
            third = RunRepository(session).create(TriggerType.MANUAL, STARTED)

        assert third.id == second.id + 1

    def test_update_final_fields(self):
        completed = STARTED + timedelta(minutes=12)
        with get_session() as session:
            run_id = RunRepository(session).create(TriggerType.SCHEDULED, STARTED).id

        with get_session() as session:
            updated = RunRepository(session).update(
                run_id,
                status=RunStatus.ENRICHMENT_FAILED,
                completed_at=completed,
                output="Found 3 seller(s)\n[ERROR] boom\n",
                error_message="Enrichment failed with exit code 2",
                sellers_processed=3,
                products_scraped=0,
            )

        assert updated.status == RunStatus.ENRICHMENT_FAILED
        assert updated.completed_at == completed
        assert updated.is_finished

        with get_session() as session:
            stored = RunRepository(session).get_by_id(run_id)

        assert stored == updated
        assert stored.output.endswith("[ERROR] boom\n")

    def test_update_accepts_status_strings(self):
        with get_session() as session:
            repo = RunRepository(session)
            run_id = repo.create(TriggerType.MANUAL, STARTED).id
            updated = repo.update(run_id, status="PROCESSING")

        assert updated.status == RunStatus.PROCESSING

    def test_update_missing_run_raises(self):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                RunRepository(session).update(99, status=RunStatus.COMPLETED)

    def test_update_unknown_field_raises(self):
        with get_session() as session:
            repo = RunRepository(session)
            run_id = repo.create(TriggerType.MANUAL, STARTED).id

            with pytest.raises(ValueError, match="trigger_type"):
                repo.update(run_id, trigger_type=TriggerType.SCHEDULED)

    def test_get_by_id_missing_returns_none(self):
        with get_session() as session:
            assert RunRepository(session).get_by_id(42) is None

    def test_list_recent_newest_first_with_limit(self):
        with get_session() as session:
            repo = RunRepository(session)
            for _ in range(5):
                repo.create(TriggerType.MANUAL, STARTED)

        with get_session() as session:
            runs = RunRepository(session).list_recent(limit=3)

        assert [r.id for r in runs] == [5, 4, 3]

    def test_count_by_status(self):
        with get_session() as session:
            repo = RunRepository(session)
            first = repo.create(TriggerType.MANUAL, STARTED)
            repo.create(TriggerType.MANUAL, STARTED)
            repo.update(first.id, status=RunStatus.COMPLETED)

        with get_session() as session:
            repo = RunRepository(session)
            assert repo.count() == 2
            assert repo.count(RunStatus.COMPLETED) == 1
            assert repo.count(RunStatus.RUNNING) == 1
            assert repo.count(RunStatus.AUTH_REQUIRED) == 0


class TestSchedulerConfigRepository:
    """Tests for SchedulerConfigRepository."""

    @pytest.fixture(autouse=True)
    def setup_database(self):
        """Setup test database before each test."""
        init_database("sqlite:///:memory:")
        yield
        close_database()

    def test_get_returns_none_when_missing(self):
        with get_session() as session:
            assert SchedulerConfigRepository(session).get() is None

    def test_upsert_creates_then_overwrites_singleton(self):
        with get_session() as session:
            created = SchedulerConfigRepository(session).upsert(SchedulerConfig.default())

        with get_session() as session:
            updated = SchedulerConfigRepository(session).upsert(
                SchedulerConfig(enabled=True, cron_expr="0 6 * * *")
            )

        with get_session() as session:
            count = session.execute(text("SELECT COUNT(*) FROM scheduler_config")).scalar_one()

        assert created == SchedulerConfig(id=1, enabled=False, cron_expr=DEFAULT_CRON_EXPRESSION)
        assert updated == SchedulerConfig(id=1, enabled=True, cron_expr="0 6 * * *")
        assert count == 1

    def test_upsert_forces_singleton_id(self):
        with get_session() as session:
            saved = SchedulerConfigRepository(session).upsert(SchedulerConfig(id=7, enabled=True))

        assert saved.id == 1


class TestSqlRunStore:
    """Tests for the RunStore implementation."""

    @pytest.fixture(autouse=True)
    def setup_database(self):
        """Setup test database before each test."""
        init_database("sqlite:///:memory:")
        yield
        close_database()

    @pytest.fixture
    def store(self):
        return SqlRunStore()

    def test_run_lifecycle(self, store):
        run = store.create_run(TriggerType.MANUAL, STARTED)
        store.update_run(run.id, status=RunStatus.ENRICHING)
        store.update_run(run.id, status=RunStatus.COMPLETED, completed_at=STARTED + timedelta(seconds=5))

        stored = store.get_run(run.id)

        assert stored.status == RunStatus.COMPLETED
        assert store.count_runs() == 1
        assert [r.id for r in store.list_runs()] == [run.id]

    def test_scheduler_config_round_trip(self, store):
        assert store.get_scheduler_config() is None

        store.save_scheduler_config(SchedulerConfig(enabled=True, cron_expr="*/30 * * * *"))

        assert store.get_scheduler_config().cron_expr == "*/30 * * * *"

    def test_update_missing_run(self, store):
        with pytest.raises(RecordNotFoundError):
            store.update_run(12, status=RunStatus.FAILED)

    def test_store_errors_are_persistence_errors(self, store):
        """Test that a dropped table surfaces as PersistenceError."""
        with get_session() as session:
            session.execute(text("DROP TABLE pipeline_runs"))

        with pytest.raises(PersistenceError):
            store.create_run(TriggerType.MANUAL, STARTED)

    def test_commit_failure_is_persistence_error(self, store, monkeypatch):
        """Test that an error raised at commit is wrapped and rolled back."""

        def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(Session, "commit", failing_commit)

        with pytest.raises(PersistenceError) as exc_info:
            store.save_scheduler_config(SchedulerConfig(enabled=True, cron_expr="0 9 * * *"))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        monkeypatch.undo()
        assert store.get_scheduler_config() is None
