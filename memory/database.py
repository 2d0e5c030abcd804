"""
Database operations for variable definitions, suites, settings and values.
Provides CRUD operations over the tables in memory.models.

The in-memory caches live in the store and registry; this layer only moves
records in and out of SQL.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import create_engine, delete
from sqlalchemy.exc import ArgumentError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import settings
from core import ConfigurationError, StorageConnectionError, get_logger
from memory.models import (
    Base,
    SettingRecord,
    SuiteRecord,
    VariableDefinitionRecord,
    VariableValueRecord,
)
from schemas import Suite, VariableDefinition, now_ms

logger = get_logger(__name__)

# Transient connection failures only; integrity errors are not retried
_retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)


def _engine_options(url: str) -> Dict[str, Any]:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        options["poolclass"] = StaticPool
    return options


class Database:
    """Database manager for the variable system."""

    def __init__(self, url: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            url: SQLAlchemy URL, defaults to settings.DATABASE_URL
        """
        self.url = url or settings.DATABASE_URL
        try:
            self.engine = create_engine(self.url, echo=False, **_engine_options(self.url))
        except ArgumentError as e:
            raise ConfigurationError("DATABASE_URL", str(e)) from e
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info("Database connection initialized", url=self.engine.url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        """Create all tables in the database."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except OperationalError as e:
            raise StorageConnectionError(str(e)) from e
        logger.info("Database tables created")

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def get_session(self):
        """
        Context manager for database sessions.
        Automatically commits or rolls back transactions.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Database error", error=str(e))
            raise
        finally:
            session.close()

    # ==================== Variable Definitions ====================

    @_retry_transient
    def load_definitions(self) -> List[VariableDefinition]:
        """Load every variable definition, oldest first."""
        with self.get_session() as session:
            rows = (
                session.query(VariableDefinitionRecord)
                .order_by(VariableDefinitionRecord.created_at, VariableDefinitionRecord.id)
                .all()
            )
            return [
                VariableDefinition(
                    id=row.id,
                    name=row.name,
                    tag=row.tag,
                    mode=row.mode,
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                )
                for row in rows
            ]

    @_retry_transient
    def save_definition(self, definition: VariableDefinition) -> None:
        """Insert or update a definition."""
        with self.get_session() as session:
            row = session.get(VariableDefinitionRecord, definition.id)
            if row is None:
                row = VariableDefinitionRecord(id=definition.id)
                session.add(row)
            row.name = definition.name
            row.tag = definition.tag
            row.mode = definition.mode
            row.created_at = definition.created_at
            row.updated_at = definition.updated_at

    @_retry_transient
    def delete_definition(self, variable_id: str) -> bool:
        with self.get_session() as session:
            result = session.execute(
                delete(VariableDefinitionRecord).where(VariableDefinitionRecord.id == variable_id)
            )
            return result.rowcount > 0

    # ==================== Suites ====================

    @_retry_transient
    def load_suites(self) -> List[Suite]:
        """
        Load every suite, oldest first.

        Records that no longer validate are logged and skipped so one bad
        document does not take the registry down.
        """
        suites = []
        with self.get_session() as session:
            rows = session.query(SuiteRecord).order_by(SuiteRecord.created_at, SuiteRecord.id).all()
            for row in rows:
                try:
                    suites.append(Suite.model_validate(row.data))
                except ValidationError as e:
                    logger.error("Corrupt suite record skipped", suite_id=row.id, error=str(e))
        return suites

    @_retry_transient
    def save_suite(self, suite: Suite) -> None:
        with self.get_session() as session:
            row = session.get(SuiteRecord, suite.id)
            if row is None:
                row = SuiteRecord(id=suite.id, created_at=suite.created_at)
                session.add(row)
            row.name = suite.name
            row.data = suite.to_record()
            row.updated_at = suite.updated_at

    @_retry_transient
    def delete_suite(self, suite_id: str) -> bool:
        with self.get_session() as session:
            result = session.execute(delete(SuiteRecord).where(SuiteRecord.id == suite_id))
            return result.rowcount > 0

    # ==================== Settings ====================

    @_retry_transient
    def get_setting(self, key: str, default: Any = None) -> Any:
        with self.get_session() as session:
            row = session.get(SettingRecord, key)
            if row is None or row.value is None:
                return default
            return row.value

    @_retry_transient
    def set_setting(self, key: str, value: Any) -> None:
        with self.get_session() as session:
            row = session.get(SettingRecord, key)
            if row is None:
                session.add(SettingRecord(key=key, value=value))
            else:
                row.value = value

    # ==================== Variable Values ====================

    @_retry_transient
    def load_values(self, chat_id: str) -> Dict[str, dict]:
        """
        Load every value blob stored for a chat.

        Returns:
            Mapping of variable id to raw camelCase blob
        """
        with self.get_session() as session:
            rows = session.query(VariableValueRecord).filter(VariableValueRecord.chat_id == chat_id).all()
            return {row.variable_id: dict(row.data) for row in rows}

    @_retry_transient
    def load_value(self, variable_id: str, chat_id: str) -> Optional[dict]:
        with self.get_session() as session:
            row = session.get(VariableValueRecord, (variable_id, chat_id))
            return dict(row.data) if row is not None else None

    @_retry_transient
    def save_value(self, variable_id: str, chat_id: str, data: dict) -> None:
        with self.get_session() as session:
            row = session.get(VariableValueRecord, (variable_id, chat_id))
            if row is None:
                row = VariableValueRecord(variable_id=variable_id, chat_id=chat_id)
                session.add(row)
            row.data = data
            row.updated_at = now_ms()

    @_retry_transient
    def delete_value(self, variable_id: str, chat_id: str) -> bool:
        with self.get_session() as session:
            result = session.execute(
                delete(VariableValueRecord).where(
                    VariableValueRecord.variable_id == variable_id,
                    VariableValueRecord.chat_id == chat_id,
                )
            )
            return result.rowcount > 0

    @_retry_transient
    def delete_values_for_variable(self, variable_id: str) -> int:
        """Delete a variable's values in every chat. Returns the number of rows removed."""
        with self.get_session() as session:
            result = session.execute(
                delete(VariableValueRecord).where(VariableValueRecord.variable_id == variable_id)
            )
            count = result.rowcount
        logger.info("Variable values purged", variable_id=variable_id, count=count)
        return count
