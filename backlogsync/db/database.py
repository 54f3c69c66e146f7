"""
BacklogSync Database Service

Provides dual SQLite + PostgreSQL support with a unified interface.
Uses the Protocol pattern to define the database contract.

Reconciliation runs against a UnitOfWork: one open transaction whose
queries are written with `?` placeholders and translated per dialect.
"""

import json
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Union

from backlogsync.errors import EntityNotFoundError
from backlogsync.logging import get_logger
from backlogsync.models.domain import Epic, PlanningSession, SessionStep, Story

logger = get_logger(__name__)

# Try to import psycopg for PostgreSQL support
try:
    import psycopg
    from psycopg.rows import dict_row
    from psycopg_pool import ConnectionPool
except ImportError:
    psycopg = None  # type: ignore
    dict_row = None  # type: ignore
    ConnectionPool = None  # type: ignore


class UnitOfWork:
    """
    A single open database transaction.

    Queries use `?` placeholders; they are rewritten to `%s` for PostgreSQL.
    Rows are returned as plain dicts for both dialects.
    """

    def __init__(self, conn: Any, dialect: str) -> None:
        self.conn = conn
        self.dialect = dialect

    def _sql(self, query: str) -> str:
        if self.dialect == "postgres":
            return query.replace("?", "%s")
        return query

    def execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and return the affected row count."""
        cur = self.conn.execute(self._sql(query), tuple(params))
        return cur.rowcount

    def fetchall(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a query (SELECT or a write with RETURNING) and return all rows."""
        cur = self.conn.execute(self._sql(query), tuple(params))
        return [dict(row) for row in cur.fetchall()]

    def fetchone(self, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        rows = self.fetchall(query, params)
        return rows[0] if rows else None


def placeholders(count: int) -> str:
    """Return "?, ?, ..." with `count` placeholders."""
    return ", ".join("?" for _ in range(count))


class DatabaseProtocol(Protocol):
    """Protocol defining the database interface."""

    def init_schema(self) -> None: ...

    def transaction(self) -> Any: ...

    # Sessions
    def create_session(
        self,
        user_id: str,
        project_name: str,
        project_description: Optional[str] = None,
        current_step: str = SessionStep.INIT,
    ) -> PlanningSession: ...

    def get_session(self, session_id: int) -> PlanningSession: ...
    def list_sessions(self, user_id: Optional[str] = None) -> List[PlanningSession]: ...

    # Epics / stories (read side)
    def get_epic(self, epic_id: int) -> Epic: ...
    def list_epics(self, session_id: int, *, include_deleted: bool = False) -> List[Epic]: ...
    def get_story(self, story_id: int) -> Story: ...
    def list_stories(
        self,
        session_id: int,
        *,
        epic_id: Optional[int] = None,
        include_deleted: bool = False,
    ) -> List[Story]: ...


# Helper functions for JSON and timestamp parsing

def _parse_json(value: Any) -> Optional[Union[dict, list]]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


def _coerce_ts(value: Any) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return ""
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.isoformat()
        except ValueError:
            return text
    return str(value) if value else ""


def _optional_ts(value: Any) -> Optional[str]:
    return _coerce_ts(value) if value is not None else None


# Row to model converters (rows are sqlite3.Row or psycopg dict rows)

def _row_to_session(row: Any) -> PlanningSession:
    return PlanningSession(
        id=row["id"],
        user_id=row["user_id"],
        project_name=row["project_name"],
        project_description=row["project_description"],
        current_step=row["current_step"],
        status=row["status"],
        total_epics=row["total_epics"] or 0,
        total_stories=row["total_stories"] or 0,
        total_story_points=row["total_story_points"] or 0,
        created_at=_coerce_ts(row["created_at"]),
        updated_at=_coerce_ts(row["updated_at"]),
        deleted_at=_optional_ts(row["deleted_at"]),
    )


def _row_to_epic(row: Any) -> Epic:
    return Epic(
        id=row["id"],
        session_id=row["session_id"],
        number=row["number"],
        title=row["title"],
        description=row["description"],
        business_value=row["business_value"],
        functional_requirement_codes=_parse_json(row["functional_requirement_codes"]) or [],
        status=row["status"],
        priority=row["priority"],
        target_sprint=row["target_sprint"],
        estimated_story_points=row["estimated_story_points"],
        created_at=_coerce_ts(row["created_at"]),
        updated_at=_coerce_ts(row["updated_at"]),
        deleted_at=_optional_ts(row["deleted_at"]),
    )


def _row_to_story(row: Any) -> Story:
    return Story(
        id=row["id"],
        session_id=row["session_id"],
        epic_id=row["epic_id"],
        epic_number=row["epic_number"],
        story_number=row["story_number"],
        story_key=row["story_key"],
        title=row["title"],
        as_a=row["as_a"],
        i_want=row["i_want"],
        so_that=row["so_that"],
        description=row["description"],
        acceptance_criteria=_parse_json(row["acceptance_criteria"]) or [],
        tasks=_parse_json(row["tasks"]) or [],
        dev_notes=_parse_json(row["dev_notes"]) or {},
        status=row["status"],
        priority=row["priority"],
        story_points=row["story_points"],
        target_sprint=row["target_sprint"],
        functional_requirement_codes=_parse_json(row["functional_requirement_codes"]) or [],
        created_at=_coerce_ts(row["created_at"]),
        updated_at=_coerce_ts(row["updated_at"]),
        deleted_at=_optional_ts(row["deleted_at"]),
    )


class SQLiteDatabase:
    """
    SQLite-backed persistence for BacklogSync state.

    Transactions are opened with BEGIN IMMEDIATE so the write lock is held
    from the first natural-key lookup until commit.
    """

    dialect = "sqlite"

    def __init__(self, db_path: Path, timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        """Open a transaction and expose it as a UnitOfWork."""
        with self._transaction() as conn:
            yield UnitOfWork(conn, self.dialect)

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        with closing(self._connect()) as conn:
            cur = conn.execute(query, tuple(params))
            return cur.fetchone()

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with closing(self._connect()) as conn:
            cur = conn.execute(query, tuple(params))
            return cur.fetchall()

    def init_schema(self) -> None:
        """Initialize database schema."""
        from backlogsync.db.schema import SCHEMA_SQLITE

        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA_SQLITE)

    # Sessions
    def create_session(
        self,
        user_id: str,
        project_name: str,
        project_description: Optional[str] = None,
        current_step: str = SessionStep.INIT,
    ) -> PlanningSession:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO planning_sessions (user_id, project_name, project_description, current_step)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, project_name, project_description, current_step),
            )
            session_id = cur.lastrowid
        return self.get_session(session_id)

    def get_session(self, session_id: int) -> PlanningSession:
        row = self._fetchone("SELECT * FROM planning_sessions WHERE id = ?", (session_id,))
        if row is None:
            raise EntityNotFoundError(f"Session {session_id} not found")
        return _row_to_session(row)

    def list_sessions(self, user_id: Optional[str] = None) -> List[PlanningSession]:
        where = ["deleted_at IS NULL"]
        params: List[Any] = []
        if user_id is not None:
            where.append("user_id = ?")
            params.append(user_id)
        rows = self._fetchall(
            f"SELECT * FROM planning_sessions WHERE {' AND '.join(where)} ORDER BY created_at DESC, id DESC",
            tuple(params),
        )
        return [_row_to_session(row) for row in rows]

    # Epics
    def get_epic(self, epic_id: int) -> Epic:
        row = self._fetchone("SELECT * FROM epics WHERE id = ?", (epic_id,))
        if row is None:
            raise EntityNotFoundError(f"Epic {epic_id} not found")
        return _row_to_epic(row)

    def list_epics(self, session_id: int, *, include_deleted: bool = False) -> List[Epic]:
        clause = "" if include_deleted else "AND deleted_at IS NULL"
        rows = self._fetchall(
            f"SELECT * FROM epics WHERE session_id = ? {clause} ORDER BY number, id",
            (session_id,),
        )
        return [_row_to_epic(row) for row in rows]

    # Stories
    def get_story(self, story_id: int) -> Story:
        row = self._fetchone("SELECT * FROM stories WHERE id = ?", (story_id,))
        if row is None:
            raise EntityNotFoundError(f"Story {story_id} not found")
        return _row_to_story(row)

    def list_stories(
        self,
        session_id: int,
        *,
        epic_id: Optional[int] = None,
        include_deleted: bool = False,
    ) -> List[Story]:
        where = ["session_id = ?"]
        params: List[Any] = [session_id]
        if epic_id is not None:
            where.append("epic_id = ?")
            params.append(epic_id)
        if not include_deleted:
            where.append("deleted_at IS NULL")
        rows = self._fetchall(
            f"SELECT * FROM stories WHERE {' AND '.join(where)} ORDER BY epic_number, story_number, id",
            tuple(params),
        )
        return [_row_to_story(row) for row in rows]


class PostgresDatabase:
    """
    PostgreSQL-backed persistence for BacklogSync state.
    Requires psycopg>=3. Follows the same contract as the SQLite Database class.
    """

    dialect = "postgres"

    def __init__(self, db_url: str, pool_size: int = 5) -> None:
        if psycopg is None:
            raise ImportError("psycopg is required for Postgres support. Install psycopg[binary].")

        self.db_url = db_url
        self.row_factory = dict_row
        self.pool = None

        if ConnectionPool:
            self.pool = ConnectionPool(
                conninfo=db_url,
                min_size=1,
                max_size=pool_size,
                kwargs={"row_factory": self.row_factory},
            )

    @contextmanager
    def _connect(self):
        if self.pool:
            with self.pool.connection() as conn:
                yield conn
        else:
            with psycopg.connect(self.db_url, row_factory=self.row_factory) as conn:
                yield conn

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        with self._connect() as conn:
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        """Open a transaction and expose it as a UnitOfWork."""
        with self._transaction() as conn:
            yield UnitOfWork(conn, self.dialect)

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, tuple(params))
                return cur.fetchone()

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, tuple(params))
                return cur.fetchall() or []

    def init_schema(self) -> None:
        """Initialize database schema."""
        from backlogsync.db.schema import SCHEMA_POSTGRES

        with self._transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_POSTGRES)

    # Sessions
    def create_session(
        self,
        user_id: str,
        project_name: str,
        project_description: Optional[str] = None,
        current_step: str = SessionStep.INIT,
    ) -> PlanningSession:
        with self._transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO planning_sessions (user_id, project_name, project_description, current_step)
                    VALUES (%s, %s, %s, %s)
                    RETURNING id
                    """,
                    (user_id, project_name, project_description, current_step),
                )
                session_id = cur.fetchone()["id"]
        return self.get_session(session_id)

    def get_session(self, session_id: int) -> PlanningSession:
        row = self._fetchone("SELECT * FROM planning_sessions WHERE id = %s", (session_id,))
        if row is None:
            raise EntityNotFoundError(f"Session {session_id} not found")
        return _row_to_session(row)

    def list_sessions(self, user_id: Optional[str] = None) -> List[PlanningSession]:
        where = ["deleted_at IS NULL"]
        params: List[Any] = []
        if user_id is not None:
            where.append("user_id = %s")
            params.append(user_id)
        rows = self._fetchall(
            f"SELECT * FROM planning_sessions WHERE {' AND '.join(where)} ORDER BY created_at DESC, id DESC",
            tuple(params),
        )
        return [_row_to_session(row) for row in rows]

    # Epics
    def get_epic(self, epic_id: int) -> Epic:
        row = self._fetchone("SELECT * FROM epics WHERE id = %s", (epic_id,))
        if row is None:
            raise EntityNotFoundError(f"Epic {epic_id} not found")
        return _row_to_epic(row)

    def list_epics(self, session_id: int, *, include_deleted: bool = False) -> List[Epic]:
        clause = "" if include_deleted else "AND deleted_at IS NULL"
        rows = self._fetchall(
            f"SELECT * FROM epics WHERE session_id = %s {clause} ORDER BY number, id",
            (session_id,),
        )
        return [_row_to_epic(row) for row in rows]

    # Stories
    def get_story(self, story_id: int) -> Story:
        row = self._fetchone("SELECT * FROM stories WHERE id = %s", (story_id,))
        if row is None:
            raise EntityNotFoundError(f"Story {story_id} not found")
        return _row_to_story(row)

    def list_stories(
        self,
        session_id: int,
        *,
        epic_id: Optional[int] = None,
        include_deleted: bool = False,
    ) -> List[Story]:
        where = ["session_id = %s"]
        params: List[Any] = [session_id]
        if epic_id is not None:
            where.append("epic_id = %s")
            params.append(epic_id)
        if not include_deleted:
            where.append("deleted_at IS NULL")
        rows = self._fetchall(
            f"SELECT * FROM stories WHERE {' AND '.join(where)} ORDER BY epic_number, story_number, id",
            tuple(params),
        )
        return [_row_to_story(row) for row in rows]


# Type alias for the unified database interface
Database = Union[SQLiteDatabase, PostgresDatabase]


def get_database(
    db_url: Optional[str] = None,
    db_path: Optional[Path] = None,
    pool_size: int = 5,
    sqlite_timeout: float = 30.0,
) -> Database:
    """
    Factory function to create the appropriate database instance.

    Args:
        db_url: PostgreSQL connection URL (postgresql://...)
        db_path: SQLite database file path
        pool_size: Connection pool size for PostgreSQL
        sqlite_timeout: Seconds SQLite waits on a locked database

    Returns:
        Either SQLiteDatabase or PostgresDatabase instance
    """
    if db_url and db_url.startswith("postgres"):
        logger.debug("Using PostgreSQL database", extra={"db_url": db_url})
        return PostgresDatabase(db_url, pool_size=pool_size)

    if db_path:
        return SQLiteDatabase(db_path, timeout=sqlite_timeout)

    # Default to SQLite with default path
    return SQLiteDatabase(Path(".backlogsync.sqlite"), timeout=sqlite_timeout)
