import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Ensure repository root is on sys.path so in-tree packages import cleanly.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backlogsync.config import Config  # noqa: E402
from backlogsync.db.database import SQLiteDatabase, UnitOfWork  # noqa: E402
from backlogsync.services.base import ServiceContext  # noqa: E402
from backlogsync.services.reconciliation import ReconciliationService  # noqa: E402
from tests.factories import InjectedFailure, normalize_sql  # noqa: E402


@pytest.fixture
def db(tmp_path: Path) -> SQLiteDatabase:
    database = SQLiteDatabase(tmp_path / "backlogsync.sqlite")
    database.init_schema()
    return database


@pytest.fixture
def session(db: SQLiteDatabase):
    return db.create_session(user_id="user-1", project_name="Checkout Revamp")


@pytest.fixture
def service(db: SQLiteDatabase) -> ReconciliationService:
    context = ServiceContext(config=Config(), request_id="req-test")
    return ReconciliationService(context, db)


@pytest.fixture
def statements(monkeypatch: pytest.MonkeyPatch) -> List[str]:
    """Record every statement issued through a UnitOfWork (whitespace-normalized)."""
    log: List[str] = []
    original_execute = UnitOfWork.execute
    original_fetchall = UnitOfWork.fetchall

    def execute(self: UnitOfWork, query: str, params: Any = ()) -> int:
        log.append(normalize_sql(query))
        return original_execute(self, query, params)

    def fetchall(self: UnitOfWork, query: str, params: Any = ()) -> List[Dict[str, Any]]:
        log.append(normalize_sql(query))
        return original_fetchall(self, query, params)

    monkeypatch.setattr(UnitOfWork, "execute", execute)
    monkeypatch.setattr(UnitOfWork, "fetchall", fetchall)
    return log


@pytest.fixture
def fail_after_writes(monkeypatch: pytest.MonkeyPatch) -> Callable[[Optional[int]], Dict[str, int]]:
    """
    Make the UnitOfWork raise InjectedFailure right after the Nth successful
    INSERT/UPDATE. Passing None only counts writes.
    """

    def install(limit: Optional[int]) -> Dict[str, int]:
        counter = {"writes": 0}
        original_execute = UnitOfWork.execute
        original_fetchall = UnitOfWork.fetchall

        def track(query: str) -> None:
            if normalize_sql(query).split(" ", 1)[0] in ("INSERT", "UPDATE"):
                counter["writes"] += 1
                if limit is not None and counter["writes"] >= limit:
                    raise InjectedFailure(f"failure injected after write {counter['writes']}")

        def execute(self: UnitOfWork, query: str, params: Any = ()) -> int:
            result = original_execute(self, query, params)
            track(query)
            return result

        def fetchall(self: UnitOfWork, query: str, params: Any = ()) -> List[Dict[str, Any]]:
            result = original_fetchall(self, query, params)
            track(query)
            return result

        monkeypatch.setattr(UnitOfWork, "execute", execute)
        monkeypatch.setattr(UnitOfWork, "fetchall", fetchall)
        return counter

    return install
