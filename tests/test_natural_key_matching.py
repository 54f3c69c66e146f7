from typing import List

from backlogsync.db import SQLiteDatabase
from backlogsync.services.matching import (
    EPIC_KIND,
    STORY_KIND,
    dedupe_by_key,
    dedupe_keys,
    find_active_by_keys,
)


def _insert_epic(db: SQLiteDatabase, session_id: int, number: int, deleted: bool = False) -> int:
    with db.transaction() as uow:
        row = uow.fetchone(
            f"""
            INSERT INTO epics (session_id, number, title, description, deleted_at)
            VALUES (?, ?, ?, ?, {'CURRENT_TIMESTAMP' if deleted else 'NULL'})
            RETURNING id
            """,
            (session_id, number, f"Epic {number}", "body"),
        )
    return row["id"]


def test_finds_active_rows_with_one_query(db: SQLiteDatabase, session, statements: List[str]) -> None:
    first = _insert_epic(db, session.id, 1)
    second = _insert_epic(db, session.id, 2)
    statements.clear()

    with db.transaction() as uow:
        found = find_active_by_keys(uow, EPIC_KIND, session.id, [1, 2, 3, 2])

    assert {k: row["id"] for k, row in found.items()} == {1: first, 2: second}
    assert len(statements) == 1
    assert statements[0].startswith("SELECT * FROM epics")
    assert "deleted_at IS NULL" in statements[0]


def test_soft_deleted_rows_never_match(db: SQLiteDatabase, session) -> None:
    _insert_epic(db, session.id, 1, deleted=True)

    with db.transaction() as uow:
        assert find_active_by_keys(uow, EPIC_KIND, session.id, [1]) == {}


def test_empty_key_set_issues_no_query(db: SQLiteDatabase, session, statements: List[str]) -> None:
    with db.transaction() as uow:
        assert find_active_by_keys(uow, STORY_KIND, session.id, []) == {}
    assert statements == []


def test_matching_is_scoped_to_the_session(db: SQLiteDatabase, session) -> None:
    other = db.create_session(user_id="user-2", project_name="Other")
    _insert_epic(db, other.id, 1)

    with db.transaction() as uow:
        assert find_active_by_keys(uow, EPIC_KIND, session.id, [1]) == {}
        assert set(find_active_by_keys(uow, EPIC_KIND, other.id, [1])) == {1}


def test_oldest_active_row_wins_when_keys_repeat(db: SQLiteDatabase, session) -> None:
    oldest = _insert_epic(db, session.id, 4)
    _insert_epic(db, session.id, 4)

    with db.transaction() as uow:
        found = find_active_by_keys(uow, EPIC_KIND, session.id, [4])
    assert found[4]["id"] == oldest


def test_dedupe_helpers() -> None:
    assert dedupe_keys([3, 1, 3, 2, 1]) == [3, 1, 2]

    items = [("a", 1), ("b", 2), ("a", 3)]
    unique, dropped = dedupe_by_key(items, lambda item: item[0])
    assert unique == [("a", 3), ("b", 2)]
    assert dropped == 1
