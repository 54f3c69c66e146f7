import logging
from typing import List

import pytest

from backlogsync.db import SQLiteDatabase
from backlogsync.models.extraction import ExtractedEpic, ExtractedStory
from backlogsync.services.parents import resolve_parents
from backlogsync.services.upsert import upsert_epics


def _story(epic_number: int, story_number: int) -> ExtractedStory:
    return ExtractedStory(
        epic_number=epic_number,
        story_number=story_number,
        title="Story",
        as_a="user",
        i_want="a thing",
        so_that="value",
    )


def _seed_epics(db: SQLiteDatabase, session_id: int, *numbers: int):
    with db.transaction() as uow:
        outcome = upsert_epics(
            uow,
            session_id,
            [ExtractedEpic(number=n, title=f"Epic {n}", description="body") for n in numbers],
        )
    return outcome.ids_by_key


def test_no_lookup_when_every_epic_is_known(db: SQLiteDatabase, session, statements: List[str]) -> None:
    ids = _seed_epics(db, session.id, 1, 2)
    statements.clear()

    with db.transaction() as uow:
        resolution = resolve_parents(uow, session.id, [_story(1, 1), _story(2, 1)], ids)

    assert statements == []
    assert [epic_id for _, epic_id in resolution.resolved] == [ids[1], ids[2]]
    assert resolution.orphans == []


def test_falls_back_to_epics_from_earlier_passes(db: SQLiteDatabase, session, statements: List[str]) -> None:
    ids = _seed_epics(db, session.id, 1, 3)
    statements.clear()

    with db.transaction() as uow:
        resolution = resolve_parents(uow, session.id, [_story(1, 1), _story(3, 1), _story(3, 2)], {1: ids[1]})

    assert len(statements) == 1
    assert "number IN (?)" in statements[0]
    assert resolution.epic_ids_by_number == {1: ids[1], 3: ids[3]}
    assert [epic_id for _, epic_id in resolution.resolved] == [ids[1], ids[3], ids[3]]


def test_orphans_are_skipped_and_logged(
    db: SQLiteDatabase, session, caplog: pytest.LogCaptureFixture
) -> None:
    ids = _seed_epics(db, session.id, 1)

    with caplog.at_level(logging.WARNING):
        with db.transaction() as uow:
            resolution = resolve_parents(uow, session.id, [_story(1, 1), _story(9, 1)], ids)

    assert [s.story_key for s, _ in resolution.resolved] == ["1-1"]
    assert [s.story_key for s in resolution.orphans] == ["9-1"]
    warnings = [r for r in caplog.records if r.getMessage() == "Skipping story: epic not found"]
    assert len(warnings) == 1
    assert warnings[0].epic_number == 9


def test_soft_deleted_epic_does_not_resolve(db: SQLiteDatabase, session) -> None:
    _seed_epics(db, session.id, 1)
    with db.transaction() as uow:
        uow.execute("UPDATE epics SET deleted_at = CURRENT_TIMESTAMP WHERE session_id = ?", (session.id,))

    with db.transaction() as uow:
        resolution = resolve_parents(uow, session.id, [_story(1, 1)], {})

    assert resolution.resolved == []
    assert len(resolution.orphans) == 1


def test_input_map_is_not_mutated(db: SQLiteDatabase, session) -> None:
    ids = _seed_epics(db, session.id, 1, 2)
    given = {1: ids[1]}

    with db.transaction() as uow:
        resolve_parents(uow, session.id, [_story(2, 1)], given)

    assert given == {1: ids[1]}
