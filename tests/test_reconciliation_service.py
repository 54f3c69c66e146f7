import logging
import sqlite3

import pytest

from backlogsync.db import SQLiteDatabase
from backlogsync.errors import EntityNotFoundError, ValidationError
from backlogsync.models.domain import CounterMode
from backlogsync.models.extraction import ExtractedEpic
from backlogsync.services.reconciliation import ReconciliationService

from tests.factories import epic_payload, soft_delete, story_payload


EPICS = [epic_payload(1), epic_payload(2, priority="high")]
STORIES = [
    story_payload(1, 1, storyPoints=3),
    story_payload(1, 2, storyPoints=5),
    story_payload(2, 1, storyPoints=2),
]


def test_first_pass_inserts_everything(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    result = service.reconcile(session.id, EPICS, STORIES, CounterMode.REPLACE)

    assert (result.epics_inserted, result.epics_updated) == (2, 0)
    assert (result.stories_inserted, result.stories_updated, result.stories_skipped) == (3, 0, 0)
    assert sorted(result.epic_ids_by_number) == [1, 2]
    assert sorted(result.story_ids_by_key) == ["1-1", "1-2", "2-1"]
    assert result.session.to_dict() == {"totalEpics": 2, "totalStories": 3, "totalStoryPoints": 10}

    stories = db.list_stories(session.id)
    by_key = {s.story_key: s for s in stories}
    assert by_key["2-1"].epic_id == result.epic_ids_by_number[2]
    assert all(s.story_key == f"{s.epic_number}-{s.story_number}" for s in stories)
    assert all(s.status == "backlog" for s in stories)


def test_rerun_is_idempotent(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    first = service.reconcile(session.id, EPICS, STORIES, "replace")
    second = service.reconcile(session.id, EPICS, STORIES, "replace")

    assert (second.epics_inserted, second.epics_updated) == (0, 2)
    assert (second.stories_inserted, second.stories_updated) == (0, 3)
    assert second.epic_ids_by_number == first.epic_ids_by_number
    assert second.story_ids_by_key == first.story_ids_by_key
    assert second.session == first.session
    assert len(db.list_epics(session.id, include_deleted=True)) == 2
    assert len(db.list_stories(session.id, include_deleted=True)) == 3


def test_increment_mode_counts_only_inserted_rows(service: ReconciliationService, session) -> None:
    service.reconcile(session.id, EPICS, STORIES, CounterMode.INCREMENT)
    result = service.reconcile(
        session.id,
        [epic_payload(2, title="Renamed"), epic_payload(3)],
        [story_payload(2, 1, storyPoints=100), story_payload(3, 1, storyPoints=8)],
        CounterMode.INCREMENT,
    )

    assert (result.epics_inserted, result.epics_updated) == (1, 1)
    assert (result.stories_inserted, result.stories_updated) == (1, 1)
    assert result.session.to_dict() == {"totalEpics": 3, "totalStories": 4, "totalStoryPoints": 18}


def test_stories_resolve_epics_from_an_earlier_pass(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    first = service.reconcile(session.id, EPICS, [], "replace")
    result = service.reconcile(session.id, [], [story_payload(2, 4)], "replace")

    assert result.stories_inserted == 1
    assert result.epic_ids_by_number == {2: first.epic_ids_by_number[2]}
    assert db.list_stories(session.id)[0].epic_id == first.epic_ids_by_number[2]


def test_orphan_stories_are_skipped(
    service: ReconciliationService, db: SQLiteDatabase, session, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        result = service.reconcile(
            session.id,
            [epic_payload(1)],
            [story_payload(1, 1, storyPoints=1), story_payload(7, 1, storyPoints=40)],
            "replace",
        )

    assert result.stories_inserted == 1
    assert result.stories_skipped == 1
    assert "7-1" not in result.story_ids_by_key
    assert result.session.total_story_points == 1
    assert [s.story_key for s in db.list_stories(session.id)] == ["1-1"]
    assert any(r.getMessage() == "Skipping story: epic not found" for r in caplog.records)


def test_duplicate_keys_collapse_to_last_occurrence(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    result = service.reconcile(
        session.id,
        [epic_payload(1, title="First"), epic_payload(1, title="Second")],
        [story_payload(1, 1, title="Draft"), story_payload(1, 1, title="Final")],
        "replace",
    )

    assert result.epics_inserted == 1
    assert result.stories_inserted == 1
    assert db.list_epics(session.id)[0].title == "Second"
    assert db.list_stories(session.id)[0].title == "Final"


def test_soft_deleted_key_gets_a_new_row(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    first = service.reconcile(session.id, [epic_payload(1)], [story_payload(1, 1)], "replace")
    soft_delete(db, "stories", first.story_ids_by_key["1-1"])

    second = service.reconcile(session.id, [epic_payload(1)], [story_payload(1, 1)], "replace")

    assert second.stories_inserted == 1
    assert second.story_ids_by_key["1-1"] != first.story_ids_by_key["1-1"]
    assert len(db.list_stories(session.id, include_deleted=True)) == 2
    assert second.session.total_stories == 1


def test_accepts_validated_models(service: ReconciliationService, session) -> None:
    epic = ExtractedEpic(number=5, title="Search", description="Product search")
    result = service.reconcile(session.id, [epic], None, CounterMode.REPLACE)
    assert result.epics_inserted == 1
    assert result.stories_inserted == 0


def test_invalid_payload_raises_before_any_write(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    with pytest.raises(ValidationError) as excinfo:
        service.reconcile(session.id, [epic_payload(1), {"number": 0, "title": "x"}], [], "replace")

    assert excinfo.value.metadata["index"] == 1
    assert excinfo.value.metadata["errors"]
    assert db.list_epics(session.id) == []


def test_unknown_counter_mode_is_rejected(service: ReconciliationService, session) -> None:
    with pytest.raises(ValidationError) as excinfo:
        service.reconcile(session.id, EPICS, [], "sum")
    assert excinfo.value.metadata["allowed"] == ["replace", "increment"]


def test_missing_session_propagates_integrity_error(service: ReconciliationService, db: SQLiteDatabase) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        service.reconcile(9999, EPICS, STORIES, "replace")
    assert db._fetchall("SELECT id FROM epics") == []


def test_missing_session_with_empty_payload_is_not_found(service: ReconciliationService) -> None:
    with pytest.raises(EntityNotFoundError):
        service.reconcile(9999, [], [], "increment")


def test_reconcile_in_rolls_back_with_the_caller(
    service: ReconciliationService, db: SQLiteDatabase, session
) -> None:
    with pytest.raises(RuntimeError):
        with db.transaction() as uow:
            result = service.reconcile_in(uow, session.id, EPICS, STORIES, "replace")
            assert result.epics_inserted == 2
            uow.execute("UPDATE planning_sessions SET current_step = 'stories' WHERE id = ?", (session.id,))
            raise RuntimeError("caller aborted")

    stored = db.get_session(session.id)
    assert stored.current_step == "init"
    assert stored.total_epics == 0
    assert db.list_epics(session.id) == []
    assert db.list_stories(session.id) == []


def test_reconcile_in_commits_with_the_caller(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    with db.transaction() as uow:
        service.reconcile_in(uow, session.id, EPICS, STORIES, "replace")
        uow.execute("UPDATE planning_sessions SET current_step = 'stories' WHERE id = ?", (session.id,))

    stored = db.get_session(session.id)
    assert stored.current_step == "stories"
    assert stored.total_stories == 3


def test_result_to_dict_shape(service: ReconciliationService, session) -> None:
    payload = service.reconcile(session.id, EPICS, STORIES, "replace").to_dict()

    assert set(payload) == {
        "epicIdsByNumber",
        "epicsInserted",
        "epicsUpdated",
        "storiesInserted",
        "storiesUpdated",
        "storiesSkipped",
        "session",
    }
    assert payload["session"]["totalStoryPoints"] == 10


def test_other_sessions_are_untouched(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    other = db.create_session(user_id="user-2", project_name="Other")
    service.reconcile(other.id, EPICS, STORIES, "replace")

    result = service.reconcile(session.id, EPICS, STORIES, "replace")

    assert result.epics_inserted == 2
    assert db.get_session(other.id).total_stories == 3
    assert len(db.list_epics(other.id)) == 2


def test_counter_modes_agree_on_a_grown_backlog(service: ReconciliationService, db: SQLiteDatabase, session) -> None:
    service.reconcile(
        session.id,
        [epic_payload(1)],
        [story_payload(1, 1, storyPoints=2), story_payload(1, 2, storyPoints=3)],
        CounterMode.INCREMENT,
    )
    assert db.get_session(session.id).total_story_points == 5

    grown = service.reconcile(
        session.id,
        [],
        [story_payload(1, 3, storyPoints=5), story_payload(1, 4, storyPoints=8)],
        CounterMode.INCREMENT,
    )
    assert (grown.session.total_stories, grown.session.total_story_points) == (4, 18)

    with db.transaction() as uow:
        uow.execute(
            "UPDATE planning_sessions SET total_stories = 0, total_story_points = 0 WHERE id = ?",
            (session.id,),
        )
    recounted = service.reconcile(session.id, [], [], CounterMode.REPLACE)
    assert (recounted.session.total_stories, recounted.session.total_story_points) == (4, 18)


def test_mixed_epic_batch_keeps_existing_id(service: ReconciliationService, session) -> None:
    first = service.reconcile(session.id, [epic_payload(1)], [], "increment")
    result = service.reconcile(session.id, [epic_payload(1), epic_payload(2), epic_payload(3)], [], "increment")

    assert (result.epics_inserted, result.epics_updated) == (2, 1)
    assert result.epic_ids_by_number[1] == first.epic_ids_by_number[1]
    assert len(set(result.epic_ids_by_number.values())) == 3
    assert result.session.total_epics == 3
