"""
Batch Upsert

Writes one entity kind at a time: a single multi-row INSERT for every record
without an active match, and one UPDATE per matched record.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Sequence, Tuple

from backlogsync.db.database import UnitOfWork, placeholders
from backlogsync.errors import ReconciliationError
from backlogsync.extraction import (
    transform_acceptance_criteria,
    transform_dev_notes,
    transform_tasks,
)
from backlogsync.logging import get_logger
from backlogsync.models.domain import EpicStatus, StoryStatus
from backlogsync.models.extraction import ExtractedEpic, ExtractedStory
from backlogsync.services.matching import EPIC_KIND, STORY_KIND, EntityKind, find_active_by_keys

logger = get_logger(__name__)


@dataclass
class UpsertOutcome:
    """Natural key -> surrogate id for every written row, plus what was inserted vs updated."""
    ids_by_key: Dict[Any, int] = field(default_factory=dict)
    inserted_keys: List[Any] = field(default_factory=list)
    updated_keys: List[Any] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return len(self.inserted_keys)

    @property
    def updated(self) -> int:
        return len(self.updated_keys)


def batch_upsert(
    uow: UnitOfWork,
    kind: EntityKind,
    session_id: int,
    rows: Sequence[Tuple[Hashable, Dict[str, Any]]],
    existing: Dict[Any, Dict[str, Any]],
) -> UpsertOutcome:
    """
    Partition `rows` by `existing` and write them.

    `rows` are (natural_key, column values) pairs with unique keys, in input
    order. Values must cover kind.insert_columns. Matched rows get every
    mutable column overwritten; the natural key and deleted_at are never
    touched. Any failing statement propagates.
    """
    outcome = UpsertOutcome()
    to_insert: List[Tuple[Hashable, Dict[str, Any]]] = []

    assignments = ", ".join(f"{column} = ?" for column in kind.mutable_columns)
    for key, values in rows:
        match = existing.get(key)
        if match is None:
            to_insert.append((key, values))
            continue
        uow.execute(
            f"UPDATE {kind.table} SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*(values[column] for column in kind.mutable_columns), match["id"]),
        )
        outcome.ids_by_key[key] = match["id"]
        outcome.updated_keys.append(key)

    if to_insert:
        columns = ("session_id", *kind.insert_columns)
        row_sql = f"({placeholders(len(columns))})"
        params: List[Any] = []
        for _, values in to_insert:
            params.append(session_id)
            params.extend(values[column] for column in kind.insert_columns)

        inserted = uow.fetchall(
            f"""
            INSERT INTO {kind.table} ({', '.join(columns)})
            VALUES {', '.join(row_sql for _ in to_insert)}
            RETURNING id, {kind.key_column}
            """,
            params,
        )
        returned = {row[kind.key_column]: row["id"] for row in inserted}
        if len(returned) != len(to_insert):
            raise ReconciliationError(
                f"Inserted {len(returned)} {kind.table} rows, expected {len(to_insert)}",
                metadata={"session_id": session_id, "kind": kind.name},
            )
        for key, _ in to_insert:
            outcome.ids_by_key[key] = returned[key]
            outcome.inserted_keys.append(key)

    logger.debug(
        "Upserted %s batch",
        kind.name,
        extra={"session_id": session_id, "inserted": outcome.inserted, "updated": outcome.updated},
    )
    return outcome


def epic_row(epic: ExtractedEpic) -> Dict[str, Any]:
    return {
        "number": epic.number,
        "title": epic.title,
        "description": epic.description,
        "business_value": epic.business_value,
        "functional_requirement_codes": json.dumps(epic.functional_requirement_codes),
        "status": EpicStatus.BACKLOG,
        "priority": epic.priority.value,
        "target_sprint": epic.target_sprint,
        "estimated_story_points": epic.estimated_story_points,
    }


def story_row(story: ExtractedStory, epic_id: int) -> Dict[str, Any]:
    return {
        "epic_id": epic_id,
        "epic_number": story.epic_number,
        "story_number": story.story_number,
        "story_key": story.story_key,
        "title": story.title,
        "as_a": story.as_a,
        "i_want": story.i_want,
        "so_that": story.so_that,
        "description": story.description,
        "acceptance_criteria": json.dumps(transform_acceptance_criteria(story.acceptance_criteria)),
        "tasks": json.dumps(transform_tasks(story.tasks)),
        "dev_notes": json.dumps(transform_dev_notes(story.dev_notes)),
        "status": StoryStatus.BACKLOG,
        "priority": story.priority.value,
        "story_points": story.story_points,
        "target_sprint": story.target_sprint,
        "functional_requirement_codes": json.dumps([]),
    }


def upsert_epics(uow: UnitOfWork, session_id: int, epics: Sequence[ExtractedEpic]) -> UpsertOutcome:
    """Upsert epics keyed by number. `epics` must already be unique by number."""
    if not epics:
        return UpsertOutcome()
    existing = find_active_by_keys(uow, EPIC_KIND, session_id, (epic.number for epic in epics))
    rows = [(epic.number, epic_row(epic)) for epic in epics]
    return batch_upsert(uow, EPIC_KIND, session_id, rows, existing)


def upsert_stories(
    uow: UnitOfWork,
    session_id: int,
    stories: Sequence[Tuple[ExtractedStory, int]],
) -> UpsertOutcome:
    """Upsert (story, resolved epic id) pairs keyed by story_key."""
    if not stories:
        return UpsertOutcome()
    existing = find_active_by_keys(uow, STORY_KIND, session_id, (story.story_key for story, _ in stories))
    rows = [(story.story_key, story_row(story, epic_id)) for story, epic_id in stories]
    return batch_upsert(uow, STORY_KIND, session_id, rows, existing)
