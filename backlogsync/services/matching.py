"""
Natural-Key Matching

Batch lookup of active (non soft-deleted) rows by natural key, shared by the
epic and story reconciliation steps.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, List, Tuple, TypeVar

from backlogsync.db.database import UnitOfWork, placeholders
from backlogsync.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


@dataclass(frozen=True)
class EntityKind:
    """
    Table-level description of a reconciled entity kind.

    Attributes:
        name: Label used in logs ("epic", "story")
        table: Table name
        key_column: Column holding the natural key within a session
        insert_columns: Columns written on insert, besides session_id
        mutable_columns: Columns overwritten when an active row is matched
    """
    name: str
    table: str
    key_column: str
    insert_columns: Tuple[str, ...]
    mutable_columns: Tuple[str, ...]


EPIC_KIND = EntityKind(
    name="epic",
    table="epics",
    key_column="number",
    insert_columns=(
        "number", "title", "description", "business_value", "functional_requirement_codes",
        "status", "priority", "target_sprint", "estimated_story_points",
    ),
    mutable_columns=(
        "title", "description", "business_value", "functional_requirement_codes",
        "priority", "target_sprint", "estimated_story_points",
    ),
)

STORY_KIND = EntityKind(
    name="story",
    table="stories",
    key_column="story_key",
    insert_columns=(
        "epic_id", "epic_number", "story_number", "story_key",
        "title", "as_a", "i_want", "so_that", "description",
        "acceptance_criteria", "tasks", "dev_notes",
        "status", "priority", "story_points", "target_sprint", "functional_requirement_codes",
    ),
    mutable_columns=(
        "epic_id", "title", "as_a", "i_want", "so_that", "description",
        "acceptance_criteria", "tasks", "dev_notes",
        "priority", "story_points", "target_sprint",
    ),
)


def dedupe_keys(keys: Iterable[K]) -> List[K]:
    """Unique keys in first-seen order."""
    return list(dict.fromkeys(keys))


def dedupe_by_key(items: Iterable[T], key: Callable[[T], K]) -> Tuple[List[T], int]:
    """
    Collapse items sharing a natural key.

    The last occurrence wins and takes the position of the first one.
    Returns the unique items and how many duplicates were dropped.
    """
    by_key: Dict[K, T] = {}
    total = 0
    for item in items:
        by_key[key(item)] = item
        total += 1
    return list(by_key.values()), total - len(by_key)


def find_active_by_keys(
    uow: UnitOfWork,
    kind: EntityKind,
    session_id: int,
    keys: Iterable[K],
) -> Dict[K, Dict[str, Any]]:
    """
    Return active rows of `session_id` whose natural key is in `keys`.

    One query for the whole key set. Soft-deleted rows never match. When
    several active rows share a key the oldest one (lowest id) is returned.
    """
    unique = dedupe_keys(keys)
    if not unique:
        return {}

    rows = uow.fetchall(
        f"""
        SELECT * FROM {kind.table}
        WHERE session_id = ? AND deleted_at IS NULL
          AND {kind.key_column} IN ({placeholders(len(unique))})
        ORDER BY id
        """,
        (session_id, *unique),
    )

    found: Dict[K, Dict[str, Any]] = {}
    for row in rows:
        found.setdefault(row[kind.key_column], row)

    logger.debug(
        "Matched existing %s rows",
        kind.name,
        extra={"session_id": session_id, "requested": len(unique), "matched": len(found)},
    )
    return found
