"""
Parent Epic Resolution

Maps each story's epic number to a persisted epic id: first from the epics
written in the same pass, then with one lookup for the remaining numbers.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from backlogsync.db.database import UnitOfWork
from backlogsync.logging import get_logger
from backlogsync.models.extraction import ExtractedStory
from backlogsync.services.matching import EPIC_KIND, dedupe_keys, find_active_by_keys

logger = get_logger(__name__)


@dataclass
class ParentResolution:
    epic_ids_by_number: Dict[int, int] = field(default_factory=dict)
    resolved: List[Tuple[ExtractedStory, int]] = field(default_factory=list)
    orphans: List[ExtractedStory] = field(default_factory=list)


def resolve_parents(
    uow: UnitOfWork,
    session_id: int,
    stories: Sequence[ExtractedStory],
    epic_ids_by_number: Dict[int, int],
) -> ParentResolution:
    """
    Pair every story with its epic id.

    Epic numbers missing from `epic_ids_by_number` are looked up among the
    session's active epics in a single query, and only when there are any.
    Stories whose epic is still unknown are returned as orphans.
    """
    known = dict(epic_ids_by_number)
    missing = dedupe_keys(story.epic_number for story in stories if story.epic_number not in known)
    if missing:
        found = find_active_by_keys(uow, EPIC_KIND, session_id, missing)
        known.update({number: row["id"] for number, row in found.items()})

    resolution = ParentResolution(epic_ids_by_number=known)
    for story in stories:
        epic_id = known.get(story.epic_number)
        if epic_id is None:
            logger.warning(
                "Skipping story: epic not found",
                extra={
                    "session_id": session_id,
                    "epic_number": story.epic_number,
                    "story_number": story.story_number,
                },
            )
            resolution.orphans.append(story)
            continue
        resolution.resolved.append((story, epic_id))
    return resolution
