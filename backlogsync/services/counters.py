"""
Session Counter Maintenance

Keeps planning_sessions.total_epics / total_stories / total_story_points in
step with the epics and stories written by a reconciliation pass.
"""

from dataclasses import dataclass
from typing import Any, Dict

from backlogsync.db.database import UnitOfWork
from backlogsync.errors import EntityNotFoundError
from backlogsync.models.domain import CounterMode


@dataclass(frozen=True)
class SessionCounters:
    total_epics: int
    total_stories: int
    total_story_points: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalEpics": self.total_epics,
            "totalStories": self.total_stories,
            "totalStoryPoints": self.total_story_points,
        }


_RETURNING = "RETURNING total_epics, total_stories, total_story_points"


def recount_counters(uow: UnitOfWork, session_id: int) -> Dict[str, Any]:
    """Counts of the session's active epics and stories and their summed points."""
    epics = uow.fetchone(
        "SELECT COUNT(*) AS total FROM epics WHERE session_id = ? AND deleted_at IS NULL",
        (session_id,),
    )
    stories = uow.fetchone(
        """
        SELECT COUNT(*) AS total, COALESCE(SUM(story_points), 0) AS points
        FROM stories WHERE session_id = ? AND deleted_at IS NULL
        """,
        (session_id,),
    )
    return {
        "total_epics": int(epics["total"]),
        "total_stories": int(stories["total"]),
        "total_story_points": int(stories["points"]),
    }


def apply_counters(
    uow: UnitOfWork,
    session_id: int,
    mode: CounterMode,
    *,
    epics_inserted: int = 0,
    stories_inserted: int = 0,
    inserted_story_points: int = 0,
) -> SessionCounters:
    """
    Update the session counters and updated_at, returning the final values.

    REPLACE sets the counters from the session's active rows, ignoring the
    previous values. INCREMENT adds the rows inserted by this pass.
    """
    if mode is CounterMode.REPLACE:
        totals = recount_counters(uow, session_id)
        row = uow.fetchone(
            f"""
            UPDATE planning_sessions
            SET total_epics = ?, total_stories = ?, total_story_points = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            {_RETURNING}
            """,
            (totals["total_epics"], totals["total_stories"], totals["total_story_points"], session_id),
        )
    else:
        row = uow.fetchone(
            f"""
            UPDATE planning_sessions
            SET total_epics = COALESCE(total_epics, 0) + ?,
                total_stories = COALESCE(total_stories, 0) + ?,
                total_story_points = COALESCE(total_story_points, 0) + ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            {_RETURNING}
            """,
            (epics_inserted, stories_inserted, inserted_story_points, session_id),
        )

    if row is None:
        raise EntityNotFoundError(f"Session {session_id} not found")
    return SessionCounters(
        total_epics=int(row["total_epics"]),
        total_stories=int(row["total_stories"]),
        total_story_points=int(row["total_story_points"]),
    )
