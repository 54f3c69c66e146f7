"""
BacklogSync Domain Models

Data classes representing the persisted planning entities.
These are used for data transfer between storage and services.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# Status Constants

class SessionStatus:
    """Planning session status values."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SessionStep:
    """Planning session workflow steps."""
    INIT = "init"
    EPICS = "epics"
    STORIES = "stories"
    DETAILS = "details"
    PLANNING = "planning"
    REVIEW = "review"
    COMPLETE = "complete"


class EpicStatus:
    """Epic workflow status values."""
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class StoryStatus:
    """Story workflow status values."""
    BACKLOG = "backlog"
    READY_FOR_DEV = "ready_for_dev"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class Priority(str, Enum):
    """Epic/story priority levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CounterMode(str, Enum):
    """
    How session counters are maintained after a reconciliation pass.

    REPLACE recounts the active epics/stories of the session.
    INCREMENT adds only the rows inserted by the pass.
    """
    REPLACE = "replace"
    INCREMENT = "increment"


def story_key_for(epic_number: int, story_number: int) -> str:
    """Display key of a story: "{epic_number}-{story_number}"."""
    return f"{int(epic_number)}-{int(story_number)}"


# Core Domain Models

@dataclass
class PlanningSession:
    """A planning session owns the epics and stories of one backlog."""
    id: int
    user_id: str
    project_name: str
    created_at: str
    updated_at: str
    project_description: Optional[str] = None
    current_step: str = SessionStep.INIT
    status: str = SessionStatus.ACTIVE
    total_epics: int = 0
    total_stories: int = 0
    total_story_points: int = 0
    deleted_at: Optional[str] = None


@dataclass
class Epic:
    """A grouping of related stories, keyed by number within its session."""
    id: int
    session_id: int
    number: int
    title: str
    description: str
    created_at: str
    updated_at: str
    priority: str = Priority.MEDIUM.value
    status: str = EpicStatus.BACKLOG
    business_value: Optional[str] = None
    target_sprint: Optional[int] = None
    estimated_story_points: Optional[int] = None
    functional_requirement_codes: List[str] = field(default_factory=list)
    deleted_at: Optional[str] = None


@dataclass
class Story:
    """
    A user story belonging to exactly one epic.

    story_key always equals "{epic_number}-{story_number}".
    """
    id: int
    session_id: int
    epic_id: int
    epic_number: int
    story_number: int
    story_key: str
    title: str
    as_a: str
    i_want: str
    so_that: str
    created_at: str
    updated_at: str
    description: Optional[str] = None
    status: str = StoryStatus.BACKLOG
    priority: str = Priority.MEDIUM.value
    story_points: Optional[int] = None
    target_sprint: Optional[int] = None
    acceptance_criteria: List[Dict[str, Any]] = field(default_factory=list)
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    dev_notes: Dict[str, Any] = field(default_factory=dict)
    functional_requirement_codes: List[str] = field(default_factory=list)
    deleted_at: Optional[str] = None
