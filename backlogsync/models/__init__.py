"""
BacklogSync Models

Dataclasses for persisted entities and pydantic models for extracted payloads.
"""

from backlogsync.models.domain import (
    # Status Constants
    SessionStatus,
    SessionStep,
    EpicStatus,
    StoryStatus,
    # Enums
    Priority,
    CounterMode,
    # Core Models
    PlanningSession,
    Epic,
    Story,
    story_key_for,
)

from backlogsync.models.extraction import (
    ExtractedAcceptanceCriterion,
    ExtractedTask,
    ExtractedDevNotes,
    ExtractedEpic,
    ExtractedStory,
    ExtractedPlanningData,
)

__all__ = [
    # Status Constants
    "SessionStatus",
    "SessionStep",
    "EpicStatus",
    "StoryStatus",
    # Enums
    "Priority",
    "CounterMode",
    # Core Models
    "PlanningSession",
    "Epic",
    "Story",
    "story_key_for",
    # Extraction Models
    "ExtractedAcceptanceCriterion",
    "ExtractedTask",
    "ExtractedDevNotes",
    "ExtractedEpic",
    "ExtractedStory",
    "ExtractedPlanningData",
]
