"""
BacklogSync Extraction Models

Pydantic models for epic/story records extracted from assistant responses.
Field names are snake_case; the camelCase names used by the extraction
prompt (epicNumber, asA, ...) are accepted as aliases.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from backlogsync.models.domain import Priority, story_key_for


class _ExtractedModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class ExtractedAcceptanceCriterion(_ExtractedModel):
    """An acceptance criterion, either free text or given/when/then."""
    description: str = Field(..., min_length=1)
    type: Literal["given_when_then", "simple"] = "simple"
    given: Optional[str] = None
    when: Optional[str] = None
    then: Optional[str] = None


class ExtractedTask(_ExtractedModel):
    """An implementation task attached to a story."""
    description: str = Field(..., min_length=1)
    estimated_hours: Optional[float] = Field(default=None, ge=0, alias="estimatedHours")


class ExtractedDevNotes(_ExtractedModel):
    """Free-form developer notes attached to a story."""
    architecture_patterns: Optional[List[str]] = Field(default=None, alias="architecturePatterns")
    components_to_touch: Optional[List[str]] = Field(default=None, alias="componentsToTouch")
    testing_requirements: Optional[List[str]] = Field(default=None, alias="testingRequirements")
    security_considerations: Optional[List[str]] = Field(default=None, alias="securityConsiderations")
    performance_notes: Optional[List[str]] = Field(default=None, alias="performanceNotes")
    references: Optional[List[str]] = None


class ExtractedEpic(_ExtractedModel):
    """An epic as produced by the extraction step."""
    number: int = Field(..., ge=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    priority: Priority = Priority.MEDIUM
    business_value: Optional[str] = Field(default=None, max_length=1000, alias="businessValue")
    target_sprint: Optional[int] = Field(default=None, ge=1, alias="targetSprint")
    estimated_story_points: Optional[int] = Field(default=None, ge=0, alias="estimatedStoryPoints")
    functional_requirement_codes: List[str] = Field(
        default_factory=list, alias="functionalRequirementCodes"
    )


class ExtractedStory(_ExtractedModel):
    """A story as produced by the extraction step; references its epic by number."""
    epic_number: int = Field(..., ge=1, alias="epicNumber")
    story_number: int = Field(..., ge=1, alias="storyNumber")
    title: str = Field(..., min_length=1, max_length=200)
    as_a: str = Field(..., min_length=1, max_length=200, alias="asA")
    i_want: str = Field(..., min_length=1, max_length=500, alias="iWant")
    so_that: str = Field(..., min_length=1, max_length=500, alias="soThat")
    description: Optional[str] = Field(default=None, max_length=5000)
    priority: Priority = Priority.MEDIUM
    story_points: Optional[int] = Field(default=None, ge=0, alias="storyPoints")
    target_sprint: Optional[int] = Field(default=None, ge=1, alias="targetSprint")
    acceptance_criteria: List[ExtractedAcceptanceCriterion] = Field(
        default_factory=list, alias="acceptanceCriteria"
    )
    tasks: List[ExtractedTask] = Field(default_factory=list)
    dev_notes: Optional[ExtractedDevNotes] = Field(default=None, alias="devNotes")

    @property
    def story_key(self) -> str:
        return story_key_for(self.epic_number, self.story_number)


class ExtractedPlanningData(_ExtractedModel):
    """The structured block embedded in an assistant response."""
    epics: List[ExtractedEpic] = Field(default_factory=list)
    stories: List[ExtractedStory] = Field(default_factory=list)
