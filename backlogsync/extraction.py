"""
Planning Data Extraction

Parses the structured epic/story block that the planning assistant embeds in
its responses, and converts nested story sub-documents to their stored form.

Block format:
    ---SM_DATA_START---
    { "epics": [...], "stories": [...] }
    ---SM_DATA_END---
"""

import json
import re
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from backlogsync.logging import get_logger
from backlogsync.models.extraction import (
    ExtractedAcceptanceCriterion,
    ExtractedDevNotes,
    ExtractedPlanningData,
    ExtractedTask,
)

logger = get_logger(__name__)

SM_DATA_START_MARKER = "---SM_DATA_START---"
SM_DATA_END_MARKER = "---SM_DATA_END---"

_EXTRACT_PATTERN = re.compile(
    re.escape(SM_DATA_START_MARKER) + r"\s*(.*?)\s*" + re.escape(SM_DATA_END_MARKER),
    re.DOTALL,
)
_CLEAN_PATTERN = re.compile(
    re.escape(SM_DATA_START_MARKER) + r".*?" + re.escape(SM_DATA_END_MARKER),
    re.DOTALL,
)


def extract_planning_data(response: str) -> Optional[ExtractedPlanningData]:
    """
    Extract the first structured data block from an assistant response.

    Returns None when the response has no block, the block is not valid JSON,
    or the JSON does not validate. Failures are logged, not raised.
    """
    match = _EXTRACT_PATTERN.search(response or "")
    if not match or not match.group(1).strip():
        return None

    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        logger.warning("Planning data block is not valid JSON", extra={"error": str(exc)})
        return None

    try:
        return ExtractedPlanningData.model_validate(payload)
    except PydanticValidationError as exc:
        logger.warning(
            "Planning data block failed validation",
            extra={"error_count": exc.error_count(), "errors": exc.errors(include_url=False)},
        )
        return None


def clean_response_for_display(response: str) -> str:
    """Remove every structured data block so only prose is shown to the user."""
    return _CLEAN_PATTERN.sub("", response or "").strip()


def transform_acceptance_criteria(
    criteria: Optional[List[ExtractedAcceptanceCriterion]],
) -> List[Dict[str, Any]]:
    """Stored form of acceptance criteria; each entry gets a fresh id."""
    if not criteria:
        return []
    return [
        {
            "id": str(uuid.uuid4()),
            "description": ac.description,
            "type": ac.type,
            "given": ac.given,
            "when": ac.when,
            "then_clause": ac.then,
        }
        for ac in criteria
    ]


def transform_tasks(tasks: Optional[List[ExtractedTask]]) -> List[Dict[str, Any]]:
    """Stored form of story tasks; new tasks always start incomplete."""
    if not tasks:
        return []
    return [
        {
            "id": str(uuid.uuid4()),
            "description": task.description,
            "estimated_hours": task.estimated_hours,
            "completed": False,
        }
        for task in tasks
    ]


def transform_dev_notes(dev_notes: Optional[ExtractedDevNotes]) -> Dict[str, Any]:
    if dev_notes is None:
        return {}
    return dev_notes.model_dump(exclude_none=True)
