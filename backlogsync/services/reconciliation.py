"""
Reconciliation Service

Merges extracted epics and stories into a planning session in one transaction:
epic upsert, parent resolution, story upsert, counter maintenance.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from backlogsync.db.database import Database, UnitOfWork
from backlogsync.errors import ValidationError
from backlogsync.logging import log_context
from backlogsync.models.domain import CounterMode
from backlogsync.models.extraction import ExtractedEpic, ExtractedStory
from backlogsync.services.base import Service, ServiceContext
from backlogsync.services.counters import SessionCounters, apply_counters
from backlogsync.services.matching import dedupe_by_key
from backlogsync.services.parents import resolve_parents
from backlogsync.services.upsert import upsert_epics, upsert_stories

M = TypeVar("M", bound=BaseModel)


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass."""
    session: SessionCounters
    epic_ids_by_number: Dict[int, int] = field(default_factory=dict)
    story_ids_by_key: Dict[str, int] = field(default_factory=dict)
    epics_inserted: int = 0
    epics_updated: int = 0
    stories_inserted: int = 0
    stories_updated: int = 0
    stories_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """camelCase shape returned to the API layer."""
        return {
            "epicIdsByNumber": dict(self.epic_ids_by_number),
            "epicsInserted": self.epics_inserted,
            "epicsUpdated": self.epics_updated,
            "storiesInserted": self.stories_inserted,
            "storiesUpdated": self.stories_updated,
            "storiesSkipped": self.stories_skipped,
            "session": self.session.to_dict(),
        }


def _validate_records(
    model: Type[M],
    records: Optional[Iterable[Union[M, Dict[str, Any]]]],
    label: str,
) -> List[M]:
    validated: List[M] = []
    for index, record in enumerate(records or []):
        if isinstance(record, model):
            validated.append(record)
            continue
        try:
            validated.append(model.model_validate(record))
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {label} payload at index {index}",
                metadata={"index": index, "errors": exc.errors(include_url=False)},
            ) from exc
    return validated


def _coerce_mode(mode: Union[CounterMode, str]) -> CounterMode:
    try:
        return CounterMode(mode)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown counter mode: {mode!r}",
            metadata={"allowed": [m.value for m in CounterMode]},
        ) from exc


class ReconciliationService(Service):
    """
    Reconciles extracted planning data into a session.

    Precondition: at most one reconciliation per session is in flight. The
    engine takes no per-session lock; two concurrent passes on the same
    session can race between the natural-key lookup and the write and
    produce a duplicate row or a lost update. Callers serialize turns.

    Example:
        service = ReconciliationService(context, db)
        result = service.reconcile(session.id, epics, stories, CounterMode.REPLACE)
    """

    def __init__(self, context: ServiceContext, db: Database) -> None:
        super().__init__(context)
        self.db = db

    def reconcile(
        self,
        session_id: int,
        epics: Optional[Sequence[Union[ExtractedEpic, Dict[str, Any]]]],
        stories: Optional[Sequence[Union[ExtractedStory, Dict[str, Any]]]],
        mode: Union[CounterMode, str],
    ) -> ReconciliationResult:
        """
        Run a full pass in its own transaction.

        Payloads are validated before the transaction opens. Any error raised
        while writing rolls back every epic, story and counter change.
        """
        epic_records = _validate_records(ExtractedEpic, epics, "epic")
        story_records = _validate_records(ExtractedStory, stories, "story")
        counter_mode = _coerce_mode(mode)

        with log_context(request_id=self.context.request_id, session_id=session_id):
            with self.db.transaction() as uow:
                return self._run(uow, session_id, epic_records, story_records, counter_mode)

    def reconcile_in(
        self,
        uow: UnitOfWork,
        session_id: int,
        epics: Optional[Sequence[Union[ExtractedEpic, Dict[str, Any]]]],
        stories: Optional[Sequence[Union[ExtractedStory, Dict[str, Any]]]],
        mode: Union[CounterMode, str],
    ) -> ReconciliationResult:
        """
        Run a pass inside a transaction owned by the caller.

        Whatever the caller does in the same transaction commits or rolls
        back together with the engine's writes.
        """
        epic_records = _validate_records(ExtractedEpic, epics, "epic")
        story_records = _validate_records(ExtractedStory, stories, "story")
        counter_mode = _coerce_mode(mode)

        with log_context(request_id=self.context.request_id, session_id=session_id):
            return self._run(uow, session_id, epic_records, story_records, counter_mode)

    def _run(
        self,
        uow: UnitOfWork,
        session_id: int,
        epics: List[ExtractedEpic],
        stories: List[ExtractedStory],
        mode: CounterMode,
    ) -> ReconciliationResult:
        epics, duplicate_epics = dedupe_by_key(epics, lambda epic: epic.number)
        stories, duplicate_stories = dedupe_by_key(stories, lambda story: story.story_key)
        if duplicate_epics or duplicate_stories:
            self.logger.info(
                "Collapsed duplicate natural keys in payload",
                extra=self.log_extra(
                    session_id=session_id,
                    duplicate_epics=duplicate_epics,
                    duplicate_stories=duplicate_stories,
                ),
            )

        epic_outcome = upsert_epics(uow, session_id, epics)
        parents = resolve_parents(uow, session_id, stories, epic_outcome.ids_by_key)
        story_outcome = upsert_stories(uow, session_id, parents.resolved)

        inserted_keys = set(story_outcome.inserted_keys)
        inserted_points = sum(
            story.story_points or 0 for story, _ in parents.resolved if story.story_key in inserted_keys
        )
        counters = apply_counters(
            uow,
            session_id,
            mode,
            epics_inserted=epic_outcome.inserted,
            stories_inserted=story_outcome.inserted,
            inserted_story_points=inserted_points,
        )

        result = ReconciliationResult(
            session=counters,
            epic_ids_by_number=parents.epic_ids_by_number,
            story_ids_by_key=dict(story_outcome.ids_by_key),
            epics_inserted=epic_outcome.inserted,
            epics_updated=epic_outcome.updated,
            stories_inserted=story_outcome.inserted,
            stories_updated=story_outcome.updated,
            stories_skipped=len(parents.orphans),
        )
        self.logger.info(
            "Reconciled planning data",
            extra=self.log_extra(
                session_id=session_id,
                counter_mode=mode.value,
                epics_inserted=result.epics_inserted,
                epics_updated=result.epics_updated,
                stories_inserted=result.stories_inserted,
                stories_updated=result.stories_updated,
                stories_skipped=result.stories_skipped,
            ),
        )
        return result
