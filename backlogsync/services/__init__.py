"""
BacklogSync Services

Reconciliation engine and its building blocks.
"""

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backlogsync.services.base import Service, ServiceContext
    from backlogsync.services.counters import SessionCounters, apply_counters
    from backlogsync.services.matching import EntityKind, EPIC_KIND, STORY_KIND, find_active_by_keys
    from backlogsync.services.parents import ParentResolution, resolve_parents
    from backlogsync.services.reconciliation import ReconciliationResult, ReconciliationService
    from backlogsync.services.upsert import UpsertOutcome, batch_upsert, upsert_epics, upsert_stories

__all__ = [
    # Base
    "Service",
    "ServiceContext",
    # Matching
    "EntityKind",
    "EPIC_KIND",
    "STORY_KIND",
    "find_active_by_keys",
    # Upsert
    "UpsertOutcome",
    "batch_upsert",
    "upsert_epics",
    "upsert_stories",
    # Parents
    "ParentResolution",
    "resolve_parents",
    # Counters
    "SessionCounters",
    "apply_counters",
    # Reconciliation
    "ReconciliationService",
    "ReconciliationResult",
]

_EXPORTS = {
    "Service": "backlogsync.services.base",
    "ServiceContext": "backlogsync.services.base",
    "EntityKind": "backlogsync.services.matching",
    "EPIC_KIND": "backlogsync.services.matching",
    "STORY_KIND": "backlogsync.services.matching",
    "find_active_by_keys": "backlogsync.services.matching",
    "UpsertOutcome": "backlogsync.services.upsert",
    "batch_upsert": "backlogsync.services.upsert",
    "upsert_epics": "backlogsync.services.upsert",
    "upsert_stories": "backlogsync.services.upsert",
    "ParentResolution": "backlogsync.services.parents",
    "resolve_parents": "backlogsync.services.parents",
    "SessionCounters": "backlogsync.services.counters",
    "apply_counters": "backlogsync.services.counters",
    "ReconciliationService": "backlogsync.services.reconciliation",
    "ReconciliationResult": "backlogsync.services.reconciliation",
}


def __getattr__(name: str):
    module_path = _EXPORTS.get(name)
    if not module_path:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(module_path)
    return getattr(module, name)


def __dir__() -> list[str]:
    return sorted(__all__)
