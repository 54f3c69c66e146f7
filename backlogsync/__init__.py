"""
BacklogSync: Planning Backlog Reconciliation

Merges AI-extracted Epics and Stories into a relational store on behalf of
a multi-step planning session:
- Natural-key matching that ignores soft-deleted rows
- Batch upserts with Story -> Epic parent resolution
- Atomic persistence with session counter maintenance

Distribution: Python library
"""

__version__ = "0.1.0"
__all__ = [
    "__version__",
]
