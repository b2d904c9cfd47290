"""
Apply module for the content indexer - block projection and materialization.

This module handles:
- The relational sink (one SQLite connection, projected table DDL)
- Resolution of new object ids from execution results
- Routing of applied operations to entity handlers
- Idempotent content card and permission writes

The projected tables are a materialized view of the chain. They can be
rebuilt from scratch by replaying blocks.

Invariants:
    - Projection is idempotent (same block applied twice converges)
    - Operations are applied strictly in chain order
    - Rows are soft-deleted, never removed
"""

from .handlers import ContentCardHandler, PermissionHandler, WriteContext, WriteOutcome
from .projector import BlockProjector, ProjectionResult
from .resolver import placeholder_id, resolve_new_object_ids
from .router import OperationRouter
from .sink import RelationalSink

__all__ = [
    "RelationalSink",
    "resolve_new_object_ids",
    "placeholder_id",
    "OperationRouter",
    "ContentCardHandler",
    "PermissionHandler",
    "WriteContext",
    "WriteOutcome",
    "BlockProjector",
    "ProjectionResult",
]
