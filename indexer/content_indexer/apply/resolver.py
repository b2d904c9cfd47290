"""
Resolution of newly assigned object ids from execution results.
"""

from __future__ import annotations

from ..chain.results import GenericResult, ObjectIdResult, OperationResult


def resolve_new_object_ids(result: OperationResult) -> list[str]:
    """Return the ids an operation created, in order.

    - ObjectIdResult: the single id
    - GenericResult: its new_objects, in the set's own (ascending) order
    - anything else: empty

    Never raises. Callers fall back to placeholder ids when this is short.
    """
    if isinstance(result, ObjectIdResult):
        return [str(result.object_id)]
    if isinstance(result, GenericResult):
        return [str(oid) for oid in result.new_objects]
    return []


def placeholder_id(trx_id: str, index: int | None = None) -> str:
    """Stand-in key for a row whose chain id is not known yet.

    ``pending-<trx>`` for single creates, ``pending-<trx>-<index>`` for the
    index-th item of a bulk create.
    """
    if index is None:
        return f"pending-{trx_id}"
    return f"pending-{trx_id}-{index}"
