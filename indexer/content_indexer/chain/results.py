"""
Execution results attached to applied operations.

The node serializes ``operation_result`` as a ``[which, value]`` pair. The
indexer only cares about the variants that can carry new object ids:

    0  void_result               -> VoidResult
    1  object_id_type            -> ObjectIdResult
    2  asset                     -> AssetResult
    3  generic_operation_result  -> GenericResult

Every other discriminant, and any malformed value, decodes to UnknownResult.
Result decoding never raises: an unusable result just resolves no ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Union

from .ids import ObjectId

logger = logging.getLogger(__name__)


class ResultType(IntEnum):
    VOID = 0
    OBJECT_ID = 1
    ASSET = 2
    GENERIC = 3


@dataclass(frozen=True)
class VoidResult:
    pass


@dataclass(frozen=True)
class ObjectIdResult:
    object_id: ObjectId


@dataclass(frozen=True)
class AssetResult:
    amount: int
    asset_id: str


@dataclass(frozen=True)
class GenericResult:
    """Result carrying the objects an operation created.

    The node also reports updated and removed objects; projection only
    needs new ones. The set is kept in ascending id order with duplicates
    dropped, the way the node's flat_set stores it.
    """

    new_objects: tuple[ObjectId, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenericResult:
        return cls(new_objects=_id_set(data.get("new_objects")))


@dataclass(frozen=True)
class UnknownResult:
    which: int
    value: Any = None


OperationResult = Union[VoidResult, ObjectIdResult, AssetResult, GenericResult, UnknownResult]


def _id_set(values: Any) -> tuple[ObjectId, ...]:
    """Parse a set of ids, dropping entries that are not valid ids."""
    if not isinstance(values, (list, tuple)):
        return ()
    ids = set()
    for value in values:
        try:
            ids.add(ObjectId.parse(value))
        except ValueError:
            logger.debug(f"Dropping malformed object id {value!r} from result set")
    return tuple(sorted(ids))


def parse_result(value: Any) -> OperationResult:
    """Decode a ``[which, value]`` result pair.

    Args:
        value: Raw JSON value, or None when the node sent no result

    Returns:
        The matching result variant; UnknownResult if nothing matched
    """
    if value is None:
        return VoidResult()
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        logger.debug("Unrecognized result shape", extra={"result": repr(value)})
        return UnknownResult(which=-1, value=value)

    which, body = value
    try:
        which = int(which)
    except (TypeError, ValueError):
        return UnknownResult(which=-1, value=value)

    try:
        if which == ResultType.VOID:
            return VoidResult()
        if which == ResultType.OBJECT_ID:
            return ObjectIdResult(ObjectId.parse(body))
        if which == ResultType.ASSET:
            return AssetResult(amount=int(body["amount"]), asset_id=str(body["asset_id"]))
        if which == ResultType.GENERIC:
            return GenericResult.from_dict(body)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.debug(f"Malformed result for variant {which}: {e}")

    return UnknownResult(which=which, value=body)
