"""
Chain model for the content indexer.

Typed, immutable decodings of the JSON the node emits for finalized blocks,
applied operations and their execution results. Nothing here touches the
relational store.
"""

from .blocks import AppliedOperation, BlockAppliedEvent, SignedBlock, Transaction, parse_timestamp
from .ids import ObjectId
from .operations import (
    ContentCardCreate,
    ContentCardRemove,
    ContentCardUpdate,
    Operation,
    UNKNOWN_KIND,
    OperationDecodeError,
    OperationType,
    PermissionCreate,
    PermissionCreateMany,
    PermissionGrant,
    PermissionRemove,
)
from .results import (
    AssetResult,
    GenericResult,
    ObjectIdResult,
    OperationResult,
    ResultType,
    UnknownResult,
    VoidResult,
    parse_result,
)

__all__ = [
    "AppliedOperation",
    "BlockAppliedEvent",
    "SignedBlock",
    "Transaction",
    "parse_timestamp",
    "ObjectId",
    "Operation",
    "OperationDecodeError",
    "UNKNOWN_KIND",
    "OperationType",
    "ContentCardCreate",
    "ContentCardUpdate",
    "ContentCardRemove",
    "PermissionCreate",
    "PermissionCreateMany",
    "PermissionGrant",
    "PermissionRemove",
    "OperationResult",
    "ResultType",
    "VoidResult",
    "ObjectIdResult",
    "AssetResult",
    "GenericResult",
    "UnknownResult",
    "parse_result",
]
