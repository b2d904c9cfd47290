"""
Operation variants projected by the content indexer.

The node serializes an operation as a ``[which, {fields}]`` pair where
``which`` is the position of the operation in the protocol's operation
variant. Only the kinds listed in OperationType are decoded; any other
discriminant is carried as an opaque Operation and never inspected.

Invariants:
    - OperationType values are the protocol's variant positions and are
      persisted as ``operation_type`` in the projected tables
    - Decoding never mutates the raw payload

How to change safely:
    - Never renumber an existing member; rows already indexed carry the code
    - Add a new kind by adding a member, a payload class and a
      PAYLOAD_TYPES entry, then a handler route
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from ..errors import OperationDecodeError
from .ids import ObjectId


class OperationType(IntEnum):
    """Projected operation discriminants."""

    CONTENT_CARD_CREATE = 41
    CONTENT_CARD_UPDATE = 42
    CONTENT_CARD_REMOVE = 43
    PERMISSION_CREATE = 44
    PERMISSION_REMOVE = 45
    PERMISSION_CREATE_MANY = 64


def _object_id(data: dict[str, Any], key: str) -> str:
    try:
        return str(ObjectId.parse(data[key]))
    except KeyError:
        raise OperationDecodeError(f"Missing field: {key}") from None
    except ValueError as e:
        raise OperationDecodeError(f"Field {key}: {e}") from None


def _optional_object_id(data: dict[str, Any], key: str) -> str | None:
    if data.get(key) is None:
        return None
    return _object_id(data, key)


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key, "")
    return "" if value is None else str(value)


@dataclass(frozen=True)
class ContentCardCreate:
    """Publish an encrypted content card."""

    subject_account: str
    hash: str
    url: str
    type: str
    description: str
    content_key: str
    storage_data: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentCardCreate:
        return cls(
            subject_account=_object_id(data, "subject_account"),
            hash=_text(data, "hash"),
            url=_text(data, "url"),
            type=_text(data, "type"),
            description=_text(data, "description"),
            content_key=_text(data, "content_key"),
            storage_data=_text(data, "storage_data"),
        )


@dataclass(frozen=True)
class ContentCardUpdate:
    """Replace the mutable fields of a content card.

    ``content_id`` names the card being updated. Older payloads may omit it,
    in which case the projector falls back to the execution result.
    """

    subject_account: str
    hash: str
    url: str
    type: str
    description: str
    content_key: str
    storage_data: str
    content_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentCardUpdate:
        return cls(
            subject_account=_object_id(data, "subject_account"),
            hash=_text(data, "hash"),
            url=_text(data, "url"),
            type=_text(data, "type"),
            description=_text(data, "description"),
            content_key=_text(data, "content_key"),
            storage_data=_text(data, "storage_data"),
            content_id=_optional_object_id(data, "content_id"),
        )


@dataclass(frozen=True)
class ContentCardRemove:
    subject_account: str
    content_id: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentCardRemove:
        return cls(
            subject_account=_object_id(data, "subject_account"),
            content_id=_object_id(data, "content_id"),
        )


@dataclass(frozen=True)
class PermissionCreate:
    """Grant an operator access, optionally scoped to one object."""

    subject_account: str
    operator_account: str
    permission_type: str
    content_key: str
    object_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionCreate:
        return cls(
            subject_account=_object_id(data, "subject_account"),
            operator_account=_object_id(data, "operator_account"),
            permission_type=_text(data, "permission_type"),
            content_key=_text(data, "content_key"),
            object_id=_optional_object_id(data, "object_id"),
        )


@dataclass(frozen=True)
class PermissionGrant:
    """One item of a bulk permission create."""

    operator_account: str
    permission_type: str
    content_key: str
    object_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionGrant:
        return cls(
            operator_account=_object_id(data, "operator_account"),
            permission_type=_text(data, "permission_type"),
            content_key=_text(data, "content_key"),
            object_id=_optional_object_id(data, "object_id"),
        )


@dataclass(frozen=True)
class PermissionCreateMany:
    subject_account: str
    permissions: tuple[PermissionGrant, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionCreateMany:
        items = data.get("permissions") or []
        if not isinstance(items, list):
            raise OperationDecodeError("Field permissions: expected a list")
        if not all(isinstance(item, dict) for item in items):
            raise OperationDecodeError("Field permissions: expected a list of objects")
        return cls(
            subject_account=_object_id(data, "subject_account"),
            permissions=tuple(PermissionGrant.from_dict(item) for item in items),
        )


@dataclass(frozen=True)
class PermissionRemove:
    subject_account: str
    permission_id: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionRemove:
        return cls(
            subject_account=_object_id(data, "subject_account"),
            permission_id=_object_id(data, "permission_id"),
        )


# Kind given to entries whose discriminant cannot be read
UNKNOWN_KIND = -1

PAYLOAD_TYPES: dict[OperationType, type] = {
    OperationType.CONTENT_CARD_CREATE: ContentCardCreate,
    OperationType.CONTENT_CARD_UPDATE: ContentCardUpdate,
    OperationType.CONTENT_CARD_REMOVE: ContentCardRemove,
    OperationType.PERMISSION_CREATE: PermissionCreate,
    OperationType.PERMISSION_REMOVE: PermissionRemove,
    OperationType.PERMISSION_CREATE_MANY: PermissionCreateMany,
}


@dataclass(frozen=True)
class Operation:
    """An operation as delivered by the node, not yet decoded.

    Attributes:
        kind: Variant position (the discriminant), UNKNOWN_KIND if unreadable
        payload: Raw operation fields; any JSON value until decoded
    """

    kind: int
    payload: Any = field(default_factory=dict)

    @classmethod
    def from_json(cls, value: Any) -> Operation:
        """Create from the node's ``[which, {fields}]`` pair.

        Never raises. A value that is not a pair, or whose discriminant is not
        an integer, becomes an operation of kind UNKNOWN_KIND carrying the raw
        value. The payload shape is only checked by decode().
        """
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return cls(kind=UNKNOWN_KIND, payload=value)
        which, payload = value
        if isinstance(which, bool) or not isinstance(which, int):
            return cls(kind=UNKNOWN_KIND, payload=value)
        return cls(kind=which, payload=payload)

    @property
    def operation_type(self) -> OperationType | None:
        """The projected kind, or None for kinds the indexer ignores."""
        try:
            return OperationType(self.kind)
        except ValueError:
            return None

    def decode(self) -> Any:
        """Decode the payload into its typed dataclass.

        Returns:
            Payload instance, or None for an unprojected kind

        Raises:
            OperationDecodeError: If a projected payload is malformed
        """
        op_type = self.operation_type
        if op_type is None:
            return None
        if not isinstance(self.payload, dict):
            raise OperationDecodeError(
                f"Payload must be an object, got {type(self.payload).__name__}"
            )
        return PAYLOAD_TYPES[op_type].from_dict(self.payload)
