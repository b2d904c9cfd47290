"""
Object identifiers as the chain renders them.

Every on-chain object is addressed by a ``space.type.instance`` triple,
e.g. ``1.2.5`` for an account or ``1.7.3`` for a content card.

Invariants:
    - Ordering is numeric per component, matching the node's flat_set order
    - str(ObjectId.parse(s)) == s for any well-formed s
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, order=True)
class ObjectId:
    """A chain-assigned object identifier.

    Attributes:
        space: Protocol or implementation space
        type: Object type within the space
        instance: Sequence number within the type
    """

    space: int
    type: int
    instance: int

    @classmethod
    def parse(cls, value: Any) -> ObjectId:
        """Parse ``"1.7.3"`` into an ObjectId.

        Raises:
            ValueError: If value is not a dotted triple of integers
        """
        if isinstance(value, ObjectId):
            return value
        parts = str(value).split(".")
        if len(parts) != 3:
            raise ValueError(f"Invalid object id: {value!r}")
        try:
            space, type_, instance = (int(p) for p in parts)
        except ValueError:
            raise ValueError(f"Invalid object id: {value!r}") from None
        return cls(space, type_, instance)

    def __str__(self) -> str:
        return f"{self.space}.{self.type}.{self.instance}"
