"""
Finalized blocks and the "block applied" event.

A BlockAppliedEvent is what the consensus engine hands the indexer once a
block is final: the block itself plus the ordered list of operations the
execution engine applied while processing it.

Example event:
    {
        "block": {
            "block_num": 100,
            "timestamp": "2024-05-01T12:00:00",
            "transactions": [{"id": "3f2a..."}]
        },
        "applied_operations": [
            {"op": [41, {...}], "result": [1, "1.7.3"], "trx_in_block": 0}
        ]
    }

Invariants:
    - applied_operations keeps the node's apply order, including None slots
    - timestamps are timezone-aware UTC
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .operations import Operation
from .results import OperationResult, VoidResult, parse_result


def parse_timestamp(value: Any) -> datetime:
    """Parse a node timestamp (``2024-05-01T12:00:00`` or epoch seconds) as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        dt = datetime.fromisoformat(str(value).rstrip("Z"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    """A transaction included in a block.

    Attributes:
        id: Transaction id (hex digest)
        body: Remaining transaction fields, kept opaque
    """

    id: str
    body: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SignedBlock:
    """A finalized block.

    Attributes:
        block_num: Height of the block
        timestamp: Block production time (UTC)
        transactions: Transactions in block order
    """

    block_num: int
    timestamp: datetime
    transactions: tuple[Transaction, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignedBlock:
        """Create from the node's block JSON.

        Transaction ids come from each transaction's ``id`` field or, when
        absent, from the block-level ``transaction_ids`` list.

        Raises:
            ValueError: If block_num or timestamp is missing
        """
        missing = [f for f in ("block_num", "timestamp") if f not in data]
        if missing:
            raise ValueError(f"Missing required block fields: {missing}")

        ids = data.get("transaction_ids") or []
        transactions = []
        for i, trx in enumerate(data.get("transactions") or []):
            if not isinstance(trx, dict):
                trx = {}
            trx_id = trx.get("id") or (ids[i] if i < len(ids) else "")
            body = {k: v for k, v in trx.items() if k != "id"}
            transactions.append(Transaction(id=str(trx_id), body=body))

        return cls(
            block_num=int(data["block_num"]),
            timestamp=parse_timestamp(data["timestamp"]),
            transactions=tuple(transactions),
        )

    def transaction_id_at(self, trx_in_block: int | None) -> str:
        """Id of the transaction at an index, or "" for virtual/out-of-range."""
        if trx_in_block is None or trx_in_block < 0:
            return ""
        if trx_in_block >= len(self.transactions):
            return ""
        return self.transactions[trx_in_block].id


@dataclass(frozen=True)
class AppliedOperation:
    """One operation applied while processing a block.

    Attributes:
        op: The operation
        result: Execution result
        trx_in_block: Index of the owning transaction within the block;
            None for virtual operations or an unreadable index

    The node also sends op_in_trx and virtual_op; projection does not use them.
    """

    op: Operation
    result: OperationResult = field(default_factory=VoidResult)
    trx_in_block: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppliedOperation:
        """Create from one entry of ``applied_operations``.

        Never raises: a missing or malformed op becomes an unprojected
        Operation, and an unreadable trx_in_block becomes None, so one bad
        entry cannot reject the rest of its block.
        """
        trx_in_block = data.get("trx_in_block")
        if isinstance(trx_in_block, bool) or not isinstance(trx_in_block, int):
            trx_in_block = None
        return cls(
            op=Operation.from_json(data.get("op")),
            result=parse_result(data.get("result")),
            trx_in_block=trx_in_block,
        )


@dataclass(frozen=True)
class BlockAppliedEvent:
    """A finalized block with the operations applied for it.

    ``applied_operations`` may contain None entries; the node leaves such
    slots in its history buffer and they are skipped during projection.
    Entries that are not JSON objects are kept as None slots too.
    """

    block: SignedBlock
    applied_operations: tuple[AppliedOperation | None, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockAppliedEvent:
        """Create from dictionary representation.

        Raises:
            ValueError: If the block itself is malformed
        """
        if "block" not in data:
            raise ValueError("Missing required field: block")
        return cls(
            block=SignedBlock.from_dict(data["block"]),
            applied_operations=tuple(
                AppliedOperation.from_dict(entry) if isinstance(entry, dict) else None
                for entry in data.get("applied_operations") or []
            ),
        )

    @property
    def block_num(self) -> int:
        return self.block.block_num
