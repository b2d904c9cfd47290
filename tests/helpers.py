"""
Builders for block-applied events used across the test suite.

Events are built as the node's JSON dictionaries so the same helpers feed
the projector (via BlockAppliedEvent.from_dict), the in-memory feed and
replay dump files.
"""

from typing import Any, Optional

from indexer.content_indexer.chain.blocks import BlockAppliedEvent
from indexer.content_indexer.chain.operations import OperationType

CC_CREATE = int(OperationType.CONTENT_CARD_CREATE)
CC_UPDATE = int(OperationType.CONTENT_CARD_UPDATE)
CC_REMOVE = int(OperationType.CONTENT_CARD_REMOVE)
PERM_CREATE = int(OperationType.PERMISSION_CREATE)
PERM_REMOVE = int(OperationType.PERMISSION_REMOVE)
PERM_CREATE_MANY = int(OperationType.PERMISSION_CREATE_MANY)


def card_payload(subject: str = "1.2.5", **overrides: Any) -> dict:
    payload = {
        "fee": {"amount": 0, "asset_id": "1.3.0"},
        "subject_account": subject,
        "hash": "abcd",
        "url": "ipfs://QmCard",
        "type": "document",
        "description": "quarterly report",
        "content_key": "enc-key-owner",
        "storage_data": '{"provider": "ipfs"}',
    }
    payload.update(overrides)
    return payload


def permission_payload(
    subject: str = "1.2.5",
    operator: str = "1.2.9",
    object_id: Optional[str] = "1.7.3",
    **overrides: Any,
) -> dict:
    payload = {
        "fee": {"amount": 0, "asset_id": "1.3.0"},
        "subject_account": subject,
        "operator_account": operator,
        "permission_type": "content_card",
        "content_key": "enc-key-operator",
    }
    if object_id is not None:
        payload["object_id"] = object_id
    payload.update(overrides)
    return payload


def grant(operator: str, object_id: Optional[str] = None, key: str = "k") -> dict:
    item = {"operator_account": operator, "permission_type": "content_card", "content_key": key}
    if object_id is not None:
        item["object_id"] = object_id
    return item


def applied(kind: int, payload: dict, result: Any = None, trx_in_block: Optional[int] = 0) -> dict:
    return {
        "op": [kind, payload],
        "result": result if result is not None else [0, {}],
        "trx_in_block": trx_in_block,
        "op_in_trx": 0,
        "virtual_op": 0,
    }


def block_dict(
    block_num: int,
    ops: list,
    trx_ids: tuple = ("a1b2c3",),
    timestamp: str = "2024-05-01T12:00:00",
) -> dict:
    return {
        "block": {
            "block_num": block_num,
            "timestamp": timestamp,
            "transactions": [{"id": trx_id, "operations": []} for trx_id in trx_ids],
        },
        "applied_operations": ops,
    }


def block_event(block_num: int, ops: list, **kwargs: Any) -> BlockAppliedEvent:
    return BlockAppliedEvent.from_dict(block_dict(block_num, ops, **kwargs))


def fetch_card(sink, content_card_id):
    rows = sink.query("SELECT * FROM content_cards WHERE content_card_id = ?", (content_card_id,))
    return rows[0] if rows else None


def fetch_permission(sink, permission_id):
    rows = sink.query("SELECT * FROM permissions WHERE permission_id = ?", (permission_id,))
    return rows[0] if rows else None
