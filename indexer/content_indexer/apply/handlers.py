"""
Entity handlers: one applied operation in, idempotent writes out.

Each handler turns a decoded operation plus its block metadata into one
statement per row and sends it through the RelationalSink.

Write semantics per kind:
    content_card_create     upsert; on conflict refresh content fields only
    content_card_update     upsert; on conflict refresh content + lifecycle
    content_card_remove     soft delete by id; no-op if the row is absent
    permission_create       upsert; on conflict refresh type + key only
    permission_create_many  one permission_create-style upsert per item
    permission_remove       soft delete by id; no-op if the row is absent

Invariants:
    - Rows are never physically deleted
    - Every row has a unique key; unresolved ids get a placeholder
    - A failed write is logged and counted, never raised
    - Lifecycle metadata is block_num, block_time, trx_id, operation_type

How to change safely:
    - Replaying any prefix of the chain must converge to the same rows
    - The ON CONFLICT column lists are compatibility-relevant; do not widen
      the create paths to touch lifecycle columns
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..chain.operations import (
    ContentCardCreate,
    ContentCardRemove,
    ContentCardUpdate,
    OperationType,
    PermissionCreate,
    PermissionCreateMany,
    PermissionGrant,
    PermissionRemove,
)
from .resolver import placeholder_id
from .sink import RelationalSink

logger = logging.getLogger(__name__)


_CONTENT_CARD_INSERT = """
    INSERT INTO content_cards
        (content_card_id, subject_account, hash, url, type, description, content_key,
         storage_data, block_num, block_time, trx_id, operation_type, is_removed)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, datetime(?, 'unixepoch'), ?, {op_type}, FALSE)
    ON CONFLICT (content_card_id) DO UPDATE SET
        hash = excluded.hash, url = excluded.url, type = excluded.type,
        description = excluded.description, content_key = excluded.content_key,
        storage_data = excluded.storage_data{lifecycle}
"""

_LIFECYCLE_UPDATE = """,
        block_num = excluded.block_num, block_time = excluded.block_time,
        trx_id = excluded.trx_id, operation_type = excluded.operation_type"""

CONTENT_CARD_CREATE_SQL = _CONTENT_CARD_INSERT.format(
    op_type=int(OperationType.CONTENT_CARD_CREATE), lifecycle=""
)

CONTENT_CARD_UPDATE_SQL = _CONTENT_CARD_INSERT.format(
    op_type=int(OperationType.CONTENT_CARD_UPDATE), lifecycle=_LIFECYCLE_UPDATE
)

CONTENT_CARD_REMOVE_SQL = f"""
    UPDATE content_cards SET
        is_removed = TRUE, block_num = ?, block_time = datetime(?, 'unixepoch'),
        trx_id = ?, operation_type = {int(OperationType.CONTENT_CARD_REMOVE)}
    WHERE content_card_id = ?
"""

_PERMISSION_INSERT = """
    INSERT INTO permissions
        (permission_id, subject_account, operator_account, permission_type, object_id,
         content_key, block_num, block_time, trx_id, operation_type, is_removed)
    VALUES (?, ?, ?, ?, ?, ?, ?, datetime(?, 'unixepoch'), ?, {op_type}, FALSE)
    ON CONFLICT (permission_id) DO UPDATE SET
        permission_type = excluded.permission_type, content_key = excluded.content_key
"""

PERMISSION_CREATE_SQL = _PERMISSION_INSERT.format(op_type=int(OperationType.PERMISSION_CREATE))

PERMISSION_CREATE_MANY_SQL = _PERMISSION_INSERT.format(
    op_type=int(OperationType.PERMISSION_CREATE_MANY)
)

PERMISSION_REMOVE_SQL = f"""
    UPDATE permissions SET
        is_removed = TRUE, block_num = ?, block_time = datetime(?, 'unixepoch'),
        trx_id = ?, operation_type = {int(OperationType.PERMISSION_REMOVE)}
    WHERE permission_id = ?
"""


@dataclass(frozen=True)
class WriteContext:
    """Block metadata shared by every write of one operation.

    Attributes:
        block_num: Height of the block being projected
        block_time: Block timestamp (UTC)
        trx_id: Owning transaction id, "" for virtual operations
    """

    block_num: int
    block_time: datetime
    trx_id: str

    @property
    def block_epoch(self) -> int:
        return int(self.block_time.timestamp())


@dataclass
class WriteOutcome:
    """Count of writes one operation produced."""

    succeeded: int = 0
    failed: int = 0

    def add(self, ok: bool) -> None:
        if ok:
            self.succeeded += 1
        else:
            self.failed += 1

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class EntityHandler:
    """Shared write path: execute, then log with block number and id."""

    def __init__(self, sink: RelationalSink) -> None:
        self.sink = sink

    def _write(
        self,
        outcome: WriteOutcome,
        op_type: OperationType,
        ctx: WriteContext,
        object_id: str,
        statement: str,
        params: tuple,
    ) -> None:
        if not self.sink.is_connected:
            return

        op_name = op_type.name.lower()
        ok = self.sink.execute(statement, params)
        outcome.add(ok)

        log_extra = {
            "operation": op_name,
            "block_num": ctx.block_num,
            "object_id": object_id,
            "trx_id": ctx.trx_id,
        }
        if ok:
            logger.info(f"Indexed {op_name} at block {ctx.block_num}, id {object_id}", extra=log_extra)
        else:
            logger.error(f"Failed to write {op_name}: block {ctx.block_num}, id {object_id}", extra=log_extra)


class ContentCardHandler(EntityHandler):
    """Content card lifecycle: create, update, soft remove."""

    def create(self, op: ContentCardCreate, ctx: WriteContext, new_ids: list[str]) -> WriteOutcome:
        content_card_id = new_ids[0] if new_ids else placeholder_id(ctx.trx_id)
        outcome = WriteOutcome()
        self._write(
            outcome,
            OperationType.CONTENT_CARD_CREATE,
            ctx,
            content_card_id,
            CONTENT_CARD_CREATE_SQL,
            self._row(content_card_id, op, ctx),
        )
        return outcome

    def update(self, op: ContentCardUpdate, ctx: WriteContext, new_ids: list[str]) -> WriteOutcome:
        """Upsert the full row under the card's id.

        The id comes from the payload when it names the card, otherwise from
        the execution result, otherwise a placeholder.
        """
        if op.content_id:
            content_card_id = op.content_id
        elif new_ids:
            content_card_id = new_ids[0]
        else:
            content_card_id = placeholder_id(ctx.trx_id)

        outcome = WriteOutcome()
        self._write(
            outcome,
            OperationType.CONTENT_CARD_UPDATE,
            ctx,
            content_card_id,
            CONTENT_CARD_UPDATE_SQL,
            self._row(content_card_id, op, ctx),
        )
        return outcome

    def remove(self, op: ContentCardRemove, ctx: WriteContext) -> WriteOutcome:
        outcome = WriteOutcome()
        self._write(
            outcome,
            OperationType.CONTENT_CARD_REMOVE,
            ctx,
            op.content_id,
            CONTENT_CARD_REMOVE_SQL,
            (ctx.block_num, ctx.block_epoch, ctx.trx_id, op.content_id),
        )
        return outcome

    @staticmethod
    def _row(
        content_card_id: str,
        op: ContentCardCreate | ContentCardUpdate,
        ctx: WriteContext,
    ) -> tuple:
        return (
            content_card_id,
            op.subject_account,
            op.hash,
            op.url,
            op.type,
            op.description,
            op.content_key,
            op.storage_data,
            ctx.block_num,
            ctx.block_epoch,
            ctx.trx_id,
        )


class PermissionHandler(EntityHandler):
    """Permission lifecycle: create, bulk create, soft remove."""

    def create(self, op: PermissionCreate, ctx: WriteContext, new_ids: list[str]) -> WriteOutcome:
        permission_id = new_ids[0] if new_ids else placeholder_id(ctx.trx_id)
        outcome = WriteOutcome()
        self._write(
            outcome,
            OperationType.PERMISSION_CREATE,
            ctx,
            permission_id,
            PERMISSION_CREATE_SQL,
            self._row(permission_id, op.subject_account, op, ctx),
        )
        return outcome

    def create_many(
        self,
        op: PermissionCreateMany,
        ctx: WriteContext,
        new_ids: list[str],
    ) -> WriteOutcome:
        """Insert one row per grant, in array order.

        Item i is paired with the i-th resolved id. The ids arrive in
        ascending object-id order, not creation order; the pairing is kept
        positional so rows match what has already been indexed. Items past
        the end of new_ids get ``pending-<trx>-<i>``.
        """
        outcome = WriteOutcome()
        for i, grant in enumerate(op.permissions):
            permission_id = new_ids[i] if i < len(new_ids) else placeholder_id(ctx.trx_id, i)
            self._write(
                outcome,
                OperationType.PERMISSION_CREATE_MANY,
                ctx,
                permission_id,
                PERMISSION_CREATE_MANY_SQL,
                self._row(permission_id, op.subject_account, grant, ctx),
            )
        return outcome

    def remove(self, op: PermissionRemove, ctx: WriteContext) -> WriteOutcome:
        outcome = WriteOutcome()
        self._write(
            outcome,
            OperationType.PERMISSION_REMOVE,
            ctx,
            op.permission_id,
            PERMISSION_REMOVE_SQL,
            (ctx.block_num, ctx.block_epoch, ctx.trx_id, op.permission_id),
        )
        return outcome

    @staticmethod
    def _row(
        permission_id: str,
        subject_account: str,
        grant: PermissionCreate | PermissionGrant,
        ctx: WriteContext,
    ) -> tuple:
        return (
            permission_id,
            subject_account,
            grant.operator_account,
            grant.permission_type,
            grant.object_id or "",
            grant.content_key,
            ctx.block_num,
            ctx.block_epoch,
            ctx.trx_id,
        )
