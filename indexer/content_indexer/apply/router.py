"""
Operation router: sends one applied operation to its entity handler.

Invariants:
    - Every projected OperationType maps to exactly one handler method
    - Unknown discriminants are skipped without a write and without an error;
      a chain upgrade may introduce kinds this indexer does not know
"""

from __future__ import annotations

import logging

from ..chain.blocks import AppliedOperation
from ..chain.operations import OperationType
from .handlers import ContentCardHandler, PermissionHandler, WriteContext, WriteOutcome
from .resolver import resolve_new_object_ids
from .sink import RelationalSink

logger = logging.getLogger(__name__)


class OperationRouter:
    """Dispatches applied operations by kind.

    Example:
        >>> router = OperationRouter(sink)
        >>> outcome = router.route(applied_op, WriteContext(100, block_time, trx_id))
    """

    def __init__(self, sink: RelationalSink) -> None:
        self.content_cards = ContentCardHandler(sink)
        self.permissions = PermissionHandler(sink)

    def route(self, applied: AppliedOperation, ctx: WriteContext) -> WriteOutcome | None:
        """Project one applied operation.

        Args:
            applied: Operation with its execution result
            ctx: Block number, block time and owning transaction id

        Returns:
            WriteOutcome, or None if the kind is not projected

        Raises:
            OperationDecodeError: If a projected payload is malformed
        """
        op_type = applied.op.operation_type
        if op_type is None:
            logger.debug(f"Skipping unprojected operation kind {applied.op.kind}")
            return None

        payload = applied.op.decode()
        new_ids = resolve_new_object_ids(applied.result)

        if op_type == OperationType.CONTENT_CARD_CREATE:
            return self.content_cards.create(payload, ctx, new_ids)

        elif op_type == OperationType.CONTENT_CARD_UPDATE:
            return self.content_cards.update(payload, ctx, new_ids)

        elif op_type == OperationType.CONTENT_CARD_REMOVE:
            return self.content_cards.remove(payload, ctx)

        elif op_type == OperationType.PERMISSION_CREATE:
            return self.permissions.create(payload, ctx, new_ids)

        elif op_type == OperationType.PERMISSION_CREATE_MANY:
            return self.permissions.create_many(payload, ctx, new_ids)

        elif op_type == OperationType.PERMISSION_REMOVE:
            return self.permissions.remove(payload, ctx)

        logger.warning(f"No route for operation kind {op_type!r}")
        return None
