"""
In-memory block feed for tests and embedding.

The host process publishes block-applied events directly; the indexer
consumes them through the same protocol as the Kafka backend.

Invariants:
    - All data is lost on process exit
    - Single partition, so delivery order is publish order
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator

from ..errors import FeedConnectionError
from .base import FeedRecord

logger = logging.getLogger(__name__)


class InMemoryBlockFeed:
    """In-memory implementation of BlockFeed.

    Example:
        >>> feed = InMemoryBlockFeed()
        >>> await feed.connect()
        >>> await feed.publish({"block": {...}, "applied_operations": [...]})
        >>> async for record in feed.subscribe():
        ...     print(record.to_event().block_num)
    """

    def __init__(self) -> None:
        self._records: list[FeedRecord] = []
        self._committed = 0
        self._connected = False
        self._lock = asyncio.Lock()
        self._new_record = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def committed_offset(self) -> int:
        """Offset of the next record to consume after a restart."""
        return self._committed

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryBlockFeed connected")

    async def close(self) -> None:
        """Stop delivering records. Published records are kept."""
        self._connected = False
        self._new_record.set()
        logger.debug("InMemoryBlockFeed closed")

    async def publish(self, event: dict[str, Any] | bytes) -> int:
        """Append one block-applied event.

        Args:
            event: Event dictionary, or already-encoded JSON bytes

        Returns:
            Offset of the new record

        Raises:
            FeedConnectionError: If not connected
        """
        if not self._connected:
            raise FeedConnectionError("Not connected")

        if isinstance(event, bytes):
            value = event
            key = ""
        else:
            value = json.dumps(event).encode("utf-8")
            key = str(event.get("block", {}).get("block_num", ""))

        async with self._lock:
            offset = len(self._records)
            self._records.append(
                FeedRecord(
                    key=key,
                    value=value,
                    offset=offset,
                    timestamp_ms=int(time.time() * 1000),
                )
            )
            self._new_record.set()

        return offset

    async def subscribe(self) -> AsyncIterator[FeedRecord]:
        """Yield records from the committed offset until closed.

        Raises:
            FeedConnectionError: If not connected
        """
        if not self._connected:
            raise FeedConnectionError("Not connected")

        position = self._committed
        while self._connected:
            if position < len(self._records):
                record = self._records[position]
                position += 1
                yield record
                continue

            self._new_record.clear()
            try:
                await asyncio.wait_for(self._new_record.wait(), timeout=1.0)
            except asyncio.TimeoutError:
                pass

    async def commit(self, record: FeedRecord) -> None:
        self._committed = max(self._committed, record.offset + 1)

    # Testing helpers

    def get_record_count(self) -> int:
        return len(self._records)

    async def wait_for_commit(self, offset: int, timeout: float = 5.0) -> bool:
        """Wait until records up to ``offset`` (exclusive) are committed.

        Returns:
            True if reached, False on timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            if self._committed >= offset:
                return True
            await asyncio.sleep(0.01)
        return False
