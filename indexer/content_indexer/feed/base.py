"""
Base protocol and types for the block feed abstraction.

A block feed delivers "block applied" events, one record per finalized
block, in chain order. The indexer consumes it and commits each record
after the block has been projected.

Invariants:
    - Records are delivered in block order
    - A record's value is one JSON-encoded BlockAppliedEvent
    - commit() marks everything up to and including the record as consumed

How to change safely:
    - Protocol changes require updating all implementations
    - New backends must preserve single-partition ordering
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Protocol, runtime_checkable

from ..chain.blocks import BlockAppliedEvent
from ..errors import FeedSerializationError

if TYPE_CHECKING:
    from ..config import IndexerConfig

logger = logging.getLogger(__name__)


@dataclass
class FeedRecord:
    """A record from the block feed.

    Attributes:
        key: Record key (block number as text)
        value: JSON-encoded BlockAppliedEvent
        offset: Position of the record in its partition
        partition: Partition number (0 for single-partition feeds)
        timestamp_ms: When the record was written (milliseconds)
        headers: Optional headers/metadata
    """

    key: str
    value: bytes
    offset: int
    partition: int = 0
    timestamp_ms: int = 0
    headers: dict[str, bytes] = field(default_factory=dict)

    def value_json(self) -> Any:
        """Parse value as JSON.

        Raises:
            FeedSerializationError: If value is not valid JSON
        """
        try:
            return json.loads(self.value.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FeedSerializationError(f"Failed to parse record value as JSON: {e}")

    def to_event(self) -> BlockAppliedEvent:
        """Decode the record into a BlockAppliedEvent.

        Raises:
            FeedSerializationError: If the record is not a valid event
        """
        data = self.value_json()
        if not isinstance(data, dict):
            raise FeedSerializationError("Record value is not a JSON object")
        try:
            return BlockAppliedEvent.from_dict(data)
        except (ValueError, TypeError, KeyError) as e:
            raise FeedSerializationError(f"Invalid block-applied event: {e}") from e

    def __str__(self) -> str:
        return f"FeedRecord(key={self.key}, offset={self.partition}:{self.offset})"


@runtime_checkable
class BlockFeed(Protocol):
    """Protocol for block feed backends.

    Example:
        >>> feed = create_block_feed(config)
        >>> await feed.connect()
        >>> async for record in feed.subscribe():
        ...     projector.on_block(record.to_event())
        ...     await feed.commit(record)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the feed backend.

        Raises:
            FeedConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the feed and release resources."""
        ...

    @abstractmethod
    def subscribe(self) -> AsyncIterator[FeedRecord]:
        """Yield records in block order, starting after the last commit."""
        ...

    @abstractmethod
    async def commit(self, record: FeedRecord) -> None:
        """Acknowledge a consumed record."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_block_feed(config: IndexerConfig) -> BlockFeed:
    """Factory function to create a block feed from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import FeedBackend

    if config.feed_backend == FeedBackend.KAFKA:
        from .kafka import KafkaBlockFeed

        return KafkaBlockFeed(config.kafka)
    elif config.feed_backend == FeedBackend.MEMORY:
        from .memory import InMemoryBlockFeed

        return InMemoryBlockFeed()
    else:
        raise ValueError(f"Unsupported feed backend: {config.feed_backend}")
