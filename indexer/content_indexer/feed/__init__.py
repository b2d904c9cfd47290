"""
Block feed abstraction for the content indexer.

This module provides a pluggable source of "block applied" events:
- Kafka/Redpanda (the node publishes one record per finalized block)
- In-memory (for tests and for embedding the indexer in a host process)

The Kafka backend is imported lazily by create_block_feed so that the
in-memory path does not load aiokafka.
"""

from .base import BlockFeed, FeedRecord, create_block_feed
from .memory import InMemoryBlockFeed

__all__ = [
    "BlockFeed",
    "FeedRecord",
    "create_block_feed",
    "InMemoryBlockFeed",
]
