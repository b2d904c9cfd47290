"""
Kafka/Redpanda block feed.

Consumes a topic the node publishes one JSON block-applied event per
finalized block to. The topic must have a single partition (or be keyed
so that every block lands on the same one) for block order to hold.

Invariants:
    - Manual commit: a block is acknowledged only after it was projected
    - Consumption resumes from the consumer group's committed offset

How to change safely:
    - Test with an actual Kafka/Redpanda cluster before deploying
    - Never enable auto-commit; it can acknowledge unprojected blocks
"""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaConnectionError, KafkaError
from aiokafka.structs import OffsetAndMetadata, TopicPartition

from ..errors import FeedConnectionError, FeedError
from .base import FeedRecord

logger = logging.getLogger(__name__)


class KafkaBlockFeed:
    """Kafka implementation of the BlockFeed protocol.

    Example:
        >>> feed = KafkaBlockFeed(KafkaConfig(brokers="localhost:9092"))
        >>> await feed.connect()
        >>> async for record in feed.subscribe():
        ...     await feed.commit(record)
    """

    def __init__(self, config: Any) -> None:
        """Initialize the Kafka block feed.

        Args:
            config: KafkaConfig instance with connection settings
        """
        self.config = config
        self._consumer: AIOKafkaConsumer | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._consumer is not None

    def _consumer_config(self) -> dict[str, Any]:
        consumer_config: dict[str, Any] = {
            "bootstrap_servers": self.config.brokers,
            "group_id": self.config.consumer_group,
            "auto_offset_reset": self.config.auto_offset_reset,
            "enable_auto_commit": False,
            "max_poll_records": 100,
            "session_timeout_ms": 30000,
            "heartbeat_interval_ms": 10000,
        }

        if self.config.security_protocol != "PLAINTEXT":
            consumer_config["security_protocol"] = self.config.security_protocol

        if self.config.sasl_mechanism:
            consumer_config["sasl_mechanism"] = self.config.sasl_mechanism
            consumer_config["sasl_plain_username"] = self.config.sasl_username
            consumer_config["sasl_plain_password"] = self.config.sasl_password

        if self.config.ssl_cafile:
            consumer_config["ssl_cafile"] = self.config.ssl_cafile

        return consumer_config

    async def connect(self) -> None:
        """Start the consumer.

        Raises:
            FeedConnectionError: If the cluster is unreachable
        """
        if self._connected:
            return

        try:
            self._consumer = AIOKafkaConsumer(self.config.topic, **self._consumer_config())
            await self._consumer.start()
        except KafkaError as e:
            self._consumer = None
            raise FeedConnectionError(f"Failed to connect to Kafka: {e}") from e

        self._connected = True
        logger.info(
            "Subscribed to Kafka topic",
            extra={"topic": self.config.topic, "group_id": self.config.consumer_group},
        )

    async def close(self) -> None:
        """Stop the consumer."""
        if self._consumer:
            try:
                await self._consumer.stop()
            except KafkaError as e:
                logger.warning(f"Error closing consumer: {e}")
            self._consumer = None

        self._connected = False
        logger.info("Kafka consumer closed")

    async def subscribe(self) -> AsyncIterator[FeedRecord]:
        """Yield one record per consumed message.

        Raises:
            FeedConnectionError: If not connected or the connection drops
            FeedError: For other consumer errors
        """
        if not self._consumer:
            raise FeedConnectionError("Not connected to Kafka")

        try:
            async for msg in self._consumer:
                yield FeedRecord(
                    key=msg.key.decode("utf-8") if msg.key else "",
                    value=msg.value,
                    offset=msg.offset,
                    partition=msg.partition,
                    timestamp_ms=msg.timestamp or int(time.time() * 1000),
                    headers=dict(msg.headers) if msg.headers else {},
                )
        except KafkaConnectionError as e:
            self._connected = False
            raise FeedConnectionError(f"Kafka connection lost: {e}") from e
        except KafkaError as e:
            raise FeedError(f"Consumer error: {e}") from e

    async def commit(self, record: FeedRecord) -> None:
        """Commit the offset after ``record``.

        Raises:
            FeedError: If there is no consumer or the commit fails
        """
        if not self._consumer:
            raise FeedError("No active consumer to commit")

        try:
            await self._consumer.commit(
                {
                    TopicPartition(self.config.topic, record.partition): OffsetAndMetadata(
                        record.offset + 1, ""
                    )
                }
            )
        except KafkaError as e:
            raise FeedError(f"Failed to commit: {e}") from e

        logger.debug(
            "Committed offset",
            extra={"partition": record.partition, "offset": record.offset},
        )
