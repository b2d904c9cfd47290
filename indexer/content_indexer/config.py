"""
Configuration management for the content indexer.

All configuration is done via environment variables; the CLI entry points
only override the two settings the node plugin exposed as options (store
location and start block). This module provides typed configuration
classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - No store configured means the indexer runs disabled, not that it fails,
      except on the Kafka feed, whose commits outlive the process
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep CONTENT_INDEXER_START_BLOCK defaulting to genesis (0)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)


class FeedBackend(Enum):
    """Supported block feed backends."""

    MEMORY = "memory"
    KAFKA = "kafka"


@dataclass(frozen=True)
class SinkConfig:
    """Relational store configuration.

    Attributes:
        database: SQLite file path or ":memory:"; None disables indexing
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    database: str | None = None
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> SinkConfig:
        """Load configuration from environment variables."""
        return cls(
            database=os.getenv("CONTENT_INDEXER_DATABASE") or None,
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class ProjectorConfig:
    """Projector configuration.

    Attributes:
        start_block: Blocks below this height are not projected
    """

    start_block: int = 0

    @classmethod
    def from_env(cls) -> ProjectorConfig:
        """Load configuration from environment variables."""
        return cls(start_block=int(os.getenv("CONTENT_INDEXER_START_BLOCK", "0")))


@dataclass(frozen=True)
class KafkaConfig:
    """Kafka/Redpanda block feed configuration.

    Attributes:
        brokers: Comma-separated list of broker addresses
        topic: Topic the node publishes applied blocks to
        consumer_group: Consumer group ID for the indexer
        sasl_mechanism: SASL authentication mechanism (PLAIN, SCRAM-SHA-256, etc.)
        sasl_username: SASL username (if authentication enabled)
        sasl_password: SASL password (if authentication enabled)
        security_protocol: Security protocol (PLAINTEXT, SSL, SASL_PLAINTEXT, SASL_SSL)
        ssl_cafile: Path to CA certificate file
        auto_offset_reset: Where a new consumer group starts (earliest, latest)
    """

    brokers: str = "localhost:9092"
    topic: str = "chain-applied-blocks"
    consumer_group: str = "content-indexer"
    sasl_mechanism: str | None = None
    sasl_username: str | None = None
    sasl_password: str | None = None
    security_protocol: str = "PLAINTEXT"
    ssl_cafile: str | None = None
    auto_offset_reset: str = "earliest"

    @classmethod
    def from_env(cls) -> KafkaConfig:
        """Load configuration from environment variables."""
        return cls(
            brokers=os.getenv("KAFKA_BROKERS", "localhost:9092"),
            topic=os.getenv("KAFKA_TOPIC", "chain-applied-blocks"),
            consumer_group=os.getenv("KAFKA_CONSUMER_GROUP", "content-indexer"),
            sasl_mechanism=os.getenv("KAFKA_SASL_MECHANISM"),
            sasl_username=os.getenv("KAFKA_SASL_USERNAME"),
            sasl_password=os.getenv("KAFKA_SASL_PASSWORD"),
            security_protocol=os.getenv("KAFKA_SECURITY_PROTOCOL", "PLAINTEXT"),
            ssl_cafile=os.getenv("KAFKA_SSL_CAFILE"),
            auto_offset_reset=os.getenv("KAFKA_AUTO_OFFSET_RESET", "earliest"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class IndexerConfig:
    """Complete indexer configuration.

    Attributes:
        feed_backend: Which block feed to consume
        sink: Relational store configuration
        projector: Projector configuration
        kafka: Kafka configuration (if feed_backend is KAFKA)
        observability: Logging configuration
    """

    feed_backend: FeedBackend = FeedBackend.MEMORY
    sink: SinkConfig = field(default_factory=SinkConfig)
    projector: ProjectorConfig = field(default_factory=ProjectorConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> IndexerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        backend_str = os.getenv("FEED_BACKEND", "memory").lower()
        try:
            feed_backend = FeedBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid FEED_BACKEND '{backend_str}'. Must be one of: memory, kafka")

        config = cls(
            feed_backend=feed_backend,
            sink=SinkConfig.from_env(),
            projector=ProjectorConfig.from_env(),
            kafka=KafkaConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def with_overrides(
        self,
        database: str | None = None,
        start_block: int | None = None,
    ) -> IndexerConfig:
        """Return a copy with CLI overrides applied."""
        config = replace(self)
        if database is not None:
            config.sink = replace(self.sink, database=database)
        if start_block is not None:
            config.projector = replace(self.projector, start_block=start_block)
        config.validate()
        return config

    @property
    def enabled(self) -> bool:
        """Whether a relational store is configured."""
        return bool(self.sink.database)

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.projector.start_block < 0:
            raise ValueError("CONTENT_INDEXER_START_BLOCK must be >= 0")
        if self.sink.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must be >= 0")

        if self.feed_backend == FeedBackend.KAFKA:
            if not self.kafka.brokers:
                raise ValueError("KAFKA_BROKERS is required when FEED_BACKEND=kafka")
            if not self.kafka.topic:
                raise ValueError("KAFKA_TOPIC is required when FEED_BACKEND=kafka")
            if not self.enabled:
                # Disabled mode must never commit Kafka offsets
                raise ValueError("CONTENT_INDEXER_DATABASE is required when FEED_BACKEND=kafka")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text")

        if not self.enabled:
            logger.warning("No CONTENT_INDEXER_DATABASE configured; indexer will be disabled")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Indexer configuration loaded",
            extra={
                "feed_backend": self.feed_backend.value,
                "database": self.sink.database,
                "start_block": self.projector.start_block,
                "kafka_brokers": self.kafka.brokers
                if self.feed_backend == FeedBackend.KAFKA
                else None,
                "kafka_topic": self.kafka.topic if self.feed_backend == FeedBackend.KAFKA else None,
                "log_level": self.observability.log_level,
            },
        )
