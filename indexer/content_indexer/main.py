"""
Content indexer - main entry point.

This module starts the indexer service:
- Relational sink (connect + schema bootstrap, both fatal on failure)
- Block feed subscription
- Block projector, fed one finalized block at a time

Usage:
    content-indexer [--database PATH] [--start-block N]

Configuration is via environment variables; see config.py for all available
settings. The two flags override CONTENT_INDEXER_DATABASE and
CONTENT_INDEXER_START_BLOCK.

Invariants:
    - Nothing is consumed from the feed before the schema exists
    - A feed record is committed only after its block was projected
    - Shutdown releases the store connection last

How to change safely:
    - Keep projection synchronous inside the consume loop
    - Test shutdown with records still queued in the feed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any

import json_log_formatter

from .apply import BlockProjector, ProjectionResult, RelationalSink
from .config import IndexerConfig
from .errors import FeedSerializationError, IndexerError
from .feed import BlockFeed, FeedRecord, create_block_feed

logger = logging.getLogger(__name__)


def setup_logging(config: IndexerConfig) -> None:
    """Configure logging based on configuration."""
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiokafka").setLevel(logging.WARNING)


class Indexer:
    """Content indexer service.

    Manages the lifecycle of the sink, the block feed and the projector.

    Attributes:
        config: Indexer configuration
        sink: Relational sink (disconnected when no store is configured)
        projector: Block projector writing through the sink
        feed: Block feed instance

    Example:
        >>> indexer = Indexer(config)
        >>> await indexer.start()  # Runs until request_shutdown()
        >>> await indexer.stop()
    """

    def __init__(self, config: IndexerConfig | None = None, feed: BlockFeed | None = None) -> None:
        """Initialize the indexer.

        Args:
            config: Optional configuration (loaded from env if not provided)
            feed: Optional block feed (created from config if not provided)
        """
        self.config = config or IndexerConfig.from_env()
        self.sink = RelationalSink(
            database=self.config.sink.database or ":memory:",
            wal_mode=self.config.sink.wal_mode,
            busy_timeout_ms=self.config.sink.busy_timeout_ms,
        )
        self.projector = BlockProjector(self.sink, start_block=self.config.projector.start_block)
        self.feed = feed
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._consume_task: asyncio.Task | None = None
        self._records_failed = 0

    async def start(self) -> None:
        """Start the indexer and consume blocks until shutdown.

        Raises:
            SinkConnectionError: If the store cannot be opened
            SchemaBootstrapError: If the tables cannot be created
            FeedError: If the feed fails
        """
        if self._running:
            logger.warning("Indexer already running")
            return

        logger.info("Starting content indexer")
        self.config.log_config()

        try:
            if self.config.enabled:
                self.sink.connect()
                self.sink.create_schema()
            else:
                logger.warning("Content indexer disabled (no database configured)")

            if self.feed is None:
                self.feed = create_block_feed(self.config)
            await self.feed.connect()
            logger.info("Block feed connected")

            self._running = True
            self._consume_task = asyncio.create_task(self._consume())
            shutdown_wait = asyncio.create_task(self._shutdown_event.wait())
            logger.info("Content indexer started successfully")

            done, _ = await asyncio.wait(
                {self._consume_task, shutdown_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
            shutdown_wait.cancel()
            if self._consume_task in done and self._consume_task.exception():
                raise self._consume_task.exception()

        except Exception as e:
            logger.error(f"Indexer failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def _consume(self) -> None:
        assert self.feed is not None
        async for record in self.feed.subscribe():
            self.process_record(record)
            await self.feed.commit(record)

    def process_record(self, record: FeedRecord) -> ProjectionResult | None:
        """Decode one feed record and project its block.

        Malformed records are logged and skipped.
        """
        try:
            event = record.to_event()
        except FeedSerializationError as e:
            self._records_failed += 1
            logger.error(f"Skipping malformed feed record {record}: {e}")
            return None

        return self.projector.on_block(event)

    async def stop(self) -> None:
        """Stop the indexer and release the store connection."""
        logger.info("Stopping content indexer")

        if self._consume_task and not self._consume_task.done():
            self._consume_task.cancel()
            await asyncio.gather(self._consume_task, return_exceptions=True)

        if self.feed:
            await self.feed.close()

        logger.info("Indexer statistics", extra=self.stats)
        self.sink.close()

        self._running = False
        logger.info("Content indexer stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()

    @property
    def stats(self) -> dict[str, Any]:
        stats = dict(self.projector.stats)
        stats["running"] = self._running
        stats["records_failed"] = self._records_failed
        stats.update(self.sink.get_stats())
        return stats


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Index content cards and permissions from finalized blocks"
    )
    parser.add_argument("--database", help="SQLite database path (overrides CONTENT_INDEXER_DATABASE)")
    parser.add_argument(
        "--start-block",
        type=int,
        help="Start indexing from this block number (overrides CONTENT_INDEXER_START_BLOCK)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = IndexerConfig.from_env().with_overrides(
            database=args.database,
            start_block=args.start_block,
        )
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    indexer = Indexer(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        indexer.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    exit_code = 0
    try:
        loop.run_until_complete(indexer.start())
    except KeyboardInterrupt:
        pass
    except IndexerError as e:
        logger.error(f"Indexer startup failed: {e}")
        exit_code = 1
    finally:
        loop.run_until_complete(indexer.stop())
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
