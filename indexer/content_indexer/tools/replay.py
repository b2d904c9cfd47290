"""
Replay CLI tool for the content indexer.

This tool projects a dump of block-applied events into the relational
store without a running node. Use it to backfill a fresh database or to
rebuild one after it was lost.

The dump is JSON lines: one BlockAppliedEvent object per line, in block
order. Files ending in ``.gz`` are read through gzip.

Usage:
    content-indexer-replay --database <path> --input <dump.jsonl[.gz]> [options]

Invariants:
    - Replay is idempotent (can be re-run over the same dump safely)
    - Blocks are projected in file order; the dump must be sorted
    - Malformed lines are logged and skipped, never fatal

How to change safely:
    - Keep the line format identical to a feed record's value
"""

from __future__ import annotations

import argparse
import gzip
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterator

from ..apply import BlockProjector, RelationalSink
from ..chain.blocks import BlockAppliedEvent
from ..errors import IndexerError

logger = logging.getLogger(__name__)


@dataclass
class ReplayConfig:
    """Configuration for a replay run.

    Attributes:
        database: SQLite database path
        input_path: JSON-lines dump of block-applied events
        start_block: Blocks below this height are not projected
        stop_block: Stop after this height (inclusive); None reads to the end
    """

    database: str
    input_path: str
    start_block: int = 0
    stop_block: int | None = None


@dataclass
class ReplayResult:
    """Result of a replay run."""

    success: bool
    lines_read: int = 0
    blocks_projected: int = 0
    blocks_gated: int = 0
    malformed_lines: int = 0
    writes_succeeded: int = 0
    writes_failed: int = 0
    last_block_num: int | None = None
    duration_ms: int = 0
    table_counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None


class ReplayTool:
    """Projects a dump file into the relational store.

    Example:
        >>> tool = ReplayTool(ReplayConfig(database="content.db", input_path="blocks.jsonl"))
        >>> result = tool.run()
        >>> print(f"Projected {result.blocks_projected} blocks")
    """

    def __init__(self, config: ReplayConfig) -> None:
        self.config = config

    def run(self) -> ReplayResult:
        """Run the replay.

        Returns:
            ReplayResult; success is False only for startup failures
            (unreadable input, store connection, schema bootstrap)
        """
        start_time = time.time()
        result = ReplayResult(success=False)

        input_path = Path(self.config.input_path)
        if not input_path.exists():
            result.error = f"Input file not found: {input_path}"
            return result

        sink = RelationalSink(self.config.database)
        try:
            with sink:
                sink.create_schema()
                projector = BlockProjector(sink, start_block=self.config.start_block)

                with self._open(input_path) as fh:
                    for event in self._read_events(fh, result):
                        if self.config.stop_block is not None and event.block_num > self.config.stop_block:
                            break

                        projected = projector.on_block(event)
                        if projected.gated:
                            result.blocks_gated += 1
                            continue
                        result.blocks_projected += 1
                        result.writes_succeeded += projected.writes_succeeded
                        result.writes_failed += projected.writes_failed
                        result.last_block_num = event.block_num

                result.table_counts = sink.get_stats()

            result.success = True

        except IndexerError as e:
            logger.error(f"Replay failed: {e}")
            result.error = str(e)

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Replay finished",
            extra={
                "blocks_projected": result.blocks_projected,
                "malformed_lines": result.malformed_lines,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    @staticmethod
    def _open(path: Path) -> IO[str]:
        if path.suffix == ".gz":
            return gzip.open(path, "rt", encoding="utf-8")
        return open(path, encoding="utf-8")

    def _read_events(self, fh: IO[str], result: ReplayResult) -> Iterator[BlockAppliedEvent]:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            result.lines_read += 1
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise ValueError("line is not a JSON object")
                yield BlockAppliedEvent.from_dict(data)
            except (ValueError, TypeError, KeyError) as e:
                result.malformed_lines += 1
                logger.error(f"Skipping malformed line {line_no}: {e}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the replay tool."""
    parser = argparse.ArgumentParser(
        description="Project a JSON-lines dump of block-applied events into the content index"
    )
    parser.add_argument("--database", required=True, help="SQLite database path")
    parser.add_argument("--input", required=True, help="Dump file (.jsonl or .jsonl.gz)")
    parser.add_argument("--start-block", type=int, default=0, help="Skip blocks below this number")
    parser.add_argument("--stop-block", type=int, help="Stop after this block number")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    tool = ReplayTool(
        ReplayConfig(
            database=args.database,
            input_path=args.input,
            start_block=args.start_block,
            stop_block=args.stop_block,
        )
    )
    result = tool.run()

    if result.success:
        print("Replay completed successfully")
        print(f"  Blocks projected: {result.blocks_projected}")
        print(f"  Blocks below start: {result.blocks_gated}")
        print(f"  Malformed lines: {result.malformed_lines}")
        print(f"  Writes: {result.writes_succeeded} ok, {result.writes_failed} failed")
        print(f"  Last block: {result.last_block_num if result.last_block_num is not None else 'none'}")
        for table, count in result.table_counts.items():
            print(f"  {table}: {count}")
        print(f"  Duration: {result.duration_ms}ms")
        sys.exit(0)
    else:
        print(f"Replay failed: {result.error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
