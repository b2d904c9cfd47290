"""
Integration tests for the replay tool.

Tests cover:
- Projecting a JSON-lines dump
- Gzip input
- Malformed lines
- Start/stop block bounds
- Re-running over the same dump
- CLI exit codes
"""

import gzip
import json
from pathlib import Path

import pytest

from indexer.content_indexer.apply import RelationalSink
from indexer.content_indexer.tools.replay import ReplayConfig, ReplayTool, main
from tests.helpers import CC_CREATE, CC_REMOVE, PERM_CREATE, applied, block_dict, card_payload, fetch_card, permission_payload


def dump_lines():
    return [
        json.dumps(block_dict(100, [applied(CC_CREATE, card_payload(), [1, "1.7.3"])])),
        json.dumps(block_dict(101, [applied(PERM_CREATE, permission_payload(), [1, "1.8.0"])])),
        json.dumps(block_dict(102, [applied(CC_REMOVE, {"subject_account": "1.2.5", "content_id": "1.7.3"})])),
    ]


class TestReplayTool:
    """Tests for ReplayTool."""

    @pytest.fixture
    def dump_path(self, data_dir):
        path = Path(data_dir) / "blocks.jsonl"
        path.write_text("\n".join(dump_lines()) + "\n")
        return str(path)

    def test_replay_dump(self, db_path, dump_path):
        result = ReplayTool(ReplayConfig(database=db_path, input_path=dump_path)).run()

        assert result.success
        assert result.lines_read == 3
        assert result.blocks_projected == 3
        assert result.writes_succeeded == 3
        assert result.last_block_num == 102
        assert result.table_counts["content_cards"] == 1
        assert result.table_counts["content_cards_removed"] == 1
        assert result.table_counts["permissions"] == 1

    def test_replay_twice_is_idempotent(self, db_path, dump_path):
        config = ReplayConfig(database=db_path, input_path=dump_path)
        first = ReplayTool(config).run()
        second = ReplayTool(config).run()

        assert second.table_counts == first.table_counts
        with RelationalSink(db_path) as sink:
            row = fetch_card(sink, "1.7.3")
            assert row["is_removed"] == 1
            assert row["block_num"] == 102

    def test_gzip_input(self, db_path, data_dir):
        path = Path(data_dir) / "blocks.jsonl.gz"
        with gzip.open(path, "wt", encoding="utf-8") as fh:
            fh.write("\n".join(dump_lines()))

        result = ReplayTool(ReplayConfig(database=db_path, input_path=str(path))).run()

        assert result.success
        assert result.blocks_projected == 3

    def test_malformed_lines_are_skipped(self, db_path, data_dir):
        lines = dump_lines()
        path = Path(data_dir) / "blocks.jsonl"
        path.write_text("\n".join([lines[0], "{broken", "[]", "", lines[1]]))

        result = ReplayTool(ReplayConfig(database=db_path, input_path=str(path))).run()

        assert result.success
        assert result.lines_read == 4
        assert result.malformed_lines == 2
        assert result.blocks_projected == 2

    def test_start_and_stop_block(self, db_path, dump_path):
        result = ReplayTool(
            ReplayConfig(database=db_path, input_path=dump_path, start_block=101, stop_block=101)
        ).run()

        assert result.blocks_gated == 1
        assert result.blocks_projected == 1
        assert result.last_block_num == 101
        assert result.table_counts["content_cards"] == 0
        assert result.table_counts["permissions"] == 1

    def test_missing_input(self, db_path, data_dir):
        result = ReplayTool(ReplayConfig(database=db_path, input_path=str(Path(data_dir) / "nope.jsonl"))).run()

        assert not result.success
        assert "not found" in result.error

    def test_unopenable_database(self, data_dir, dump_path):
        blocker = Path(data_dir) / "occupied"
        blocker.write_text("x")

        result = ReplayTool(ReplayConfig(database=str(blocker / "content.db"), input_path=dump_path)).run()

        assert not result.success
        assert result.error


class TestReplayCli:
    """Tests for the replay command line."""

    def test_success_exit_code(self, db_path, data_dir, capsys):
        path = Path(data_dir) / "blocks.jsonl"
        path.write_text("\n".join(dump_lines()))

        with pytest.raises(SystemExit) as exc_info:
            main(["--database", db_path, "--input", str(path)])

        assert exc_info.value.code == 0
        assert "Blocks projected: 3" in capsys.readouterr().out

    def test_failure_exit_code(self, db_path, data_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--database", db_path, "--input", str(Path(data_dir) / "missing.jsonl")])

        assert exc_info.value.code == 1
        assert "Replay failed" in capsys.readouterr().out
