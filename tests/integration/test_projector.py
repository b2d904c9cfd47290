"""
Integration tests for the BlockProjector.

Tests cover:
- Create then remove across blocks
- Idempotent replay
- Apply order within a block
- Placeholder ids for bulk creates
- Start block gating
- Tolerance of unknown kinds, null slots and malformed payloads
- Disconnected sink
"""

import logging

import pytest

from indexer.content_indexer.apply import BlockProjector, RelationalSink
from tests.helpers import (
    CC_CREATE,
    CC_REMOVE,
    CC_UPDATE,
    PERM_CREATE,
    PERM_CREATE_MANY,
    PERM_REMOVE,
    applied,
    block_event,
    card_payload,
    fetch_card,
    fetch_permission,
    grant,
    permission_payload,
)


def all_rows(sink, table):
    order = "content_card_id" if table == "content_cards" else "permission_id"
    rows = sink.query(f"SELECT * FROM {table} ORDER BY {order}")
    return [{k: row[k] for k in row.keys() if k not in ("id", "created_at")} for row in rows]


class TestCardLifecycle:
    """Tests for content cards across blocks."""

    @pytest.fixture
    def projector(self, sink):
        return BlockProjector(sink)

    def test_create_then_remove(self, projector, sink):
        created = projector.on_block(
            block_event(100, [applied(CC_CREATE, card_payload(subject="1.2.5", hash="abcd"), [1, "1.7.3"])])
        )

        assert created.writes_succeeded == 1
        row = fetch_card(sink, "1.7.3")
        assert row["subject_account"] == "1.2.5"
        assert row["hash"] == "abcd"
        assert row["is_removed"] == 0
        assert row["operation_type"] == 41
        assert row["block_num"] == 100

        projector.on_block(
            block_event(
                101,
                [applied(CC_REMOVE, {"subject_account": "1.2.5", "content_id": "1.7.3"})],
                trx_ids=("beef",),
                timestamp="2024-05-01T12:00:03",
            )
        )

        row = fetch_card(sink, "1.7.3")
        assert row["is_removed"] == 1
        assert row["block_num"] == 101
        assert row["operation_type"] == 43
        assert row["block_time"] == "2024-05-01 12:00:03"
        assert row["trx_id"] == "beef"
        assert row["subject_account"] == "1.2.5"
        assert row["hash"] == "abcd"
        assert row["url"] == "ipfs://QmCard"
        assert sink.get_stats()["content_cards"] == 1

    def test_two_updates_in_one_block_apply_in_order(self, projector, sink):
        projector.on_block(block_event(100, [applied(CC_CREATE, card_payload(), [1, "1.7.3"])]))

        projector.on_block(
            block_event(
                102,
                [
                    applied(CC_UPDATE, card_payload(content_id="1.7.3", description="first"), trx_in_block=0),
                    applied(CC_UPDATE, card_payload(content_id="1.7.3", description="second"), trx_in_block=1),
                ],
                trx_ids=("t0", "t1"),
            )
        )

        row = fetch_card(sink, "1.7.3")
        assert row["description"] == "second"
        assert row["trx_id"] == "t1"

    def test_remove_absent_inserts_nothing(self, projector, sink):
        result = projector.on_block(
            block_event(100, [applied(CC_REMOVE, {"subject_account": "1.2.5", "content_id": "1.7.42"})])
        )

        assert result.writes_failed == 0
        assert sink.get_stats()["content_cards"] == 0


class TestReplay:
    """Tests for replaying blocks."""

    def blocks(self):
        return [
            block_event(100, [applied(CC_CREATE, card_payload(), [1, "1.7.3"])]),
            block_event(
                101,
                [
                    applied(PERM_CREATE, permission_payload(), [1, "1.8.0"]),
                    applied(
                        PERM_CREATE_MANY,
                        {"subject_account": "1.2.5", "permissions": [grant("1.2.10"), grant("1.2.11")]},
                        [3, {"new_objects": ["1.8.1"]}],
                    ),
                ],
            ),
            block_event(102, [applied(CC_UPDATE, card_payload(content_id="1.7.3", url="ipfs://QmV2"))]),
            block_event(103, [applied(PERM_REMOVE, {"subject_account": "1.2.5", "permission_id": "1.8.0"})]),
        ]

    def test_replaying_a_block_is_idempotent(self, sink):
        projector = BlockProjector(sink)
        for event in self.blocks():
            projector.on_block(event)
        cards, perms = all_rows(sink, "content_cards"), all_rows(sink, "permissions")

        for event in self.blocks():
            projector.on_block(event)

        assert all_rows(sink, "content_cards") == cards
        assert all_rows(sink, "permissions") == perms
        assert len(perms) == 3

    def test_same_block_twice(self, sink):
        projector = BlockProjector(sink)
        event = self.blocks()[0]

        projector.on_block(event)
        before = all_rows(sink, "content_cards")
        projector.on_block(event)

        assert all_rows(sink, "content_cards") == before
        assert projector.stats["blocks_projected"] == 2


class TestPlaceholders:
    """Tests for unresolved ids."""

    def test_bulk_create_suffix_placeholders(self, sink):
        projector = BlockProjector(sink)
        items = [grant(f"1.2.{20 + i}", key=f"k{i}") for i in range(4)]

        projector.on_block(
            block_event(
                200,
                [
                    applied(
                        PERM_CREATE_MANY,
                        {"subject_account": "1.2.5", "permissions": items},
                        [3, {"new_objects": ["1.8.7", "1.8.6"]}],
                    )
                ],
                trx_ids=("cafe",),
            )
        )

        ids = [row["permission_id"] for row in all_rows(sink, "permissions")]
        assert sorted(ids) == ["1.8.6", "1.8.7", "pending-cafe-2", "pending-cafe-3"]
        assert fetch_permission(sink, "1.8.6")["operator_account"] == "1.2.20"
        assert fetch_permission(sink, "1.8.7")["operator_account"] == "1.2.21"
        assert fetch_permission(sink, "pending-cafe-3")["content_key"] == "k3"

    def test_single_create_without_result(self, sink):
        projector = BlockProjector(sink)
        projector.on_block(block_event(200, [applied(CC_CREATE, card_payload())], trx_ids=("cafe",)))

        assert fetch_card(sink, "pending-cafe") is not None

    def test_virtual_operation_has_empty_trx(self, sink):
        projector = BlockProjector(sink)
        projector.on_block(block_event(200, [applied(PERM_CREATE, permission_payload(), trx_in_block=None)]))

        row = fetch_permission(sink, "pending-")
        assert row["trx_id"] == ""


class TestGating:
    """Tests for start block gating."""

    def test_blocks_below_start_are_ignored(self, sink):
        projector = BlockProjector(sink, start_block=150)

        result = projector.on_block(block_event(149, [applied(CC_CREATE, card_payload(), [1, "1.7.3"])]))

        assert result.gated
        assert result.writes == 0
        assert sink.get_stats()["content_cards"] == 0
        assert projector.stats["blocks_projected"] == 0

    def test_start_block_itself_is_projected(self, sink):
        projector = BlockProjector(sink, start_block=150)

        result = projector.on_block(block_event(150, [applied(CC_CREATE, card_payload(), [1, "1.7.3"])]))

        assert not result.gated
        assert result.writes_succeeded == 1
        assert projector.stats["last_block_num"] == 150


class TestTolerance:
    """Tests for operations the projector skips."""

    def test_unknown_kind_does_not_abort_block(self, sink):
        projector = BlockProjector(sink)

        result = projector.on_block(
            block_event(
                100,
                [
                    applied(0, {"from": "1.2.5", "to": "1.2.6", "amount": {"amount": 5, "asset_id": "1.3.0"}}),
                    applied(CC_CREATE, card_payload(), [1, "1.7.3"]),
                ],
            )
        )

        assert result.operations == 2
        assert result.skipped == 1
        assert result.writes_succeeded == 1
        assert fetch_card(sink, "1.7.3") is not None

    def test_unknown_kind_with_non_object_payload(self, sink):
        projector = BlockProjector(sink)

        result = projector.on_block(
            block_event(
                100,
                [
                    applied(99, ["future", "shape"]),
                    applied(CC_CREATE, card_payload(), [1, "1.7.3"]),
                ],
            )
        )

        assert result.skipped == 1
        assert result.writes_succeeded == 1
        assert sink.get_stats()["content_cards"] == 1

    def test_unreadable_entries_do_not_abort_block(self, sink):
        projector = BlockProjector(sink)
        entries = [
            {"op": ["not-a-kind", {}]},
            {"result": [1, "1.7.9"]},
            "garbage",
            applied(CC_CREATE, ["not", "an", "object"], [1, "1.7.8"]),
            applied(CC_CREATE, card_payload(), [1, "1.7.3"], trx_in_block="0"),
        ]

        result = projector.on_block(block_event(100, entries))

        assert result.operations == 4
        assert result.skipped == 2
        assert result.decode_failures == 1
        assert result.writes_succeeded == 1
        assert fetch_card(sink, "1.7.8") is None
        assert fetch_card(sink, "1.7.3")["trx_id"] == ""

    def test_malformed_id_in_bulk_result_keeps_valid_ids(self, sink):
        projector = BlockProjector(sink)

        projector.on_block(
            block_event(
                100,
                [
                    applied(
                        PERM_CREATE_MANY,
                        {"subject_account": "1.2.5", "permissions": [grant("1.2.9"), grant("1.2.10")]},
                        [3, {"new_objects": ["1.8.4", "bogus"]}],
                    )
                ],
                trx_ids=("cafe",),
            )
        )

        assert fetch_permission(sink, "1.8.4")["operator_account"] == "1.2.9"
        assert fetch_permission(sink, "pending-cafe-1")["operator_account"] == "1.2.10"

    def test_null_slots_are_skipped(self, sink):
        projector = BlockProjector(sink)

        result = projector.on_block(block_event(100, [None, applied(CC_CREATE, card_payload(), [1, "1.7.3"]), None]))

        assert result.operations == 1
        assert result.writes_succeeded == 1

    def test_malformed_payload_does_not_abort_block(self, sink, caplog):
        projector = BlockProjector(sink)

        with caplog.at_level(logging.ERROR):
            result = projector.on_block(
                block_event(
                    100,
                    [
                        applied(CC_REMOVE, {"subject_account": "1.2.5"}),
                        applied(CC_CREATE, card_payload(), [1, "1.7.3"]),
                    ],
                )
            )

        assert result.decode_failures == 1
        assert result.writes_succeeded == 1
        assert "content_card_remove" in caplog.text

    def test_disconnected_sink_is_noop(self, db_path):
        projector = BlockProjector(RelationalSink(db_path))

        result = projector.on_block(block_event(100, [applied(CC_CREATE, card_payload(), [1, "1.7.3"])]))

        assert result.operations == 1
        assert result.writes == 0
