"""Tests for hashing utilities."""

from datetime import UTC, datetime

from chatledger.models.records import RawTurn, ToolCallPayload
from chatledger.utils.hashing import (
    calculate_content_hash,
    calculate_sequence_hash,
    calculate_turn_hash,
)


class TestCalculateContentHash:
    """Tests for calculate_content_hash function."""

    def test_str_and_bytes_agree(self):
        """Test that text is hashed as its UTF-8 encoding."""
        assert calculate_content_hash("héllo") == calculate_content_hash(
            "héllo".encode("utf-8")
        )

    def test_hash_is_64_characters(self):
        assert len(calculate_content_hash("")) == 64

    def test_different_content_produces_different_hash(self):
        assert calculate_content_hash("content 1") != calculate_content_hash(
            "content 2"
        )


class TestTurnHashes:
    def test_timestamps_do_not_change_the_hash(self):
        """Test that re-harvested text with new timestamps compares equal."""
        early = RawTurn(role="user", content="hi", timestamp=datetime(2024, 1, 1))
        late = RawTurn(role="user", content="hi", timestamp=datetime.now(UTC))

        assert early.content_hash == late.content_hash

    def test_role_and_content_matter(self):
        base = calculate_turn_hash("user", "hi")

        assert calculate_turn_hash("assistant", "hi") != base
        assert calculate_turn_hash("user", "hi!") != base

    def test_tool_calls_matter(self):
        plain = RawTurn(role="assistant", content="")
        with_call = RawTurn(
            role="assistant",
            content="",
            tool_calls=[ToolCallPayload(tool_name="shell", arguments={"cmd": "ls"})],
        )

        assert plain.content_hash != with_call.content_hash

    def test_sequence_hash_is_order_sensitive(self):
        a, b = calculate_turn_hash("user", "a"), calculate_turn_hash("user", "b")

        assert calculate_sequence_hash([a, b]) != calculate_sequence_hash([b, a])
        assert calculate_sequence_hash([a, b]) == calculate_sequence_hash(iter([a, b]))
