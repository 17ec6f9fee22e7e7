"""Hashing utilities for deduplication and unchanged-content detection."""

import hashlib
import json
from typing import Any, Iterable, Optional


def calculate_content_hash(content: str | bytes) -> str:
    """
    Calculate SHA-256 hash of content.

    Args:
        content: String or bytes content to hash

    Returns:
        Hexadecimal string representation of the SHA-256 hash (64 characters)
    """
    if isinstance(content, str):
        content = content.encode("utf-8")

    return hashlib.sha256(content).hexdigest()


def calculate_turn_hash(
    role: str, content: str, tool_calls: Optional[list[dict[str, Any]]] = None
) -> str:
    """
    Hash one conversation turn for position-by-position diffing.

    Timestamps are not part of the hash; two harvests of the same text
    compare equal.
    """
    payload = {"role": role, "content": content}
    if tool_calls:
        payload["tool_calls"] = tool_calls
    return calculate_content_hash(json.dumps(payload, sort_keys=True, default=str))


def calculate_sequence_hash(turn_hashes: Iterable[str]) -> str:
    """Hash an ordered sequence of turn hashes into one record checksum."""
    return calculate_content_hash("\n".join(turn_hashes))
