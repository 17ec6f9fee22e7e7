"""
Utility functions shared by provider adapters.

Timestamp parsing, content flattening and source discovery helpers.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from dateutil import parser as date_parser

from chatledger.models.records import SourceLocation

# Common provider spellings folded onto canonical roles
ROLE_ALIASES = {
    "human": "user",
    "ai": "assistant",
    "bot": "assistant",
    "model": "assistant",
    "developer": "system",
    "function": "tool",
}


def parse_iso_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string to a datetime object.

    Args:
        timestamp_str: ISO 8601 formatted timestamp (e.g., "2025-10-16T19:12:28.024Z")

    Returns:
        Parsed datetime object (timezone-aware; naive input is taken as UTC)

    Raises:
        ValueError: If the timestamp string is invalid
    """
    try:
        parsed = date_parser.isoparse(timestamp_str)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_timestamp(value: Any) -> Optional[datetime]:
    """Lenient variant: None for missing or unparseable values.

    Numbers are read as Unix epoch seconds.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        return parse_iso_timestamp(str(value))
    except ValueError:
        return None


def optional_str(value: Any) -> Optional[str]:
    """The value if it is a non-empty string, else None."""
    return value if isinstance(value, str) and value else None


def normalize_role(role: Any) -> Optional[str]:
    """Canonical role name, or None if the value is not a known role."""
    if not isinstance(role, str):
        return None
    role = role.strip().lower()
    role = ROLE_ALIASES.get(role, role)
    if role in {"user", "assistant", "system", "tool"}:
        return role
    return None


def extract_text_content(content: Any) -> str:
    """
    Extract text content from a message's content field.

    Content can be:
    - A string (simple message)
    - An array of content items (structured message), where text items use
      type "text", "input_text" or "output_text"

    Args:
        content: The message content (string or array)

    Returns:
        Extracted text content, or empty string if none found
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts = []
        for item in content:
            if isinstance(item, str):
                text_parts.append(item)
            elif isinstance(item, dict) and item.get("type") in {
                "text",
                "input_text",
                "output_text",
            }:
                text_parts.append(item.get("text", ""))
        return "\n".join(part for part in text_parts if part)

    return ""


def discover_files(
    provider: str, root: Path, patterns: Iterable[str]
) -> list[SourceLocation]:
    """
    List files under `root` matching any glob pattern, sorted by path.

    A missing root yields no locations.
    """
    if not root.exists():
        return []
    if root.is_file():
        paths = {root}
    else:
        paths = {path for pattern in patterns for path in root.rglob(pattern)}

    locations = []
    for path in sorted(p for p in paths if p.is_file()):
        stat = path.stat()
        locations.append(
            SourceLocation(
                provider=provider,
                uri=str(path),
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )
    return locations
