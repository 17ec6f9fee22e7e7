"""
Provider-neutral session records.

These are intermediate Python dataclasses produced by provider adapters
before reconciliation into the canonical database model. Adapters never
assign canonical ids; everything here is keyed by provider-native values.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from chatledger.utils.hashing import calculate_sequence_hash, calculate_turn_hash


@dataclass(frozen=True)
class SourceLocation:
    """Opaque pointer to one provider source (a file, an API endpoint)."""

    provider: str
    uri: str
    size_bytes: Optional[int] = None
    modified_at: Optional[datetime] = None

    def __str__(self) -> str:
        return self.uri


@dataclass
class ToolCallPayload:
    """Tool invocation attached to a raw turn."""

    tool_name: str
    arguments: dict = field(default_factory=dict)
    result: Optional[str] = None
    success: Optional[bool] = None

    def to_dict(self) -> dict:
        return {
            "tool_name": self.tool_name,
            "arguments": self.arguments,
            "result": self.result,
            "success": self.success,
        }


@dataclass
class AttachmentPayload:
    """Inline content or external URL attached to a raw turn."""

    type: str  # 'file', 'image', 'url', 'code'
    name: Optional[str] = None
    mime_type: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None


@dataclass
class RawTurn:
    """Single turn in a provider conversation."""

    role: str  # 'user', 'assistant', 'system', 'tool'
    content: str
    timestamp: Optional[datetime] = None
    model: Optional[str] = None
    token_count: Optional[int] = None
    tool_calls: list[ToolCallPayload] = field(default_factory=list)
    attachments: list[AttachmentPayload] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def content_hash(self) -> str:
        """Hash of role, content and tool calls (timestamps excluded)."""
        tool_calls = [tc.to_dict() for tc in self.tool_calls] or None
        return calculate_turn_hash(self.role, self.content, tool_calls)


@dataclass
class ProviderSessionRecord:
    """Unified format for one conversation extracted by a provider adapter."""

    provider: str
    turns: list[RawTurn]
    provider_session_id: Optional[str] = None
    title: Optional[str] = None
    model: Optional[str] = None
    last_modified: Optional[datetime] = None
    workspace_path: Optional[str] = None  # Working directory / project path
    git_branch: Optional[str] = None
    source: Optional[SourceLocation] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def turn_hashes(self) -> list[str]:
        return [turn.content_hash for turn in self.turns]

    @property
    def sequence_hash(self) -> str:
        """Checksum over the full ordered turn sequence."""
        return calculate_sequence_hash(self.turn_hashes)

    @property
    def started_at(self) -> Optional[datetime]:
        """Earliest turn timestamp, if any turn carries one."""
        stamps = [t.timestamp for t in self.turns if t.timestamp is not None]
        return min(stamps) if stamps else None

    def display_title(self) -> str:
        """Explicit title, else the first user turn truncated."""
        if self.title:
            return self.title
        for turn in self.turns:
            if turn.role == "user" and turn.content.strip():
                first_line = turn.content.strip().splitlines()[0]
                return first_line[:120]
        return ""
