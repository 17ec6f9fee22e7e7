"""
Generic JSON export adapter.

Reads chat exports already in a provider-neutral shape. A `.json` file holds
one session object or a list of them (optionally wrapped as
{"sessions": [...]}); a `.jsonl` file holds one session object per line.

Session object:
    {
        "id": "abc123",                # or "session_id"; optional
        "provider": "chatgpt",         # optional, defaults to "json-export"
        "title": "...", "model": "...", "updated_at": "...",
        "workspace": "/path/to/project",
        "messages": [
            {"role": "user", "content": "...", "timestamp": "...",
             "model": "...", "token_count": 12,
             "tool_calls": [{"name": "...", "arguments": {}, "result": "..."}],
             "attachments": [{"type": "file", "name": "...", "content": "..."}]}
        ]
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from chatledger.config import settings
from chatledger.exceptions import ExtractionError
from chatledger.models.records import (
    AttachmentPayload,
    ProviderSessionRecord,
    RawTurn,
    SourceLocation,
    ToolCallPayload,
)
from chatledger.providers.metadata import AdapterMetadata
from chatledger.providers.utils import (
    discover_files,
    extract_text_content,
    normalize_role,
    parse_optional_timestamp,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "json-export"


def _checked_str(where: str, value: Any, name: str) -> Optional[str]:
    """A string field, or None when absent; other types are rejected."""
    if value is None or isinstance(value, str):
        return value
    raise ExtractionError(where, f"{name} must be a string, got {type(value).__name__}")


def _checked_dict(where: str, value: Any, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ExtractionError(where, f"{name} must be an object")
    return value


def _checked_token_count(where: str, value: Any, position: int) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ExtractionError(
            where, f"message {position} has invalid token_count {value!r}"
        )
    return value


class JsonExportAdapter:
    """Adapter for directories of provider-neutral JSON/JSONL exports."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root or settings.json_export_dir).expanduser()
        self._metadata = AdapterMetadata(
            name=PROVIDER_NAME,
            version="1.0.0",
            supported_formats=[".json", ".jsonl"],
            priority=40,
            description="Provider-neutral JSON chat exports",
        )

    @property
    def metadata(self) -> AdapterMetadata:
        return self._metadata

    def for_root(self, root: Path) -> "JsonExportAdapter":
        """Same adapter reading a different directory (or single file)."""
        return type(self)(root=root)

    def discover(self) -> list[SourceLocation]:
        return discover_files(PROVIDER_NAME, self.root, ["*.json", "*.jsonl"])

    def _load(self, location: SourceLocation) -> list[Any]:
        path = Path(location.uri)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ExtractionError(location.uri, str(e)) from e

        if path.suffix.lower() == ".jsonl":
            items = []
            for line_no, line in enumerate(text.splitlines(), start=1):
                if not line.strip():
                    continue
                try:
                    items.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise ExtractionError(
                        location.uri, f"invalid JSON on line {line_no}: {e.msg}"
                    ) from e
            return items

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ExtractionError(location.uri, f"invalid JSON: {e.msg}") from e
        if isinstance(data, dict) and isinstance(data.get("sessions"), list):
            return data["sessions"]
        return data if isinstance(data, list) else [data]

    def _tool_calls(self, raw: Any) -> list[ToolCallPayload]:
        calls = []
        for item in raw or []:
            if not isinstance(item, dict):
                continue
            name = item.get("tool_name") or item.get("name")
            if not name:
                continue
            arguments = item.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"raw": arguments}
            if not isinstance(arguments, dict):
                arguments = {"raw": arguments}
            result = item.get("result")
            success = item.get("success")
            calls.append(
                ToolCallPayload(
                    tool_name=str(name),
                    arguments=arguments,
                    result=result if result is None else str(result),
                    success=success if isinstance(success, bool) else None,
                )
            )
        return calls

    def _attachments(self, where: str, raw: Any) -> list[AttachmentPayload]:
        attachments = []
        for item in raw or []:
            if not isinstance(item, dict):
                continue
            attachments.append(
                AttachmentPayload(
                    type=_checked_str(where, item.get("type"), "attachment type")
                    or "file",
                    name=_checked_str(where, item.get("name"), "attachment name"),
                    mime_type=_checked_str(
                        where, item.get("mime_type"), "attachment mime_type"
                    ),
                    content=_checked_str(
                        where, item.get("content"), "attachment content"
                    ),
                    url=_checked_str(where, item.get("url"), "attachment url"),
                )
            )
        return attachments

    def _record(
        self, location: SourceLocation, index: int, data: Any
    ) -> ProviderSessionRecord:
        where = f"{location.uri}#{index}"
        if not isinstance(data, dict):
            raise ExtractionError(where, "session entry is not an object")
        messages = data.get("messages")
        if not isinstance(messages, list):
            raise ExtractionError(where, "missing 'messages' list")

        turns = []
        for position, message in enumerate(messages):
            if not isinstance(message, dict):
                raise ExtractionError(where, f"message {position} is not an object")
            role = normalize_role(message.get("role"))
            if role is None:
                raw_role = message.get("role")
                raise ExtractionError(
                    where, f"message {position} has unknown role {raw_role!r}"
                )
            turns.append(
                RawTurn(
                    role=role,
                    content=extract_text_content(message.get("content")),
                    timestamp=parse_optional_timestamp(
                        message.get("timestamp") or message.get("created_at")
                    ),
                    model=_checked_str(where, message.get("model"), "message model"),
                    token_count=_checked_token_count(
                        where, message.get("token_count"), position
                    ),
                    tool_calls=self._tool_calls(message.get("tool_calls")),
                    attachments=self._attachments(where, message.get("attachments")),
                    metadata=_checked_dict(
                        where, message.get("metadata"), "message metadata"
                    ),
                )
            )

        session_id = data.get("id") or data.get("session_id")
        return ProviderSessionRecord(
            provider=_checked_str(where, data.get("provider"), "provider")
            or PROVIDER_NAME,
            turns=turns,
            provider_session_id=str(session_id) if session_id else None,
            title=_checked_str(where, data.get("title"), "title"),
            model=_checked_str(where, data.get("model"), "model"),
            last_modified=parse_optional_timestamp(data.get("updated_at"))
            or location.modified_at,
            workspace_path=_checked_str(
                where, data.get("workspace") or data.get("cwd"), "workspace"
            ),
            git_branch=_checked_str(where, data.get("git_branch"), "git_branch"),
            source=location,
            metadata=_checked_dict(where, data.get("metadata"), "metadata"),
        )

    def extract(self, location: SourceLocation) -> list[ProviderSessionRecord]:
        records = [
            self._record(location, index, item)
            for index, item in enumerate(self._load(location))
        ]
        logger.debug(f"Extracted {len(records)} session(s) from {location.uri}")
        return records


def get_adapter() -> JsonExportAdapter:
    return JsonExportAdapter()
