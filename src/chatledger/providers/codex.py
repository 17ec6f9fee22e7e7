"""
OpenAI Codex session log adapter.

Codex stores JSONL session logs under ~/.codex/sessions/YYYY/MM/DD/*.jsonl.
Each line contains a JSON object with a `type` and `payload`.
Key record types:
- session_meta: session id, cwd, cli_version, model_provider, originator
- turn_context: model in use for the following turns
- response_item: user/assistant messages, reasoning blocks, function calls
- event_msg: agent_reasoning / agent_message events
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from chatledger.config import settings
from chatledger.exceptions import ExtractionError
from chatledger.models.records import (
    ProviderSessionRecord,
    RawTurn,
    SourceLocation,
    ToolCallPayload,
)
from chatledger.providers.metadata import AdapterMetadata
from chatledger.providers.utils import (
    discover_files,
    extract_text_content,
    optional_str,
    parse_iso_timestamp,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "codex"

# Injected by the CLI ahead of the first real user prompt
_CONTEXT_PREFIXES = ("<environment_context>", "<user_instructions>")


@dataclass
class _CodexRecord:
    timestamp: Optional[datetime]
    type: str
    payload: dict[str, Any]


def _append_thinking(turn: RawTurn, text: str) -> None:
    existing = turn.metadata.get("thinking") or ""
    joiner = "\n\n" if existing else ""
    turn.metadata["thinking"] = existing + joiner + text


class CodexAdapter:
    """Adapter for OpenAI Codex JSONL session logs."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root or settings.codex_sessions_dir).expanduser()
        self._metadata = AdapterMetadata(
            name=PROVIDER_NAME,
            version="1.0.0",
            supported_formats=[".jsonl"],
            priority=60,
            description="OpenAI Codex CLI session logs",
        )

    @property
    def metadata(self) -> AdapterMetadata:
        return self._metadata

    def for_root(self, root: Path) -> "CodexAdapter":
        """Same adapter reading a different directory (or single file)."""
        return type(self)(root=root)

    def discover(self) -> list[SourceLocation]:
        return discover_files(PROVIDER_NAME, self.root, ["*.jsonl"])

    def _load_records(self, location: SourceLocation) -> list[_CodexRecord]:
        records: list[_CodexRecord] = []
        try:
            with Path(location.uri).open("r", encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping invalid JSON line in %s", location.uri)
                        continue
                    if not isinstance(data, dict):
                        continue
                    payload = data.get("payload") or {}
                    if not isinstance(payload, dict):
                        logger.debug(
                            "Skipping line with non-object payload in %s", location.uri
                        )
                        continue

                    ts = data.get("timestamp")
                    try:
                        ts_dt = parse_iso_timestamp(ts) if ts else None
                    except ValueError:
                        ts_dt = None

                    records.append(
                        _CodexRecord(
                            timestamp=ts_dt,
                            type=str(data.get("type") or ""),
                            payload=payload,
                        )
                    )
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(location.uri, str(e)) from e
        return records

    def _build_turns(self, records: list[_CodexRecord]) -> list[RawTurn]:
        turns: list[RawTurn] = []
        model: Optional[str] = None
        pending_calls: dict[str, ToolCallPayload] = {}

        for rec in records:
            payload = rec.payload
            p_type = payload.get("type")

            if rec.type == "turn_context":
                model = optional_str(payload.get("model")) or model
            elif rec.type == "response_item":
                role = payload.get("role")
                if p_type == "message" and role in {"user", "assistant"}:
                    text = extract_text_content(payload.get("content") or [])
                    if role == "user" and text.lstrip().startswith(_CONTEXT_PREFIXES):
                        continue
                    turns.append(
                        RawTurn(
                            role=role,
                            content=text,
                            timestamp=rec.timestamp,
                            model=optional_str(payload.get("model"))
                            or (model if role == "assistant" else None),
                        )
                    )
                elif p_type == "reasoning":
                    summary = [
                        optional_str(item.get("text")) or ""
                        for item in payload.get("summary") or []
                        if isinstance(item, dict) and item.get("type") == "summary_text"
                    ]
                    if turns and turns[-1].role == "assistant" and summary:
                        _append_thinking(turns[-1], "\n".join(summary))
                elif p_type == "function_call":
                    arguments = payload.get("arguments") or {}
                    if isinstance(arguments, str):
                        try:
                            arguments = json.loads(arguments)
                        except json.JSONDecodeError:
                            arguments = {"raw": arguments}
                    if not isinstance(arguments, dict):
                        arguments = {"raw": arguments}
                    call = ToolCallPayload(
                        tool_name=str(payload.get("name") or "unknown"),
                        arguments=arguments,
                    )
                    if not turns or turns[-1].role != "assistant":
                        turns.append(
                            RawTurn(
                                role="assistant",
                                content="",
                                timestamp=rec.timestamp,
                                model=model,
                            )
                        )
                    turns[-1].tool_calls.append(call)
                    call_id = payload.get("call_id")
                    if isinstance(call_id, str) and call_id:
                        pending_calls[call_id] = call
                elif p_type == "function_call_output":
                    call_id = payload.get("call_id")
                    call = (
                        pending_calls.pop(call_id, None)
                        if isinstance(call_id, str)
                        else None
                    )
                    if call is not None:
                        output = payload.get("output")
                        if isinstance(output, dict):
                            success = output.get("success")
                            if isinstance(success, bool):
                                call.success = success
                            output = output.get("content")
                        call.result = output if output is None else str(output)
            elif rec.type == "event_msg" and p_type == "agent_reasoning":
                text = (
                    optional_str(payload.get("text"))
                    or optional_str(payload.get("message"))
                    or ""
                )
                if text and turns and turns[-1].role == "assistant":
                    _append_thinking(turns[-1], text)

        return turns

    def extract(self, location: SourceLocation) -> list[ProviderSessionRecord]:
        records = self._load_records(location)
        if not records:
            raise ExtractionError(location.uri, "Codex log is empty")

        session_meta = next(
            (r for r in records if r.type == "session_meta" and r.payload), None
        )
        if session_meta is None:
            raise ExtractionError(location.uri, "Codex log missing session_meta")

        payload = session_meta.payload
        session_id = payload.get("id") or payload.get("session_id")
        if not session_id:
            raise ExtractionError(location.uri, "Codex session_meta missing id")

        turns = self._build_turns(records)
        timestamps = [r.timestamp for r in records if r.timestamp is not None]
        git = payload.get("git") or {}

        return [
            ProviderSessionRecord(
                provider=PROVIDER_NAME,
                turns=turns,
                provider_session_id=str(session_id),
                model=next((t.model for t in turns if t.model), None),
                last_modified=max(timestamps) if timestamps else location.modified_at,
                workspace_path=optional_str(payload.get("cwd")),
                git_branch=git.get("branch") if isinstance(git, dict) else None,
                source=location,
                metadata={
                    "cli_version": payload.get("cli_version"),
                    "originator": payload.get("originator") or payload.get("source"),
                    "model_provider": payload.get("model_provider"),
                },
            )
        ]


def get_adapter() -> CodexAdapter:
    return CodexAdapter()
