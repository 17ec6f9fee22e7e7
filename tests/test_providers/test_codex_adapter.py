import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from chatledger.exceptions import ExtractionError
from chatledger.providers.codex import CodexAdapter

TS = datetime(2025, 6, 1, 9, 30, tzinfo=UTC).isoformat()


def _write_codex_log(path: Path, lines: list[dict]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for line in lines:
            f.write(json.dumps(line) + "\n")
    return path


def _session_meta(session_id: str = "codex-session-123") -> dict:
    return {
        "timestamp": TS,
        "type": "session_meta",
        "payload": {
            "id": session_id,
            "cwd": "/Users/example/project",
            "originator": "codex_cli",
            "cli_version": "0.63.0",
            "model_provider": "openai",
            "git": {"branch": "feature/x"},
        },
    }


def _message(role: str, text: str) -> dict:
    kind = "input_text" if role == "user" else "output_text"
    return {
        "timestamp": TS,
        "type": "response_item",
        "payload": {
            "type": "message",
            "role": role,
            "content": [{"type": kind, "text": text}],
        },
    }


@pytest.fixture
def basic_log(tmp_path) -> Path:
    return _write_codex_log(
        tmp_path / "2025" / "06" / "01" / "rollout.jsonl",
        [
            _session_meta(),
            {"timestamp": TS, "type": "turn_context", "payload": {"model": "gpt-5"}},
            _message("user", "<environment_context>cwd=/x</environment_context>"),
            _message("user", "Hello Codex"),
            _message("assistant", "Hi there"),
        ],
    )


def test_discover_lists_session_logs(tmp_path, basic_log):
    (tmp_path / "notes.txt").write_text("ignored")
    adapter = CodexAdapter(root=tmp_path)

    locations = adapter.discover()

    assert [loc.uri for loc in locations] == [str(basic_log)]
    assert locations[0].provider == "codex"
    assert locations[0].size_bytes > 0


def test_discover_missing_root_is_empty(tmp_path):
    assert CodexAdapter(root=tmp_path / "nope").discover() == []


def test_extract_basic_log(tmp_path, basic_log):
    adapter = CodexAdapter(root=tmp_path)

    [record] = adapter.extract(adapter.discover()[0])

    assert record.provider == "codex"
    assert record.provider_session_id == "codex-session-123"
    assert record.workspace_path == "/Users/example/project"
    assert record.git_branch == "feature/x"
    assert record.metadata["cli_version"] == "0.63.0"
    assert [(t.role, t.content) for t in record.turns] == [
        ("user", "Hello Codex"),
        ("assistant", "Hi there"),
    ]
    assert record.turns[1].model == "gpt-5"
    assert record.model == "gpt-5"


def test_function_calls_attach_to_assistant_turn(tmp_path):
    log = _write_codex_log(
        tmp_path / "tools.jsonl",
        [
            _session_meta("tools"),
            _message("user", "List files"),
            {
                "timestamp": TS,
                "type": "response_item",
                "payload": {
                    "type": "function_call",
                    "name": "shell",
                    "arguments": '{"command": ["ls"]}',
                    "call_id": "call-1",
                },
            },
            {
                "timestamp": TS,
                "type": "response_item",
                "payload": {
                    "type": "function_call_output",
                    "call_id": "call-1",
                    "output": {"content": "README.md", "success": True},
                },
            },
            {
                "timestamp": TS,
                "type": "response_item",
                "payload": {
                    "type": "reasoning",
                    "summary": [{"type": "summary_text", "text": "Ran ls"}],
                },
            },
        ],
    )

    [record] = CodexAdapter(root=log).extract(CodexAdapter(root=log).discover()[0])

    assistant = record.turns[1]
    assert assistant.role == "assistant"
    assert assistant.content == ""
    [call] = assistant.tool_calls
    assert call.tool_name == "shell"
    assert call.arguments == {"command": ["ls"]}
    assert call.result == "README.md"
    assert call.success is True
    assert assistant.metadata["thinking"] == "Ran ls"


def test_invalid_lines_are_skipped(tmp_path):
    log = tmp_path / "noisy.jsonl"
    _write_codex_log(log, [_session_meta("noisy"), _message("user", "hi")])
    with log.open("a", encoding="utf-8") as f:
        f.write("{not json\n")

    adapter = CodexAdapter(root=log)
    [record] = adapter.extract(adapter.discover()[0])

    assert len(record.turns) == 1


def test_missing_session_meta_is_an_extraction_error(tmp_path):
    log = _write_codex_log(tmp_path / "bad.jsonl", [_message("user", "hi")])
    adapter = CodexAdapter(root=log)

    with pytest.raises(ExtractionError) as excinfo:
        adapter.extract(adapter.discover()[0])

    assert "session_meta" in excinfo.value.reason
    assert excinfo.value.location == str(log)


def test_empty_log_is_an_extraction_error(tmp_path):
    log = tmp_path / "empty.jsonl"
    log.write_text("\n")
    adapter = CodexAdapter(root=log)

    with pytest.raises(ExtractionError):
        adapter.extract(adapter.discover()[0])


def test_for_root_keeps_adapter_type(tmp_path):
    adapter = CodexAdapter(root=tmp_path).for_root(tmp_path / "other")

    assert isinstance(adapter, CodexAdapter)
    assert adapter.root == tmp_path / "other"


def test_lines_with_non_object_payload_are_skipped(tmp_path):
    log = _write_codex_log(
        tmp_path / "odd.jsonl",
        [
            _session_meta("odd"),
            {"timestamp": TS, "type": "response_item", "payload": "oops"},
            {"timestamp": TS, "type": "turn_context", "payload": ["gpt-5"]},
            _message("user", "still here"),
        ],
    )
    adapter = CodexAdapter(root=log)

    [record] = adapter.extract(adapter.discover()[0])

    assert [t.content for t in record.turns] == ["still here"]


def test_mistyped_fields_are_ignored(tmp_path):
    log = _write_codex_log(
        tmp_path / "typed.jsonl",
        [
            _session_meta("typed"),
            {"timestamp": TS, "type": "turn_context", "payload": {"model": 5}},
            _message("user", "run it"),
            {
                "timestamp": TS,
                "type": "response_item",
                "payload": {
                    "type": "function_call",
                    "name": "shell",
                    "arguments": "[1, 2]",
                    "call_id": {"id": 1},
                },
            },
            {
                "timestamp": TS,
                "type": "event_msg",
                "payload": {"type": "agent_reasoning", "text": {"k": 1}},
            },
        ],
    )
    adapter = CodexAdapter(root=log)

    [record] = adapter.extract(adapter.discover()[0])

    assistant = record.turns[-1]
    assert assistant.model is None
    assert assistant.tool_calls[0].arguments == {"raw": [1, 2]}
    assert "thinking" not in assistant.metadata
