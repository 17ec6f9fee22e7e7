"""
Full-text search over messages, documents and memories.

Ranking comes from the database's text index (bm25 on SQLite, ts_rank on
PostgreSQL); hits are hydrated into plain dicts for the API and CLI.
"""

import uuid
from dataclasses import dataclass
from typing import Any

from chatledger.db.search import FTS_TABLES
from chatledger.db.store import Store, UnitOfWork
from chatledger.models.db import Document, Memory, Message
from chatledger.sync.serializers import iso, message_to_dict, uid

SEARCH_KINDS = tuple(FTS_TABLES)
_MODELS = {"message": Message, "document": Document, "memory": Memory}
_SNIPPET_CHARS = 200


@dataclass
class SearchHit:
    kind: str
    entity_id: str
    score: float
    entity: dict[str, Any]


def _snippet(content: str) -> str:
    content = " ".join(content.split())
    if len(content) <= _SNIPPET_CHARS:
        return content
    return content[: _SNIPPET_CHARS - 1] + "…"


def _hydrate(kind: str, row: Any) -> dict[str, Any]:
    if kind == "message":
        data = message_to_dict(row)
    elif kind == "document":
        data = {
            "id": uid(row.id),
            "name": row.name,
            "workspace_id": uid(row.workspace_id),
            "content_hash": row.content_hash,
            "type": row.type,
            "chunk_count": row.chunk_count,
            "created_at": iso(row.created_at),
        }
    else:
        data = {
            "id": uid(row.id),
            "type": row.type,
            "importance": row.importance,
            "agent_id": uid(row.agent_id),
            "session_id": uid(row.session_id),
            "workspace_id": uid(row.workspace_id),
            "created_at": iso(row.created_at),
        }
    data["snippet"] = _snippet(row.content or "")
    return data


class SearchService:
    """Read-only full-text search through the store."""

    def __init__(self, store: Store):
        self.store = store

    def search(self, kind: str, query: str, limit: int = 20) -> list[SearchHit]:
        """
        Search one kind of content.

        Raises:
            ValueError: If `kind` is not one of SEARCH_KINDS
        """
        if kind not in _MODELS:
            raise ValueError(f"Unknown search kind {kind!r}; expected {SEARCH_KINDS}")
        model = _MODELS[kind]

        def _search(uow: UnitOfWork) -> list[SearchHit]:
            hits = []
            for entity_id, score in uow.search.search(kind, query, limit):
                row = uow.session.get(model, uuid.UUID(entity_id))
                if row is None:
                    continue
                hits.append(SearchHit(kind, entity_id, score, _hydrate(kind, row)))
            return hits

        return self.store.read(_search)
