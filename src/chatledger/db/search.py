"""
Full-text index over message, document and memory content.

SQLite uses FTS5 virtual tables; PostgreSQL uses ordinary side tables
searched with to_tsvector/plainto_tsquery. Index rows are keyed by the
entity id and are always written through the caller's session, so they
commit or roll back together with the content they index.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import bindparam, event, text
from sqlalchemy.orm import Session

from chatledger.models.db import Base

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FtsTable:
    name: str
    columns: tuple[str, ...]


FTS_TABLES: dict[str, FtsTable] = {
    "message": FtsTable("messages_fts", ("content",)),
    "document": FtsTable("documents_fts", ("name", "content")),
    "memory": FtsTable("memories_fts", ("content",)),
}

SUPPORTED_DIALECTS = ("sqlite", "postgresql")


def _tsvector_expr(table: FtsTable) -> str:
    document = " || ' ' || ".join(f"coalesce({col}, '')" for col in table.columns)
    return f"to_tsvector('simple', {document})"


def create_statements(dialect: str) -> list[str]:
    """DDL for all full-text tables on the given dialect."""
    statements = []
    for table in FTS_TABLES.values():
        columns = ", ".join(table.columns)
        if dialect == "sqlite":
            statements.append(
                f"CREATE VIRTUAL TABLE IF NOT EXISTS {table.name} "
                f"USING fts5(entity_id UNINDEXED, {columns})"
            )
        elif dialect == "postgresql":
            column_defs = ", ".join(f"{col} TEXT" for col in table.columns)
            statements.append(
                f"CREATE TABLE IF NOT EXISTS {table.name} "
                f"(entity_id VARCHAR(64) PRIMARY KEY, {column_defs})"
            )
            statements.append(
                f"CREATE INDEX IF NOT EXISTS idx_{table.name}_tsv "
                f"ON {table.name} USING GIN ({_tsvector_expr(table)})"
            )
    return statements


def drop_statements(dialect: str) -> list[str]:
    if dialect not in SUPPORTED_DIALECTS:
        return []
    return [f"DROP TABLE IF EXISTS {table.name}" for table in FTS_TABLES.values()]


@event.listens_for(Base.metadata, "after_create")
def _create_fts_tables(target, connection, **kw) -> None:
    dialect = connection.dialect.name
    if dialect not in SUPPORTED_DIALECTS:
        logger.warning(f"Full-text search is not available on {dialect}")
        return
    for statement in create_statements(dialect):
        connection.execute(text(statement))


@event.listens_for(Base.metadata, "before_drop")
def _drop_fts_tables(target, connection, **kw) -> None:
    for statement in drop_statements(connection.dialect.name):
        connection.execute(text(statement))


def build_match_query(query: str) -> str:
    """
    Turn free text into an FTS5 MATCH expression.

    Every whitespace-separated token is quoted so FTS5 operators in user
    input are matched literally; tokens are ANDed.
    """
    tokens = [tok for tok in query.split() if tok]
    return " ".join('"' + tok.replace('"', '""') + '"' for tok in tokens)


class FullTextIndex:
    """Maintains and queries the full-text side tables for one session."""

    def __init__(self, session: Session):
        self.session = session
        self.dialect = session.get_bind().dialect.name
        self.enabled = self.dialect in SUPPORTED_DIALECTS

    def _table(self, kind: str) -> FtsTable:
        try:
            return FTS_TABLES[kind]
        except KeyError:
            raise ValueError(
                f"Unknown search kind {kind!r}; expected one of {sorted(FTS_TABLES)}"
            ) from None

    def index(self, kind: str, entity_id, **fields: str | None) -> None:
        """Insert or replace the searchable text for one entity."""
        if not self.enabled:
            return
        table = self._table(kind)
        self.remove(kind, entity_id)
        columns = ", ".join(table.columns)
        params = ", ".join(f":{col}" for col in table.columns)
        values = {col: fields.get(col) or "" for col in table.columns}
        self.session.execute(
            text(
                f"INSERT INTO {table.name} (entity_id, {columns}) "
                f"VALUES (:entity_id, {params})"
            ),
            {"entity_id": str(entity_id), **values},
        )

    def remove(self, kind: str, entity_id) -> None:
        self.remove_many(kind, [entity_id])

    def remove_many(self, kind: str, entity_ids: Iterable) -> None:
        if not self.enabled:
            return
        ids = [str(entity_id) for entity_id in entity_ids]
        if not ids:
            return
        table = self._table(kind)
        statement = text(
            f"DELETE FROM {table.name} WHERE entity_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        self.session.execute(statement, {"ids": ids})

    def search(self, kind: str, query: str, limit: int = 20) -> list[tuple[str, float]]:
        """
        Search one kind of content.

        Returns:
            List of (entity_id, score) pairs, best match first
        """
        table = self._table(kind)
        if not self.enabled or not query.strip():
            return []

        if self.dialect == "sqlite":
            match = build_match_query(query)
            rows = self.session.execute(
                text(
                    f"SELECT entity_id, bm25({table.name}) AS score "
                    f"FROM {table.name} WHERE {table.name} MATCH :match "
                    f"ORDER BY score LIMIT :limit"
                ),
                {"match": match, "limit": limit},
            ).all()
            # bm25() is lower-is-better; flip so callers always sort descending
            return [(row.entity_id, -float(row.score)) for row in rows]

        tsv = _tsvector_expr(table)
        rows = self.session.execute(
            text(
                f"SELECT entity_id, ts_rank({tsv}, plainto_tsquery('simple', :q)) "
                f"AS score FROM {table.name} "
                f"WHERE {tsv} @@ plainto_tsquery('simple', :q) "
                f"ORDER BY score DESC LIMIT :limit"
            ),
            {"q": query, "limit": limit},
        ).all()
        return [(row.entity_id, float(row.score)) for row in rows]

    def count(self, kind: str) -> int:
        if not self.enabled:
            return 0
        table = self._table(kind)
        query = text(f"SELECT COUNT(*) FROM {table.name}")
        return self.session.execute(query).scalar_one()
