"""
Document repository.

Documents are deduplicated by content hash: ingesting content that is
already stored returns the existing document without writing anything.
`chunk_count` is recomputed from the chunk rows before every commit.
"""

import uuid
from typing import List, Optional

from sqlalchemy import func

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import (
    Document,
    DocumentChunk,
    DocumentTag,
    Embedding,
    EmbeddingSource,
    utc_now,
)
from chatledger.utils.hashing import calculate_content_hash
from chatledger.utils.text import chunk_text, estimate_tokens


class DocumentRepository(BaseRepository[Document]):
    """Repository for Document model."""

    def __init__(self, uow):
        super().__init__(Document, uow)

    def get_by_hash(self, content_hash: str) -> Optional[Document]:
        """
        Get document by content hash.

        Args:
            content_hash: SHA-256 hash of the document content

        Returns:
            Document instance or None
        """
        return (
            self.session.query(Document)
            .filter(Document.content_hash == content_hash)
            .order_by(Document.created_at)
            .first()
        )

    def ingest(
        self,
        name: str,
        content: str,
        type: str = "text",
        source_path: Optional[str] = None,
        workspace_id: Optional[uuid.UUID] = None,
        chunk_size: int = 2000,
        chunk_overlap: int = 200,
        metadata: Optional[dict] = None,
    ) -> tuple[Document, bool]:
        """
        Store a document (chunked and indexed) unless identical content exists.

        Returns:
            Tuple of (document, created). created is False for duplicates.
        """
        content_hash = calculate_content_hash(content)
        existing = self.get_by_hash(content_hash)
        if existing is not None:
            return existing, False

        document = self.create(
            name=name,
            type=type,
            content=content,
            content_hash=content_hash,
            source_path=source_path,
            workspace_id=workspace_id,
            token_count=estimate_tokens(content),
            extra_data=metadata or {},
        )
        for chunk in chunk_text(content, chunk_size=chunk_size, overlap=chunk_overlap):
            self.add_chunk(
                document,
                chunk.content,
                start_offset=chunk.start_offset,
                end_offset=chunk.end_offset,
            )
        document.is_indexed = True
        self.uow.search.index("document", document.id, name=name, content=content)
        self.uow.mark_document_dirty(document)
        self.session.flush()
        return document, True

    def add_chunk(
        self,
        document: Document,
        content: str,
        start_offset: Optional[int] = None,
        end_offset: Optional[int] = None,
    ) -> DocumentChunk:
        """Append a chunk at the next chunk_index."""
        current = (
            self.session.query(func.max(DocumentChunk.chunk_index))
            .filter(DocumentChunk.document_id == document.id)
            .scalar()
        )
        chunk = DocumentChunk(
            document_id=document.id,
            chunk_index=0 if current is None else current + 1,
            content=content,
            token_count=estimate_tokens(content),
            start_offset=start_offset,
            end_offset=end_offset,
        )
        self.session.add(chunk)
        self.session.flush()
        self.uow.mark_document_dirty(document)
        return chunk

    def delete_chunk(self, chunk: DocumentChunk) -> None:
        document = self.get(chunk.document_id)
        self.session.query(Embedding).filter(
            Embedding.source_type == EmbeddingSource.CHUNK,
            Embedding.source_id == str(chunk.id),
        ).delete(synchronize_session=False)
        self.session.delete(chunk)
        self.session.flush()
        if document is not None:
            self.uow.mark_document_dirty(document)

    def chunks(self, document_id: uuid.UUID) -> List[DocumentChunk]:
        return (
            self.session.query(DocumentChunk)
            .filter(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index)
            .all()
        )

    def recompute_chunk_count(self, document: Document) -> int:
        count = (
            self.session.query(func.count(DocumentChunk.id))
            .filter(DocumentChunk.document_id == document.id)
            .scalar()
        ) or 0
        if document.chunk_count != count:
            document.chunk_count = count
            document.updated_at = utc_now()
        return count

    def delete(self, id: uuid.UUID) -> bool:
        """Delete a document with its chunks, tags, embeddings and index row."""
        document = self.get(id)
        if document is None:
            return False

        chunk_ids = [
            str(row[0])
            for row in self.session.query(DocumentChunk.id).filter(
                DocumentChunk.document_id == id
            )
        ]
        self.session.query(Embedding).filter(
            (
                (Embedding.source_type == EmbeddingSource.DOCUMENT)
                & (Embedding.source_id == str(id))
            )
            | (
                (Embedding.source_type == EmbeddingSource.CHUNK)
                & Embedding.source_id.in_(chunk_ids)
            )
        ).delete(synchronize_session=False)
        self.session.query(DocumentChunk).filter(
            DocumentChunk.document_id == id
        ).delete(synchronize_session=False)
        self.session.query(DocumentTag).filter(DocumentTag.document_id == id).delete(
            synchronize_session=False
        )
        self.uow.search.remove("document", id)
        self.session.expire(document, ["chunks"])
        self.session.delete(document)
        self.session.flush()
        self.uow.forget_document(id)
        return True
