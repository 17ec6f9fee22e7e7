"""Text helpers for document chunking and rough token estimates."""

from dataclasses import dataclass

CHARS_PER_TOKEN = 4.0


def estimate_tokens(text: str) -> int:
    """Character-based token estimate (about 4 characters per token)."""
    if not text:
        return 0
    return max(1, int(len(text) / CHARS_PER_TOKEN))


@dataclass(frozen=True)
class TextChunk:
    index: int
    content: str
    start_offset: int
    end_offset: int


def chunk_text(text: str, chunk_size: int = 2000, overlap: int = 200) -> list[TextChunk]:
    """
    Split text into overlapping chunks, preferring paragraph/line boundaries.

    Args:
        text: Text to split
        chunk_size: Maximum characters per chunk
        overlap: Characters shared between consecutive chunks

    Returns:
        Chunks with their [start, end) character offsets into `text`
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")
    if not text:
        return []

    chunks: list[TextChunk] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            # Back off to the last blank line or newline inside the window
            for separator in ("\n\n", "\n", " "):
                cut = text.rfind(separator, start + chunk_size // 2, end)
                if cut != -1:
                    end = cut + len(separator)
                    break
        chunks.append(TextChunk(len(chunks), text[start:end], start, end))
        if end >= length:
            break
        start = max(end - overlap, start + 1)
    return chunks
