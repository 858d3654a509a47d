"""Fixed-size document chunking and chunk id helpers.

A logical document is stored as one vector per chunk. When a document has a
single chunk its id is the base id; otherwise chunk ids are
``<base>-chunk-<n>`` with ``n`` starting at 1.
"""

import re

_CHUNK_SUFFIX = re.compile(r"-chunk-\d+$")


def chunk_text(text: str, max_chunk_size: int) -> list[str]:
    """Split text into contiguous slices of at most max_chunk_size characters."""
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    if len(text) <= max_chunk_size:
        return [text]
    return [text[i:i + max_chunk_size] for i in range(0, len(text), max_chunk_size)]


def chunk_id(base_id: str, index: int, total: int) -> str:
    if total == 1:
        return base_id
    return f"{base_id}-chunk-{index + 1}"


def base_document_id(vector_id: str) -> str:
    return _CHUNK_SUFFIX.sub("", vector_id)


def belongs_to(vector_id: str, base_id: str) -> bool:
    return vector_id == base_id or vector_id.startswith(f"{base_id}-chunk-")
