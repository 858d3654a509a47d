"""Retrieval of documentary context for a chat message."""

import logging

from aios.core.config import settings
from aios.services.llm.base import BaseLLMProvider
from aios.services.vector_store import PineconeIndex

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n---\n\n"


def format_match(match: dict) -> str:
    metadata = match.get("metadata") or {}
    return f"[Source: {metadata.get('source') or 'Unknown'}]\n{metadata.get('text') or ''}"


class ContextRetriever:
    def __init__(self, llm: BaseLLMProvider, index: PineconeIndex):
        self.llm = llm
        self.index = index

    async def retrieve(self, query: str, top_k: int | None = None) -> str:
        """Return the formatted context block, or "" if anything fails."""
        top_k = top_k or settings.rag_top_k
        try:
            vector = await self.llm.embed(query)
            matches = await self.index.query(vector, top_k)
        except Exception as e:
            logger.warning(f"Context retrieval failed, continuing without context: {e}")
            return ""

        logger.debug(f"Retrieved {len(matches)} matches for query")
        return SEPARATOR.join(format_match(m) for m in matches)
