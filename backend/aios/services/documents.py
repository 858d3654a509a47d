"""Document ingestion, listing, reassembly and removal on top of the vector index."""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

from aios.core.config import settings
from aios.core.errors import NotFoundError
from aios.services.chunking import base_document_id, belongs_to, chunk_id, chunk_text
from aios.services.llm.base import BaseLLMProvider
from aios.services.vector_store import PineconeIndex

logger = logging.getLogger(__name__)


def file_document_id(filename: str, now_ms: int | None = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"file-{now_ms}-{re.sub(r'[^a-zA-Z0-9.]', '-', filename)}"


def _chunk_index(match: dict[str, Any]) -> int:
    return int((match.get("metadata") or {}).get("chunkIndex") or 0)


class DocumentService:
    def __init__(self, llm: BaseLLMProvider, index: PineconeIndex):
        self.llm = llm
        self.index = index

    async def ingest(self, base_id: str, text: str, source: str = "manual") -> list[str]:
        """Chunk, embed and upsert a document. Returns the stored chunk ids in order.

        If any chunk fails, the chunks already stored are deleted and the first
        error is raised.
        """
        chunks = chunk_text(text, settings.max_chunk_size)
        total = len(chunks)
        uploaded_at = datetime.now(timezone.utc).isoformat()
        if total > 1:
            logger.info(f"Document '{base_id}' split into {total} chunks")

        async def _store(i: int, chunk: str) -> str:
            cid = chunk_id(base_id, i, total)
            values = await self.llm.embed(chunk)
            await self.index.upsert([{
                "id": cid,
                "values": values,
                "metadata": {
                    "text": chunk,
                    "source": source,
                    "uploadedAt": uploaded_at,
                    "chunkIndex": i,
                    "totalChunks": total,
                },
            }])
            return cid

        results = await asyncio.gather(
            *(_store(i, c) for i, c in enumerate(chunks)), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            stored = [r for r in results if isinstance(r, str)]
            logger.error(f"Ingest of '{base_id}' failed on {len(errors)}/{total} chunks, removing {len(stored)} stored")
            await self.index.delete(stored)
            raise errors[0]

        ids = list(results)
        logger.info(f"Document stored: {', '.join(ids)}")
        return ids

    async def list_documents(self) -> list[dict[str, Any]]:
        documents: dict[str, dict[str, Any]] = {}
        for match in await self.index.list_all():
            base_id = base_document_id(match["id"])
            metadata = match.get("metadata") or {}
            doc = documents.setdefault(base_id, {
                "id": base_id,
                "source": metadata.get("source", "Unknown"),
                "uploadedAt": metadata.get("uploadedAt"),
                "chunks": [],
            })
            doc["chunks"].append({"id": match["id"], "chunkIndex": _chunk_index(match)})

        for doc in documents.values():
            doc["chunks"].sort(key=lambda c: c["chunkIndex"])
            doc["chunkCount"] = len(doc["chunks"])
        return list(documents.values())

    async def _chunks_of(self, base_id: str) -> list[dict[str, Any]]:
        matches = [m for m in await self.index.list_all() if belongs_to(m["id"], base_id)]
        if not matches:
            raise NotFoundError("Document", base_id)
        return sorted(matches, key=_chunk_index)

    async def get_document(self, base_id: str) -> dict[str, Any]:
        chunks = await self._chunks_of(base_id)
        first = chunks[0].get("metadata") or {}
        return {
            "id": base_id,
            "source": first.get("source", "Unknown"),
            "uploadedAt": first.get("uploadedAt"),
            "text": "".join((c.get("metadata") or {}).get("text", "") for c in chunks),
            "chunkCount": len(chunks),
        }

    async def delete_document(self, base_id: str) -> int:
        ids = [c["id"] for c in await self._chunks_of(base_id)]
        await self.index.delete(ids)
        logger.info(f"Deleted {len(ids)} chunks for document '{base_id}'")
        return len(ids)

    async def replace_document(self, base_id: str, text: str, source: str | None = None) -> list[str]:
        """Re-ingest a document under the same base id, dropping stale chunks.

        New chunks reuse the old chunk ids, so a failed re-ingest can leave the
        document with fewer chunks than before.
        """
        existing = await self._chunks_of(base_id)
        source = source or (existing[0].get("metadata") or {}).get("source", "manual")
        new_ids = await self.ingest(base_id, text, source)
        stale = [c["id"] for c in existing if c["id"] not in new_ids]
        await self.index.delete(stale)
        return new_ids
