"""Pinecone data-plane client over its REST API."""

import logging
from typing import Any

import httpx

from aios.core.config import settings
from aios.core.errors import PineconeError

logger = logging.getLogger(__name__)

# Pinecone caps a single query at 10k matches
MAX_TOP_K = 10_000


class PineconeIndex:
    """Thin async client for one Pinecone index host."""

    API_VERSION = "2024-07"

    def __init__(
        self,
        host: str | None = None,
        api_key: str | None = None,
        namespace: str | None = None,
        dimension: int | None = None,
        timeout: float = 30.0,
    ):
        host = host if host is not None else settings.pinecone_index_host
        if host and not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        self._host = host.rstrip("/")
        self._api_key = api_key if api_key is not None else settings.pinecone_api_key
        self.namespace = namespace if namespace is not None else settings.pinecone_namespace
        self.dimension = dimension or settings.embedding_dimension
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._host and self._api_key)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured:
            raise PineconeError(
                "Pinecone not configured. Set AIOS_PINECONE_API_KEY and AIOS_PINECONE_INDEX_HOST."
            )
        return {
            "Api-Key": self._api_key,
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": self.API_VERSION,
        }

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                resp = await client.post(f"{self._host}{path}", headers=headers, json=payload)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise PineconeError(
                    f"Pinecone {path} failed with {e.response.status_code}: {e.response.text}"
                ) from e
            except httpx.HTTPError as e:
                raise PineconeError(f"Pinecone {path} request failed: {e}") from e
            return resp.json() if resp.content else {}

    async def query(self, vector: list[float], top_k: int, include_metadata: bool = True) -> list[dict[str, Any]]:
        data = await self._post("/query", {
            "vector": vector,
            "topK": min(top_k, MAX_TOP_K),
            "includeMetadata": include_metadata,
            "namespace": self.namespace,
        })
        return data.get("matches", [])

    async def list_all(self) -> list[dict[str, Any]]:
        """Every stored vector with metadata, via a max-size query on a zero vector."""
        return await self.query([0.0] * self.dimension, MAX_TOP_K)

    async def upsert(self, vectors: list[dict[str, Any]]) -> int:
        data = await self._post("/vectors/upsert", {"vectors": vectors, "namespace": self.namespace})
        return data.get("upsertedCount", len(vectors))

    async def delete(self, ids: list[str]) -> None:
        if not ids:
            return
        await self._post("/vectors/delete", {"ids": ids, "namespace": self.namespace})

    async def describe_stats(self) -> dict[str, Any]:
        return await self._post("/describe_index_stats", {})
