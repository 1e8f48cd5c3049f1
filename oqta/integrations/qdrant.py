from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Sequence

from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from oqta.core.config import QDRANT_API_KEY, QDRANT_COLLECTION, QDRANT_URL

logger = logging.getLogger(__name__)

QDRANT_TIMEOUT_SECONDS = 30


class VectorStoreNotConfiguredError(RuntimeError):
    def __init__(self) -> None:
        super().__init__(
            "Qdrant is not configured. Please set QDRANT_URL and QDRANT_API_KEY environment variables."
        )


class VectorStoreError(RuntimeError):
    pass


def _point_id(value: Any) -> Any:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


class VectorStore:
    """Knowledge collection on top of ``AsyncQdrantClient``.

    Points go in and come out as plain ``{id, vector, payload}`` dicts; client
    failures surface as ``VectorStoreError``.
    """

    def __init__(self, client: AsyncQdrantClient, collection: str) -> None:
        self.client = client
        self.collection = collection

    async def aclose(self) -> None:
        await self.client.close()

    async def get_vector_size(self) -> int | None:
        """Dimensionality of the collection's (first) vector config, if discoverable."""
        try:
            info = await self.client.get_collection(collection_name=self.collection)
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise VectorStoreError(f"Qdrant collection {self.collection} unavailable: {exc}") from exc

        vectors = info.config.params.vectors
        if isinstance(vectors, dict):
            # named vectors
            for params in vectors.values():
                if params is not None and params.size:
                    return params.size
            return None
        return vectors.size if vectors is not None else None

    async def scroll(self, *, limit: int, offset: Any = None) -> tuple[list[dict[str, Any]], Any]:
        if offset in ("", 0, "0"):
            offset = None
        try:
            records, next_offset = await self.client.scroll(
                collection_name=self.collection,
                limit=limit,
                offset=_point_id(offset),
                with_payload=True,
                with_vectors=False,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise VectorStoreError(f"Qdrant scroll failed: {exc}") from exc
        return [{"id": record.id, "payload": record.payload or {}} for record in records], next_offset

    async def upsert(self, points: Sequence[dict[str, Any]]) -> None:
        structs = [
            models.PointStruct(id=point["id"], vector=point["vector"], payload=point.get("payload") or {})
            for point in points
        ]
        try:
            await self.client.upsert(collection_name=self.collection, points=structs, wait=True)
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise VectorStoreError(f"Qdrant upsert failed: {exc}") from exc

    async def delete(self, point_ids: Sequence[str]) -> None:
        try:
            await self.client.delete(
                collection_name=self.collection,
                points_selector=models.PointIdsList(points=[_point_id(point_id) for point_id in point_ids]),
                wait=True,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise VectorStoreError(f"Qdrant delete failed: {exc}") from exc


@lru_cache(maxsize=1)
def _shared_store() -> VectorStore:
    logger.info("[KNOWLEDGE] qdrant client initialized collection=%s", QDRANT_COLLECTION)
    client = AsyncQdrantClient(
        url=QDRANT_URL,
        api_key=QDRANT_API_KEY,
        timeout=QDRANT_TIMEOUT_SECONDS,
        check_compatibility=False,
    )
    return VectorStore(client, QDRANT_COLLECTION)


def get_qdrant_client() -> VectorStore | None:
    """One store per process; None when the vector store is not configured."""
    if not QDRANT_URL or not QDRANT_API_KEY:
        return None
    return _shared_store()


async def close_qdrant_client() -> None:
    if _shared_store.cache_info().currsize:
        await _shared_store().aclose()
        _shared_store.cache_clear()
