from __future__ import annotations

import asyncio
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from oqta.core.config import CHUNK_SIZE_CHARS, DEFAULT_VECTOR_SIZE
from oqta.integrations.qdrant import VectorStore, VectorStoreError

logger = logging.getLogger(__name__)
KNOWLEDGE_PREFIX = "[KNOWLEDGE]"

TEXT_MIME_TYPES = {"application/json", "application/xml"}


class UnsupportedFileError(ValueError):
    pass


def chunk_text(text: str, max_chars: int = CHUNK_SIZE_CHARS) -> list[str]:
    """Greedy word packing into chunks of at most ``max_chars``.

    A word longer than ``max_chars`` becomes a chunk of its own. Joining the
    chunks with single spaces gives back the whitespace-normalised text.
    """
    chunks: list[str] = []
    current: list[str] = []
    current_len = 0
    for word in text.split():
        added = len(word) if not current else current_len + 1 + len(word)
        if current and added > max_chars:
            chunks.append(" ".join(current))
            current, current_len = [word], len(word)
            continue
        current.append(word)
        current_len = added
    if current:
        chunks.append(" ".join(current))
    return chunks


def random_vector(size: int) -> list[float]:
    return [random.random() for _ in range(size)]


def decode_upload(filename: str | None, content_type: str | None, data: bytes) -> str:
    content_type = (content_type or "").split(";")[0].strip().lower()
    if not (content_type.startswith("text/") or content_type in TEXT_MIME_TYPES):
        raise UnsupportedFileError("Invalid file type. Only text-based files are allowed.")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UnsupportedFileError(f"File {filename or ''} is not valid UTF-8 text".strip()) from exc


async def resolve_vector_size(client: VectorStore) -> int:
    try:
        size = await client.get_vector_size()
    except VectorStoreError:
        logger.warning("%s collection metadata unavailable; using default size", KNOWLEDGE_PREFIX)
        return DEFAULT_VECTOR_SIZE
    return size or DEFAULT_VECTOR_SIZE


async def upload_document(
    client: VectorStore,
    *,
    text: str,
    filename: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    chunks = chunk_text(text)
    if not chunks:
        raise ValueError("Text content is required")

    vector_size = await resolve_vector_size(client)
    logger.warning(
        "%s using placeholder random embeddings; replace with a real embedding model", KNOWLEDGE_PREFIX
    )

    document_id = str(uuid.uuid4())
    uploaded_at = datetime.now(timezone.utc).isoformat()
    points = []
    for index, chunk in enumerate(chunks):
        payload = dict(metadata or {})
        payload.update(
            {
                "text": chunk,
                "filename": filename or "manual-entry",
                "documentId": document_id,
                "chunkIndex": index,
                "totalChunks": len(chunks),
                "uploadedAt": uploaded_at,
            }
        )
        points.append({"id": str(uuid.uuid4()), "vector": random_vector(vector_size), "payload": payload})

    await client.upsert(points)
    logger.info(
        "%s uploaded document_id=%s chunks=%s vector_size=%s",
        KNOWLEDGE_PREFIX,
        document_id,
        len(points),
        vector_size,
    )
    return {
        "success": True,
        "documentId": document_id,
        "chunksUploaded": len(points),
        "pointIds": [point["id"] for point in points],
        "message": "Document uploaded successfully",
    }


async def list_documents(client: VectorStore, *, limit: int, offset: Any = None) -> dict[str, Any]:
    points, next_offset = await client.scroll(limit=limit, offset=offset)
    return {
        "documents": [{"id": point.get("id"), "payload": point.get("payload") or {}} for point in points],
        "nextOffset": next_offset,
    }


async def bulk_delete(client: VectorStore, ids: list[str]) -> int:
    results = await asyncio.gather(*(client.delete([point_id]) for point_id in ids), return_exceptions=True)
    failures = [result for result in results if isinstance(result, Exception)]
    if failures:
        logger.warning("%s bulk delete failures=%s first_error=%s", KNOWLEDGE_PREFIX, len(failures), failures[0])
    logger.info("%s bulk delete requested=%s", KNOWLEDGE_PREFIX, len(ids))
    return len(ids)
