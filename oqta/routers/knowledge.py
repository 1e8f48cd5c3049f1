from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from oqta.core import config
from oqta.deps import require_admin
from oqta.integrations.qdrant import VectorStore, VectorStoreError, VectorStoreNotConfiguredError, get_qdrant_client
from oqta.services.knowledge import UnsupportedFileError, bulk_delete, decode_upload, list_documents, upload_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"], dependencies=[Depends(require_admin)])


class BulkDeletePayload(BaseModel):
    ids: List[str] = []


def _require_client(client: Optional[VectorStore]) -> VectorStore:
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(VectorStoreNotConfiguredError()),
        )
    return client


def _parse_metadata(raw: Any) -> Dict[str, Any]:
    if raw in (None, ""):
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid metadata JSON")
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid metadata JSON")
    return parsed


async def _read_upload_request(request: Request) -> tuple[str, Optional[str], Dict[str, Any]]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        metadata = _parse_metadata(form.get("metadata"))
        upload = form.get("file")
        if isinstance(upload, UploadFile):
            data = await upload.read()
            if len(data) > config.MAX_UPLOAD_BYTES:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File too large (max 10MB)")
            try:
                text = decode_upload(upload.filename, upload.content_type, data)
            except UnsupportedFileError as exc:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
            return text, upload.filename, metadata
        return str(form.get("text") or ""), form.get("filename"), metadata

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    return str(body.get("text") or ""), body.get("filename"), _parse_metadata(body.get("metadata"))


@router.get("/documents")
async def get_documents(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: Optional[str] = Query(default=None),
    client: Optional[VectorStore] = Depends(get_qdrant_client),
):
    qdrant = _require_client(client)
    try:
        return await list_documents(qdrant, limit=limit, offset=offset)
    except VectorStoreError:
        logger.exception("List documents error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch documents from Qdrant")


@router.post("/documents")
async def post_document(request: Request, client: Optional[VectorStore] = Depends(get_qdrant_client)):
    qdrant = _require_client(client)
    text, filename, metadata = await _read_upload_request(request)
    if not text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Text content is required")

    try:
        return await upload_document(qdrant, text=text, filename=filename, metadata=metadata)
    except VectorStoreError:
        logger.exception("Upload document error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload document to Qdrant")


@router.delete("/documents/{document_id}")
async def delete_document(document_id: str, client: Optional[VectorStore] = Depends(get_qdrant_client)):
    qdrant = _require_client(client)
    try:
        await qdrant.delete([document_id])
    except VectorStoreError:
        logger.exception("Delete document error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete document from Qdrant")
    return {"success": True, "message": "Document deleted successfully"}


@router.post("/documents/bulk-delete")
async def bulk_delete_documents(payload: BulkDeletePayload, client: Optional[VectorStore] = Depends(get_qdrant_client)):
    qdrant = _require_client(client)
    if not payload.ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ids are required")
    deleted = await bulk_delete(qdrant, payload.ids)
    return {"success": True, "count": deleted, "message": "Documents deleted successfully"}
