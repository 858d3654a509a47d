"""Document ingestion and management backed by the vector index."""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from aios.api.deps import (
    error_detail,
    get_current_user,
    get_document_service,
    get_index,
    require_permission,
)
from aios.core.config import settings
from aios.core.errors import FileParseError, NotFoundError, PineconeError, UnsupportedFileTypeError
from aios.services.auth import AuthUser
from aios.services.documents import DocumentService, file_document_id
from aios.services.files import extract_text
from aios.services.permissions import EffectivePermissions
from aios.services.vector_store import PineconeIndex

router = APIRouter()
logger = logging.getLogger(__name__)


class DocumentCreate(BaseModel):
    id: str
    text: str
    source: str = "manual"


class DocumentUpdate(BaseModel):
    text: str
    source: str | None = None


def _upstream_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"{action} failed: {e}")
    return HTTPException(status_code=500, detail=error_detail("upstream_error", f"{action} failed", details=str(e)))


def _not_found(document_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=error_detail("document_not_found", f"Document '{document_id}' not found"))


@router.post("")
async def upload_document(
    body: DocumentCreate,
    _: EffectivePermissions = Depends(require_permission("can_upload_docs")),
    documents: DocumentService = Depends(get_document_service),
):
    if not body.id or not body.text:
        raise HTTPException(status_code=400, detail=error_detail("invalid_document", "id and text are required"))

    logger.info(f"Uploading document: {body.id}")
    try:
        ids = await documents.ingest(body.id, body.text, body.source)
    except Exception as e:
        raise _upstream_error("Document upload", e)

    return {"success": True, "ids": ids, "chunks": len(ids)}


@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    _: EffectivePermissions = Depends(require_permission("can_upload_docs")),
    documents: DocumentService = Depends(get_document_service),
):
    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=error_detail("file_too_large", f"File exceeds {settings.max_upload_bytes} bytes"),
        )

    filename = file.filename or "file"
    logger.info(f"Parsing file: {filename}")
    try:
        text = await extract_text(filename, data, documents.llm)
    except (UnsupportedFileTypeError, FileParseError) as e:
        raise HTTPException(status_code=400, detail=error_detail("unsupported_file_type", str(e)))
    except Exception as e:
        raise _upstream_error("Text extraction", e)

    if not text or not text.strip():
        raise HTTPException(status_code=400, detail=error_detail("empty_file", "File is empty or unreadable"))

    try:
        ids = await documents.ingest(file_document_id(filename), text, source=filename)
    except Exception as e:
        raise _upstream_error("File upload", e)

    return {
        "success": True,
        "ids": ids,
        "chunks": len(ids),
        "characters": len(text),
        "message": f'File "{filename}" added ({len(ids)} chunks, {len(text)} characters)',
    }


@router.get("")
async def list_documents(
    user: AuthUser = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    try:
        docs = await documents.list_documents()
    except PineconeError as e:
        raise _upstream_error("Listing documents", e)
    logger.debug(f"Listed {len(docs)} documents")
    return {"documents": docs}


@router.get("/stats")
async def index_stats(user: AuthUser = Depends(get_current_user), index: PineconeIndex = Depends(get_index)):
    try:
        return await index.describe_stats()
    except PineconeError as e:
        raise _upstream_error("Index stats", e)


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    user: AuthUser = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    try:
        return await documents.get_document(document_id)
    except NotFoundError:
        raise _not_found(document_id)
    except PineconeError as e:
        raise _upstream_error("Reading document", e)


@router.put("/{document_id}")
async def update_document(
    document_id: str,
    body: DocumentUpdate,
    _: EffectivePermissions = Depends(require_permission("can_edit_docs")),
    documents: DocumentService = Depends(get_document_service),
):
    try:
        ids = await documents.replace_document(document_id, body.text, body.source)
    except NotFoundError:
        raise _not_found(document_id)
    except Exception as e:
        raise _upstream_error("Document update", e)
    return {"success": True, "ids": ids, "chunks": len(ids)}


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    _: EffectivePermissions = Depends(require_permission("can_delete_docs")),
    documents: DocumentService = Depends(get_document_service),
):
    try:
        deleted = await documents.delete_document(document_id)
    except NotFoundError:
        raise _not_found(document_id)
    except PineconeError as e:
        raise _upstream_error("Document deletion", e)
    return {"success": True, "deletedChunks": deleted}
