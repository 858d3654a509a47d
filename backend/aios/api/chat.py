import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel
from sqlmodel import Session

from aios.api.deps import error_detail, get_current_user, get_memory, get_orchestrator
from aios.core.config import settings
from aios.core.database import get_session
from aios.core.errors import (
    ChatLimitReachedError,
    EmptyMessageError,
    FileParseError,
    NotFoundError,
    QuotaExceededError,
    UnsupportedFileTypeError,
)
from aios.services.auth import AuthUser
from aios.services.memory import ConversationMemory, conversation_key
from aios.services.orchestrator import ChatOrchestrator, ChatTurnResult

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    message: str = ""
    conversationId: str = "default"
    forceRAG: bool = False
    chatId: str | None = None


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, EmptyMessageError):
        return HTTPException(status_code=400, detail=error_detail("message_required", "Message is required"))
    if isinstance(e, NotFoundError) and e.what == "Chat":
        return HTTPException(status_code=404, detail=error_detail("chat_not_found", "Chat not found"))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=403, detail=error_detail("user_not_found", str(e)))
    if isinstance(e, QuotaExceededError):
        return HTTPException(
            status_code=429,
            detail=error_detail("quota_exceeded", "Daily quota reached", limit=e.limit, used=e.used),
        )
    if isinstance(e, ChatLimitReachedError):
        return HTTPException(
            status_code=400,
            detail=error_detail("chat_limit_reached", str(e), messageCount=e.message_count),
        )
    if isinstance(e, (UnsupportedFileTypeError, FileParseError)):
        return HTTPException(status_code=400, detail=error_detail("unsupported_file_type", str(e)))

    logger.error(f"Chat turn failed: {e}")
    return HTTPException(status_code=500, detail=error_detail("upstream_error", "Server error", details=str(e)))


def _response(result: ChatTurnResult) -> dict:
    body = {
        "response": result.response,
        "conversationId": result.conversation_id,
        "hasContext": result.has_context,
        "uiMessage": result.ui_message,
    }
    if result.file_name is not None:
        body["fileName"] = result.file_name
    return body


@router.post("/chat")
async def chat(
    body: ChatRequest,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        result = await orchestrator.run_turn(
            session,
            user.id,
            body.message,
            conversation_id=body.conversationId,
            force_rag=body.forceRAG,
            chat_id=body.chatId,
        )
    except Exception as e:
        raise _to_http_error(e)
    return _response(result)


@router.post("/chat-with-file")
async def chat_with_file(
    message: str = Form(""),
    file: UploadFile = File(...),
    conversationId: str = Form("default"),
    chatId: str | None = Form(None),
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=error_detail("file_too_large", f"File exceeds {settings.max_upload_bytes} bytes"),
        )

    filename = file.filename or "file"
    logger.info(f"Chat with file: {filename}")
    try:
        result = await orchestrator.run_file_turn(
            session,
            user.id,
            message,
            file_name=filename,
            mime_type=file.content_type or "application/octet-stream",
            data=data,
            conversation_id=conversationId,
            chat_id=chatId,
        )
    except Exception as e:
        raise _to_http_error(e)
    return _response(result)


@router.delete("/chat/{conversation_id}")
async def clear_chat_history(
    conversation_id: str,
    user: AuthUser = Depends(get_current_user),
    memory: ConversationMemory = Depends(get_memory),
):
    memory.delete(conversation_key(user.id, conversation_id))
    return {"message": "History cleared"}
