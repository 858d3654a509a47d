"""Shared FastAPI dependencies: process-wide clients, auth and permission guards."""

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from aios.core.database import get_session
from aios.core.errors import AuthError, NotFoundError
from aios.services.auth import AuthUser, SupabaseAuth
from aios.services.documents import DocumentService
from aios.services.llm.base import BaseLLMProvider
from aios.services.memory import ConversationMemory
from aios.services.orchestrator import ChatOrchestrator
from aios.services.permissions import EffectivePermissions, get_effective_permissions
from aios.services.retriever import ContextRetriever
from aios.services.vector_store import PineconeIndex

security = HTTPBearer(auto_error=False)


def error_detail(code: str, message: str, **extra) -> dict:
    return {"error": code, "message": message, **extra}


# --- process-wide state, created in the app lifespan ---

def get_memory(request: Request) -> ConversationMemory:
    return request.app.state.memory


def get_llm(request: Request) -> BaseLLMProvider:
    return request.app.state.llm


def get_index(request: Request) -> PineconeIndex:
    return request.app.state.index


def get_auth(request: Request) -> SupabaseAuth:
    return request.app.state.auth


def get_orchestrator(
    llm: BaseLLMProvider = Depends(get_llm),
    index: PineconeIndex = Depends(get_index),
    memory: ConversationMemory = Depends(get_memory),
) -> ChatOrchestrator:
    return ChatOrchestrator(llm, ContextRetriever(llm, index), memory)


def get_document_service(
    llm: BaseLLMProvider = Depends(get_llm),
    index: PineconeIndex = Depends(get_index),
) -> DocumentService:
    return DocumentService(llm, index)


# --- auth ---

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    auth: SupabaseAuth = Depends(get_auth),
) -> AuthUser:
    if not credentials:
        raise HTTPException(status_code=401, detail=error_detail("no_token", "Missing bearer token"))
    try:
        return await auth.get_user(credentials.credentials)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=error_detail(e.code, str(e)))


def get_permissions(
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> EffectivePermissions:
    try:
        return get_effective_permissions(session, user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=403, detail=error_detail("user_not_found", str(e)))


def require_permission(capability: str):
    """Dependency factory rejecting users whose effective capability is false."""

    def _guard(permissions: EffectivePermissions = Depends(get_permissions)) -> EffectivePermissions:
        if not permissions.allows(capability):
            raise HTTPException(
                status_code=403,
                detail=error_detail("permission_denied", "Permission denied", permission=capability),
            )
        return permissions

    return _guard
