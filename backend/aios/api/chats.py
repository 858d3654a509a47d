"""REST API for persisted chats and their messages."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from aios.api.deps import error_detail, get_current_user
from aios.core.config import settings
from aios.core.database import get_session
from aios.models import Chat, Message
from aios.services.auth import AuthUser
from aios.services.orchestrator import count_chat_messages

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatCreate(BaseModel):
    title: str = "Nouvelle conversation"


class ChatUpdate(BaseModel):
    title: str


class MessageCreate(BaseModel):
    role: str
    content: str


def _chat_dict(c: Chat) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "user_id": c.user_id,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


def _message_dict(m: Message) -> dict:
    return {
        "id": m.id,
        "chat_id": m.chat_id,
        "role": m.role,
        "content": m.content,
        "created_at": m.created_at.isoformat(),
    }


def _owned_chat(session: Session, chat_id: str, user: AuthUser) -> Chat:
    chat = session.get(Chat, chat_id)
    if not chat or chat.user_id != user.id:
        logger.debug(f"Chat {chat_id} not found for user {user.id}")
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


@router.get("")
async def list_chats(user: AuthUser = Depends(get_current_user), session: Session = Depends(get_session)):
    chats = session.exec(
        select(Chat).where(Chat.user_id == user.id).order_by(Chat.updated_at.desc())  # type: ignore
    ).all()
    return {"chats": [_chat_dict(c) for c in chats]}


@router.post("")
async def create_chat(
    body: ChatCreate,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    chat = Chat(title=body.title, user_id=user.id)
    session.add(chat)
    session.commit()
    session.refresh(chat)
    return {"chat": _chat_dict(chat)}


@router.get("/{chat_id}")
async def get_chat(chat_id: str, user: AuthUser = Depends(get_current_user), session: Session = Depends(get_session)):
    chat = _owned_chat(session, chat_id, user)
    messages = session.exec(
        select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at, Message.id)  # type: ignore
    ).all()
    return {"chat": _chat_dict(chat), "messages": [_message_dict(m) for m in messages]}


@router.put("/{chat_id}")
async def update_chat(
    chat_id: str,
    body: ChatUpdate,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    chat = _owned_chat(session, chat_id, user)
    chat.title = body.title
    chat.updated_at = datetime.now(timezone.utc)
    session.add(chat)
    session.commit()
    session.refresh(chat)
    return {"chat": _chat_dict(chat)}


@router.delete("/{chat_id}")
async def delete_chat(chat_id: str, user: AuthUser = Depends(get_current_user), session: Session = Depends(get_session)):
    chat = _owned_chat(session, chat_id, user)
    session.delete(chat)  # messages cascade
    session.commit()
    logger.debug(f"Deleted chat {chat_id}")
    return {"success": True}


@router.post("/{chat_id}/messages")
async def add_message(
    chat_id: str,
    body: MessageCreate,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not body.role or not body.content:
        raise HTTPException(status_code=400, detail=error_detail("message_required", "role and content are required"))

    chat = _owned_chat(session, chat_id, user)
    count = count_chat_messages(session, chat_id)
    if count >= settings.max_messages_per_chat:
        raise HTTPException(
            status_code=400,
            detail=error_detail(
                "chat_limit_reached",
                f"This chat has reached the limit of {settings.max_messages_per_chat} messages.",
                messageCount=count,
            ),
        )

    msg = Message(chat_id=chat_id, role=body.role, content=body.content)
    chat.updated_at = datetime.now(timezone.utc)
    session.add(msg)
    session.add(chat)
    session.commit()
    session.refresh(msg)
    return {"message": _message_dict(msg)}
