"""Chat orchestration - one request, one turn.

A turn goes through: quota check, chat length check, retrieval decision,
optional context retrieval, prompt build, model call, memory update and
usage recording. Any failure ends the turn; nothing is retried here.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import func
from sqlmodel import Session, select

from aios.core.config import settings
from aios.core.errors import ChatLimitReachedError, EmptyMessageError, NotFoundError, QuotaExceededError
from aios.models import Chat, Message
from aios.services.files import prepare_file_part
from aios.services.llm.base import BaseLLMProvider
from aios.services.memory import ConversationMemory, Turn, conversation_key
from aios.services.permissions import EffectivePermissions, get_effective_permissions
from aios.services.quota import QuotaStatus, check_quota, increment_usage
from aios.services.rag import build_prompt, should_retrieve
from aios.services.retriever import ContextRetriever

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Tu es un assistant IA professionnel pour un cabinet d'expertise comptable.

Tu as accès à une base documentaire contenant :
- Informations clients (CA, résultats, projets, etc.)
- Données internes du cabinet

RÈGLES :
1. Si CONTEXTE DOCUMENTAIRE fourni → utilise-le pour faits/chiffres précis
2. Pour questions générales (moyennes secteur, conseils) → utilise tes connaissances
3. COMBINE les deux quand pertinent : données clients + expertise comptable

FORMATAGE Markdown systématique :
- **Gras** pour chiffres importants
- Tables pour comparaisons
- Listes pour énumérations

Sois précis, professionnel et pédagogique."""

FILE_SYSTEM_PROMPT = """Tu es un assistant IA professionnel pour un cabinet d'expertise comptable.

Quand on te fournit un fichier (image, audio, vidéo, PDF) :
- ANALYSE le contenu avec précision
- EXTRAIS les informations clés
- STRUCTURE ta réponse clairement
- Pour audio/vidéo : TRANSCRIS puis RÉSUME les points importants

Formatage Markdown :
- **Gras** pour infos critiques
- Listes pour énumérations
- Tables si pertinent

Sois précis et professionnel."""


@dataclass
class ChatTurnResult:
    response: str
    conversation_id: str
    has_context: bool = False
    ui_message: dict | None = None
    file_name: str | None = None


def count_chat_messages(session: Session, chat_id: str) -> int:
    return session.exec(
        select(func.count(Message.id)).where(Message.chat_id == chat_id)
    ).one()


def advisory_notice(message_count: int) -> dict | None:
    """Non-fatal notice shown once as a long chat crosses a threshold."""
    window = settings.notice_window
    if settings.suggest_new_chat_at <= message_count < settings.suggest_new_chat_at + window:
        return {
            "type": "warning",
            "text": f"💡 Ce chat a {message_count} messages. Pour un nouveau sujet, créez un nouveau chat.",
            "count": message_count,
        }
    if settings.warn_long_chat_at <= message_count < settings.warn_long_chat_at + window:
        return {
            "type": "info",
            "text": (
                f"ℹ️ Chat long ({message_count} messages). "
                "Les messages les plus anciens ne sont plus dans le contexte."
            ),
            "count": message_count,
        }
    return None


def check_chat_length(session: Session, chat_id: str | None, user_id: str) -> dict | None:
    """Raise ChatLimitReachedError at the hard cap, else return any advisory notice.

    Chats owned by someone else are reported as missing.
    """
    if not chat_id:
        return None
    chat = session.get(Chat, chat_id)
    if chat is None or chat.user_id != user_id:
        raise NotFoundError("Chat", chat_id)
    count = count_chat_messages(session, chat_id)
    if count >= settings.max_messages_per_chat:
        raise ChatLimitReachedError(count, settings.max_messages_per_chat)
    return advisory_notice(count)


class ChatOrchestrator:
    def __init__(self, llm: BaseLLMProvider, retriever: ContextRetriever, memory: ConversationMemory):
        self.llm = llm
        self.retriever = retriever
        self.memory = memory

    def _admit(self, session: Session, user_id: str) -> tuple[EffectivePermissions, QuotaStatus]:
        permissions = get_effective_permissions(session, user_id)
        quota = check_quota(session, user_id, permissions=permissions)
        if not quota.allowed:
            raise QuotaExceededError(limit=quota.limit, used=quota.used)
        return permissions, quota

    async def run_turn(
        self,
        session: Session,
        user_id: str,
        message: str,
        conversation_id: str = "default",
        force_rag: bool = False,
        chat_id: str | None = None,
    ) -> ChatTurnResult:
        if not message or not message.strip():
            raise EmptyMessageError("Message is required")

        permissions, quota = self._admit(session, user_id)
        ui_message = check_chat_length(session, chat_id, user_id)

        key = conversation_key(user_id, conversation_id)
        async with self.memory.lock(key):
            history = self.memory.get(key)

            needs_context = permissions.can_use_rag and should_retrieve(message, force_rag)
            if force_rag and not permissions.can_use_rag:
                logger.info(f"Forced retrieval ignored for user {user_id} without can_use_rag")
            elif needs_context:
                logger.info(f"Retrieval {'forced by user' if force_rag else 'triggered by message'}")

            context = await self.retriever.retrieve(message) if needs_context else ""
            prompt = build_prompt(message, context)

            reply = await self.llm.chat(history, [prompt], system_instruction=SYSTEM_PROMPT)

            self.memory.append(key, Turn("user", message), Turn("model", reply))

        increment_usage(session, user_id, quota.day)

        return ChatTurnResult(
            response=reply,
            conversation_id=conversation_id,
            has_context=bool(context),
            ui_message=ui_message,
        )

    async def run_file_turn(
        self,
        session: Session,
        user_id: str,
        message: str,
        file_name: str,
        mime_type: str,
        data: bytes,
        conversation_id: str = "default",
        chat_id: str | None = None,
    ) -> ChatTurnResult:
        if not message or not message.strip():
            raise EmptyMessageError("Message is required")

        _, quota = self._admit(session, user_id)
        ui_message = check_chat_length(session, chat_id, user_id)
        file_part = prepare_file_part(file_name, mime_type, data)

        key = conversation_key(user_id, conversation_id)
        async with self.memory.lock(key):
            history = self.memory.get(key)
            reply = await self.llm.chat(history, [file_part, message], system_instruction=FILE_SYSTEM_PROMPT)
            self.memory.append(
                key,
                Turn("user", f"[Fichier: {file_name}] {message}"),
                Turn("model", reply),
            )

        increment_usage(session, user_id, quota.day)

        return ChatTurnResult(
            response=reply,
            conversation_id=conversation_id,
            ui_message=ui_message,
            file_name=file_name,
        )
