import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aios.core.config import settings
from aios.core.database import init_db
from aios.api import chat, chats, documents, organizations, users
from aios.services.auth import SupabaseAuth
from aios.services.llm import get_llm_provider
from aios.services.memory import ConversationMemory
from aios.services.vector_store import PineconeIndex

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    init_db()

    # Process-wide handles; external clients are stateless
    app.state.llm = get_llm_provider()
    app.state.index = PineconeIndex()
    app.state.auth = SupabaseAuth()
    app.state.memory = ConversationMemory(
        window_size=settings.max_history,
        capacity=settings.conversation_capacity,
        idle_ttl=settings.conversation_idle_ttl,
    )
    logger.info(
        f"Chat limits: {settings.max_messages_per_chat} messages/chat, "
        f"{settings.max_history} turn context window"
    )

    yield

    app.state.memory.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(chats.router, prefix="/api/chats", tags=["chats"])
app.include_router(documents.router, prefix="/api/documents", tags=["documents"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(organizations.router, prefix="/api", tags=["organizations"])


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "app": settings.app_name,
        "model": settings.chat_model,
        "pdfSupport": "native",
        "ragToggle": "enabled",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("aios.main:app", host=settings.host, port=settings.port)
