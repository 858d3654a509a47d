from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_ENTITY_NAMES = [
    "pétrin", "petrin", "pétrin d'or", "petrin d'or",
    "rousseau", "antoine rousseau",
    "jean moreau", "moreau",
    "nathalie girard", "nathalie",
    "julie martin", "julie",
    "thomas durand", "thomas",
    "expertise rousseau",
    "bella vita", "tech solutions",
]

DEFAULT_CABINET_PHRASES = [
    "notre cabinet", "notre équipe", "notre ca", "notre chiffre",
    "nos clients", "nos projets", "nos honoraires",
    "mon cabinet", "mon client", "mon équipe",
    "our firm", "our team", "our revenue",
    "our client", "our clients", "our projects", "our fees",
    "my firm", "my client", "my team",
]


class Settings(BaseSettings):
    app_name: str = "AIOS Chat"
    debug: bool = False

    # Relational store (Supabase Postgres in production)
    database_url: str = f"sqlite:///{Path(__file__).resolve().parent.parent.parent / 'aios.db'}"

    # LLM
    llm_provider: str = "gemini"
    gemini_api_key: str = ""
    chat_model: str = "gemini-2.5-flash"
    embedding_model: str = "text-embedding-004"
    embedding_dimension: int = 768
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 2048

    # Vector store
    pinecone_api_key: str = ""
    pinecone_index_host: str = ""
    pinecone_namespace: str = ""

    # Auth
    supabase_url: str = ""
    supabase_service_key: str = ""
    admin_secret_code: str = "AIOS-ADMIN-2025"

    # Chat limits
    max_history: int = 20  # sliding window sent to the model
    max_messages_per_chat: int = 200
    suggest_new_chat_at: int = 100
    warn_long_chat_at: int = 50
    notice_window: int = 2

    # Conversation memory cache
    conversation_capacity: int = 1000
    conversation_idle_ttl: float = 6 * 3600

    # Retrieval
    max_chunk_size: int = 8000
    rag_top_k: int = 3
    rag_entity_names: list[str] = DEFAULT_ENTITY_NAMES
    rag_cabinet_phrases: list[str] = DEFAULT_CABINET_PHRASES

    # Uploads
    max_upload_bytes: int = 20 * 1024 * 1024

    # Quota
    quota_timezone: str = "UTC"
    default_daily_prompt_limit: int = 50

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "AIOS_",
    }


settings = Settings()
