"""Shared test fixtures for backend tests."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from aios.core.database import get_session
from aios.core.errors import AuthError
from aios.models import Message, Organization, User
from aios.services.auth import AuthUser
from aios.services.llm.base import BaseLLMProvider

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_test_session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import aios.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session():
    with Session(test_engine) as s:
        yield s


# --- fakes for the external services ---

class FakeLLM(BaseLLMProvider):
    def __init__(self, reply: str = "Hello from Gemini"):
        self.reply = reply
        self.chat_error: Exception | None = None
        self.embed_error: Exception | None = None
        self.chat_calls: list[dict] = []
        self.embed_calls: list[str] = []

    async def chat(self, history, parts, system_instruction=None):
        self.chat_calls.append({
            "history": list(history),
            "parts": list(parts),
            "system_instruction": system_instruction,
        })
        if self.chat_error:
            raise self.chat_error
        return self.reply

    async def embed(self, text):
        self.embed_calls.append(text)
        if self.embed_error:
            raise self.embed_error
        return [0.1, 0.2, 0.3]


class FakeIndex:
    """In-memory stand-in for PineconeIndex; every query returns stored vectors in insertion order."""

    def __init__(self):
        self.vectors: dict[str, dict] = {}

    def _matches(self):
        return [{"id": vid, "score": 1.0, "metadata": v["metadata"]} for vid, v in self.vectors.items()]

    async def query(self, vector, top_k, include_metadata=True):
        return self._matches()[:top_k]

    async def list_all(self):
        return self._matches()

    async def upsert(self, vectors):
        for v in vectors:
            self.vectors[v["id"]] = v
        return len(vectors)

    async def delete(self, ids):
        for vid in ids:
            self.vectors.pop(vid, None)

    async def describe_stats(self):
        return {"totalVectorCount": len(self.vectors)}


class FakeAuth:
    """Accepts tokens of the form ``token-<user id>``."""

    async def get_user(self, token):
        if not token.startswith("token-"):
            raise AuthError("invalid_token", "Invalid token")
        user_id = token.removeprefix("token-")
        return AuthUser(id=user_id, email=f"{user_id}@example.com")


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer token-{user_id}"}


# --- seeding helpers ---

def seed_org(name="Cabinet Rousseau", org_code="ORG-TEST1", **defaults) -> str:
    with Session(test_engine) as s:
        org = Organization(name=name, org_code=org_code, **defaults)
        s.add(org)
        s.commit()
        s.refresh(org)
        return org.id


def seed_user(user_id: str, org_id: str | None, role="employee", **overrides) -> str:
    with Session(test_engine) as s:
        user = User(
            id=user_id,
            email=f"{user_id}@example.com",
            role=role,
            organization_id=org_id,
            **overrides,
        )
        s.add(user)
        s.commit()
        return user_id


def seed_messages(chat_id: str, count: int) -> None:
    with Session(test_engine) as s:
        for i in range(count):
            s.add(Message(chat_id=chat_id, role="user" if i % 2 == 0 else "assistant", content=f"m{i}"))
        s.commit()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_index():
    return FakeIndex()


@pytest.fixture
def client(fake_llm, fake_index):
    """FastAPI TestClient with all external deps patched."""
    with (
        patch("aios.core.database.engine", test_engine),
        patch("aios.main.get_llm_provider", return_value=fake_llm),
        patch("aios.main.PineconeIndex", return_value=fake_index),
        patch("aios.main.SupabaseAuth", return_value=FakeAuth()),
    ):
        from aios.main import app

        # Use FastAPI's dependency override for get_session
        app.dependency_overrides[get_session] = get_test_session

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()


@pytest.fixture
def memory(client):
    return client.app.state.memory
