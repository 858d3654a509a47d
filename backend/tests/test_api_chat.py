"""Tests for the chat endpoints and the turn orchestration behind them."""

from sqlmodel import Session

from aios.core.config import settings
from aios.models import Chat
from aios.services.memory import conversation_key
from aios.services.quota import get_usage, today_key
from tests.conftest import auth_headers, seed_messages, seed_org, seed_user, test_engine


def _employee(user_id="emp", **org_defaults):
    org_defaults.setdefault("default_can_use_rag", True)
    return seed_user(user_id, seed_org(**org_defaults))


def _seed_chat(user_id: str) -> str:
    with Session(test_engine) as s:
        chat = Chat(title="Long chat", user_id=user_id)
        s.add(chat)
        s.commit()
        s.refresh(chat)
        return chat.id


def _usage(user_id):
    with Session(test_engine) as s:
        return get_usage(s, user_id, today_key())


def _store_doc(fake_index, text="CA 2024 de Rousseau: 1,2M€"):
    fake_index.vectors["doc"] = {"id": "doc", "values": [0.0], "metadata": {"source": "bilan.txt", "text": text}}


def test_chat_requires_token(client):
    response = client.post("/api/chat", json={"message": "hi"})
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "no_token"


def test_chat_rejects_invalid_token(client):
    response = client.post("/api/chat", json={"message": "hi"}, headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "invalid_token"


def test_chat_unknown_user_is_forbidden(client, fake_llm):
    response = client.post("/api/chat", json={"message": "hi"}, headers=auth_headers("ghost"))
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "user_not_found"
    assert fake_llm.chat_calls == []


def test_chat_requires_message(client, fake_llm):
    _employee()
    response = client.post("/api/chat", json={"message": "   "}, headers=auth_headers("emp"))
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "message_required"
    assert fake_llm.chat_calls == []


def test_general_question_skips_retrieval(client, fake_llm, fake_index):
    _employee()
    _store_doc(fake_index)
    response = client.post(
        "/api/chat",
        json={"message": "what's a good KPI for retail?", "conversationId": "c1"},
        headers=auth_headers("emp"),
    )
    assert response.status_code == 200
    data = response.json()
    assert data == {
        "response": "Hello from Gemini",
        "conversationId": "c1",
        "hasContext": False,
        "uiMessage": None,
    }
    assert fake_llm.embed_calls == []
    assert fake_llm.chat_calls[0]["parts"] == ["what's a good KPI for retail?"]


def test_entity_question_is_augmented(client, fake_llm, fake_index, memory):
    _employee()
    _store_doc(fake_index)
    response = client.post(
        "/api/chat",
        json={"message": "Quel est le CA de Rousseau ?", "conversationId": "c1"},
        headers=auth_headers("emp"),
    )
    assert response.status_code == 200
    assert response.json()["hasContext"] is True

    prompt = fake_llm.chat_calls[0]["parts"][0]
    assert prompt.startswith("CONTEXTE DOCUMENTAIRE :")
    assert "[Source: bilan.txt]" in prompt
    assert "QUESTION : Quel est le CA de Rousseau ?" in prompt

    # Memory keeps the original message, not the augmented prompt
    history = memory.get(conversation_key("emp", "c1"))
    assert [(t.role, t.text) for t in history] == [
        ("user", "Quel est le CA de Rousseau ?"),
        ("model", "Hello from Gemini"),
    ]


def test_force_rag(client, fake_llm, fake_index):
    _employee()
    _store_doc(fake_index)
    response = client.post(
        "/api/chat",
        json={"message": "what's a good KPI for retail?", "forceRAG": True},
        headers=auth_headers("emp"),
    )
    assert response.json()["hasContext"] is True
    assert fake_llm.embed_calls == ["what's a good KPI for retail?"]


def test_retrieval_needs_capability(client, fake_llm, fake_index):
    _employee(default_can_use_rag=False)
    _store_doc(fake_index)
    response = client.post(
        "/api/chat",
        json={"message": "tell me about Rousseau", "forceRAG": True},
        headers=auth_headers("emp"),
    )
    assert response.status_code == 200
    assert response.json()["hasContext"] is False
    assert fake_llm.embed_calls == []


def test_retrieval_failure_falls_back_to_raw_message(client, fake_llm, fake_index):
    _employee()
    _store_doc(fake_index)
    fake_llm.embed_error = RuntimeError("embedding service down")

    response = client.post("/api/chat", json={"message": "tell me about Rousseau"}, headers=auth_headers("emp"))
    assert response.status_code == 200
    assert response.json()["hasContext"] is False
    assert fake_llm.chat_calls[0]["parts"] == ["tell me about Rousseau"]


def test_history_is_sent_and_windowed(client, fake_llm, memory):
    _employee()
    for i in range(15):
        response = client.post(
            "/api/chat",
            json={"message": f"question {i}", "conversationId": "long"},
            headers=auth_headers("emp"),
        )
        assert response.status_code == 200

    assert len(fake_llm.chat_calls[1]["history"]) == 2
    for call in fake_llm.chat_calls:
        assert len(call["history"]) <= settings.max_history
    assert len(memory.get(conversation_key("emp", "long"))) == settings.max_history
    assert memory.get(conversation_key("emp", "long"))[-2].text == "question 14"


def test_usage_recorded_after_success(client):
    _employee()
    client.post("/api/chat", json={"message": "hi"}, headers=auth_headers("emp"))
    client.post("/api/chat", json={"message": "hi again"}, headers=auth_headers("emp"))
    assert _usage("emp") == 2


def test_quota_exhausted(client, fake_llm):
    _employee(default_daily_prompt_limit=1)
    assert client.post("/api/chat", json={"message": "one"}, headers=auth_headers("emp")).status_code == 200

    response = client.post("/api/chat", json={"message": "two"}, headers=auth_headers("emp"))
    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["error"] == "quota_exceeded"
    assert detail["limit"] == 1
    assert detail["used"] == 1
    assert len(fake_llm.chat_calls) == 1


def test_model_failure_leaves_usage_and_memory_unchanged(client, fake_llm, memory):
    _employee()
    fake_llm.chat_error = RuntimeError("gemini unavailable")

    response = client.post("/api/chat", json={"message": "hi", "conversationId": "c"}, headers=auth_headers("emp"))
    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "upstream_error"
    assert _usage("emp") == 0
    assert memory.get(conversation_key("emp", "c")) == ()


def test_admin_has_no_quota(client):
    seed_user("boss", seed_org(default_daily_prompt_limit=0), role="admin")
    response = client.post("/api/chat", json={"message": "hi"}, headers=auth_headers("boss"))
    assert response.status_code == 200


def test_chat_limit_reached_blocks_model_call(client, fake_llm):
    _employee()
    chat_id = _seed_chat("emp")
    seed_messages(chat_id, settings.max_messages_per_chat)

    response = client.post("/api/chat", json={"message": "hi", "chatId": chat_id}, headers=auth_headers("emp"))
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "chat_limit_reached"
    assert detail["messageCount"] == settings.max_messages_per_chat
    assert fake_llm.chat_calls == []
    assert _usage("emp") == 0


def test_advisory_notices(client):
    _employee()
    chat_id = _seed_chat("emp")

    seed_messages(chat_id, settings.warn_long_chat_at)
    data = client.post("/api/chat", json={"message": "hi", "chatId": chat_id}, headers=auth_headers("emp")).json()
    assert data["uiMessage"]["type"] == "info"
    assert data["uiMessage"]["count"] == settings.warn_long_chat_at

    seed_messages(chat_id, 2)
    data = client.post("/api/chat", json={"message": "hi", "chatId": chat_id}, headers=auth_headers("emp")).json()
    assert data["uiMessage"] is None

    seed_messages(chat_id, settings.suggest_new_chat_at - settings.warn_long_chat_at - 2)
    data = client.post("/api/chat", json={"message": "hi", "chatId": chat_id}, headers=auth_headers("emp")).json()
    assert data["uiMessage"]["type"] == "warning"


def test_clear_history(client, memory):
    _employee()
    client.post("/api/chat", json={"message": "hi", "conversationId": "c"}, headers=auth_headers("emp"))
    assert len(memory.get(conversation_key("emp", "c"))) == 2

    response = client.delete("/api/chat/c", headers=auth_headers("emp"))
    assert response.status_code == 200
    assert memory.get(conversation_key("emp", "c")) == ()

    # Unknown ids are fine too
    assert client.delete("/api/chat/never-seen", headers=auth_headers("emp")).status_code == 200


def _colleagues():
    org_id = seed_org()
    seed_user("alice", org_id)
    seed_user("bob", org_id)


def test_users_do_not_share_history(client, fake_llm, memory):
    _colleagues()
    client.post("/api/chat", json={"message": "alice secret salary 90k"}, headers=auth_headers("alice"))
    response = client.post("/api/chat", json={"message": "hello"}, headers=auth_headers("bob"))

    assert response.json()["conversationId"] == "default"
    assert fake_llm.chat_calls[0]["history"] == []
    assert fake_llm.chat_calls[1]["history"] == []
    assert [t.text for t in memory.get(conversation_key("bob", "default"))] == ["hello", "Hello from Gemini"]


def test_same_conversation_id_is_per_user(client, fake_llm):
    _colleagues()
    for user_id in ("alice", "bob"):
        client.post(
            "/api/chat-with-file",
            data={"message": "Résume", "conversationId": "shared"},
            files={"file": ("notes.txt", b"Bilan", "text/plain")},
            headers=auth_headers(user_id),
        )
    assert [call["history"] for call in fake_llm.chat_calls] == [[], []]


def test_clear_history_requires_token(client, memory):
    _employee()
    client.post("/api/chat", json={"message": "hi", "conversationId": "c"}, headers=auth_headers("emp"))

    response = client.delete("/api/chat/c")
    assert response.status_code == 401
    assert len(memory.get(conversation_key("emp", "c"))) == 2


def test_clear_history_only_touches_own_conversation(client, memory):
    _colleagues()
    client.post("/api/chat", json={"message": "hi", "conversationId": "c"}, headers=auth_headers("alice"))

    assert client.delete("/api/chat/c", headers=auth_headers("bob")).status_code == 200
    assert len(memory.get(conversation_key("alice", "c"))) == 2


def test_chat_id_of_another_user_is_not_found(client, fake_llm):
    _colleagues()
    chat_id = _seed_chat("alice")
    seed_messages(chat_id, settings.max_messages_per_chat)

    response = client.post("/api/chat", json={"message": "hi", "chatId": chat_id}, headers=auth_headers("bob"))
    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["error"] == "chat_not_found"
    assert "messageCount" not in detail
    assert fake_llm.chat_calls == []
    assert _usage("bob") == 0


def test_unknown_chat_id_is_not_found(client, fake_llm):
    _employee()
    response = client.post("/api/chat", json={"message": "hi", "chatId": "nope"}, headers=auth_headers("emp"))
    assert response.status_code == 404
    assert fake_llm.chat_calls == []


def test_chat_with_text_file(client, fake_llm, memory):
    _employee()
    response = client.post(
        "/api/chat-with-file",
        data={"message": "Résume ce fichier", "conversationId": "f"},
        files={"file": ("notes.txt", b"Bilan positif", "text/plain")},
        headers=auth_headers("emp"),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["fileName"] == "notes.txt"
    assert data["response"] == "Hello from Gemini"
    assert fake_llm.chat_calls[0]["parts"] == ["Bilan positif", "Résume ce fichier"]
    assert memory.get(conversation_key("emp", "f"))[0].text == "[Fichier: notes.txt] Résume ce fichier"
    assert _usage("emp") == 1


def test_chat_with_unsupported_file(client, fake_llm):
    _employee()
    response = client.post(
        "/api/chat-with-file",
        data={"message": "Analyse"},
        files={"file": ("a.zip", b"PK", "application/zip")},
        headers=auth_headers("emp"),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "unsupported_file_type"
    assert "application/zip" in response.json()["detail"]["message"]
    assert fake_llm.chat_calls == []


def test_chat_with_oversized_file(client, monkeypatch):
    _employee()
    monkeypatch.setattr(settings, "max_upload_bytes", 4)
    response = client.post(
        "/api/chat-with-file",
        data={"message": "Analyse"},
        files={"file": ("big.txt", b"too large", "text/plain")},
        headers=auth_headers("emp"),
    )
    assert response.status_code == 413
