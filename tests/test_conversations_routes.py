import csv
import io
from datetime import timedelta
from unittest.mock import MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oqta.ai.openai_provider import get_summary_provider
from oqta.ai.schema import ConversationSummaryResult
from oqta.ai.service import build_transcript, generate_conversation_summary, message_role
from oqta.core.database import Base, get_db
from oqta.deps import require_admin
from oqta.models.chat_history import ChatHistory
from oqta.models.chat_session import ChatSession
from oqta.models.conversation_summary import ConversationSummary
from oqta.models.customer import Customer
from oqta.models.customer_session import CustomerSession
from oqta.routers.conversations import router as conversations_router
from tests.fixtures_data import ADMIN_CLAIMS, BASE_TIME, SESSION_ID, SUMMARY_RESULT, chat_messages


class _FakeProvider:
    name = "fake"

    def __init__(self, result=None, error=None):
        self.result = result or ConversationSummaryResult.model_validate(SUMMARY_RESULT)
        self.error = error
        self.transcripts = []

    def summarize(self, transcript):
        self.transcripts.append(transcript)
        if self.error:
            raise self.error
        return self.result


def _build_client(provider=None):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = testing_session_local()

    app = FastAPI()
    app.include_router(conversations_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
    app.dependency_overrides[get_summary_provider] = lambda: provider
    return TestClient(app), db


def _add_messages(db, session_id, count, start):
    for index in range(count):
        db.add(
            ChatHistory(
                session_id=session_id,
                created_at=start + timedelta(seconds=index),
                message={"type": "human" if index % 2 == 0 else "ai", "content": f"message {index}"},
            )
        )
    db.commit()


def _seed_sessions(db, total):
    for index in range(total):
        _add_messages(db, f"session-{index:02d}", index % 3 + 1, BASE_TIME + timedelta(minutes=index))


def test_sessions_are_ordered_by_last_message_and_annotated():
    client, db = _build_client()
    _add_messages(db, "older", 2, BASE_TIME)
    _add_messages(db, "newer", 3, BASE_TIME + timedelta(hours=1))
    db.add(ChatSession(id="newer", user_name="Amir", user_email="amir@example.com", started_at=BASE_TIME))
    db.add(ConversationSummary(session_id="newer", customer_name="Amir", summary="s", next_action="n"))
    customer = Customer(name="Amir Haddad")
    db.add(customer)
    db.flush()
    db.add(CustomerSession(customer_id=customer.id, session_id="newer"))
    # registry row without any messages stays invisible
    db.add(ChatSession(id="silent", started_at=BASE_TIME))
    db.commit()

    response = client.get("/api/conversations/sessions")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [item["id"] for item in body["sessions"]] == ["newer", "older"]
    newer, older = body["sessions"]
    assert newer["messageCount"] == 3
    assert newer["userName"] == "Amir"
    assert newer["summary"]["customerName"] == "Amir"
    assert newer["customer"]["name"] == "Amir Haddad"
    assert older["userName"] is None
    assert older["summary"] is None
    assert older["customer"] is None


def test_pagination_pages_are_disjoint_and_exhaustive():
    client, db = _build_client()
    _seed_sessions(db, 7)

    seen = []
    for page in (1, 2, 3):
        body = client.get("/api/conversations/sessions", params={"page": page, "limit": 3}).json()
        assert body["totalPages"] == 3
        assert body["total"] == 7
        assert len(body["sessions"]) <= 3
        seen.extend(item["id"] for item in body["sessions"])

    assert len(seen) == len(set(seen)) == 7
    assert client.get("/api/conversations/sessions", params={"page": 4, "limit": 3}).json()["sessions"] == []


def test_session_detail_returns_messages_in_ascending_order():
    client, db = _build_client()
    rows = chat_messages(SESSION_ID)
    for row in reversed(rows):
        db.add(ChatHistory(**row))
    db.commit()

    response = client.get(f"/api/conversations/sessions/{SESSION_ID}")

    assert response.status_code == 200
    messages = response.json()["messages"]
    timestamps = [message["createdAt"] for message in messages]
    assert timestamps == sorted(timestamps)
    assert messages[0]["type"] == "human"
    assert messages[0]["toolCalls"] == []


def test_session_detail_reads_double_encoded_payloads():
    client, db = _build_client()
    db.add(ChatHistory(session_id="s1", created_at=BASE_TIME, message='{"type": "human", "content": "hello"}'))
    db.commit()

    messages = client.get("/api/conversations/sessions/s1").json()["messages"]

    assert messages[0]["content"] == "hello"


def test_session_detail_unknown_session_is_404():
    client, _ = _build_client()

    response = client.get("/api/conversations/sessions/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"


def test_summary_is_generated_once_then_cached():
    provider = _FakeProvider()
    client, db = _build_client(provider)
    for row in chat_messages(SESSION_ID):
        db.add(ChatHistory(**row))
    db.commit()

    first = client.post(f"/api/conversations/sessions/{SESSION_ID}/summary")
    second = client.post(f"/api/conversations/sessions/{SESSION_ID}/summary")

    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True
    for key in ("customerName", "phoneNumber", "summary", "nextAction"):
        assert first.json()[key] == second.json()[key] == SUMMARY_RESULT[key]
    assert len(provider.transcripts) == 1
    assert db.query(ConversationSummary).count() == 1


class _RacingProvider(_FakeProvider):
    """Stores a competing summary while the model call is still in flight."""

    def __init__(self, db):
        super().__init__()
        self.db = db

    def summarize(self, transcript):
        result = super().summarize(transcript)
        self.db.add(
            ConversationSummary(
                session_id=SESSION_ID,
                customer_name="Winner",
                summary="Stored by the first request.",
                next_action="Nothing further.",
            )
        )
        self.db.commit()
        return result


def test_concurrent_summary_insert_returns_stored_row_as_cached():
    _, db = _build_client()
    for row in chat_messages(SESSION_ID):
        db.add(ChatHistory(**row))
    db.commit()
    provider = _RacingProvider(db)

    outcome = generate_conversation_summary(db, SESSION_ID, provider)

    assert outcome.cached is True
    assert outcome.summary.customer_name == "Winner"
    assert outcome.summary.summary == "Stored by the first request."
    assert len(provider.transcripts) == 1
    assert db.query(ConversationSummary).count() == 1


def test_summary_for_session_without_messages_is_404():
    provider = _FakeProvider()
    client, db = _build_client(provider)

    response = client.post(f"/api/conversations/sessions/{SESSION_ID}/summary")

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"
    assert provider.transcripts == []
    assert db.query(ConversationSummary).count() == 0


def test_summary_without_llm_credentials_is_configuration_error():
    client, db = _build_client(provider=None)
    for row in chat_messages(SESSION_ID):
        db.add(ChatHistory(**row))
    db.commit()

    response = client.post(f"/api/conversations/sessions/{SESSION_ID}/summary")

    assert response.status_code == 500
    assert response.json()["detail"] == "Server configuration error"


def test_summary_provider_failure_is_generic_500():
    client, db = _build_client(_FakeProvider(error=RuntimeError("upstream timeout")))
    for row in chat_messages(SESSION_ID):
        db.add(ChatHistory(**row))
    db.commit()

    response = client.post(f"/api/conversations/sessions/{SESSION_ID}/summary")

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to generate summary"
    assert db.query(ConversationSummary).count() == 0


def test_transcript_maps_human_to_user_and_everything_else_to_assistant():
    rows = [
        MagicMock(message={"type": "human", "content": "hi"}),
        MagicMock(message={"type": "ai", "content": "hello"}),
        MagicMock(message={"type": "tool", "content": "lookup"}),
    ]

    transcript = build_transcript(rows)

    assert transcript == "user: hi\n\nassistant: hello\n\nassistant: lookup"
    assert message_role("human") == "user"
    assert message_role(None) == "assistant"


def test_export_csv_and_json():
    client, db = _build_client()
    _add_messages(db, "exported", 2, BASE_TIME)
    db.add(ConversationSummary(session_id="exported", customer_name="Lina", summary="s", next_action="n"))
    db.commit()

    csv_response = client.get("/api/conversations/export")
    json_response = client.get("/api/conversations/export", params={"format": "json"})

    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(csv_response.text)))
    assert rows[0]["sessionId"] == "exported"
    assert rows[0]["customerName"] == "Lina"
    assert json_response.json()["total"] == 1
    assert json_response.json()["sessions"][0]["messageCount"] == 2
