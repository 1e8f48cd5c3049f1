from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oqta.ai.openai_provider import get_summary_provider
from oqta.ai.schema import ConversationSummaryResult
from oqta.ai.service import SummaryOutcome
from oqta.core.database import Base, get_db
from oqta.deps import require_admin
from oqta.integrations.telegram import get_telegram_client
from oqta.models.chat_history import ChatHistory
from oqta.models.conversation_summary import ConversationSummary
from oqta.routers.telegram import router as telegram_router
from oqta.services.telegram_relay import format_summary_message, parse_callback_session_id
from tests.fixtures_data import ADMIN_CLAIMS, SESSION_ID, SUMMARY_RESULT, chat_messages


class _FakeTelegram:
    def __init__(self, configured=True, send_ok=True):
        self.configured = configured
        self.send_ok = send_ok
        self.sent = []
        self.webhooks = []

    async def send_message(self, chat_id, text, *, reply_to_message_id=None):
        self.sent.append({"chat_id": chat_id, "text": text, "reply_to": reply_to_message_id})
        return self.send_ok

    async def set_webhook(self, webhook_url):
        self.webhooks.append(webhook_url)
        return {"ok": True, "result": True}

    async def get_webhook_info(self):
        return {"ok": True, "result": {"url": "https://oqta.example/api/telegram/webhook"}}


class _FakeProvider:
    name = "fake"

    def summarize(self, transcript):
        return ConversationSummaryResult.model_validate(SUMMARY_RESULT)


def _build_client(telegram, provider=None):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = testing_session_local()

    app = FastAPI()
    app.include_router(telegram_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
    app.dependency_overrides[get_telegram_client] = lambda: telegram
    app.dependency_overrides[get_summary_provider] = lambda: provider
    return TestClient(app), db


def _callback(data):
    return {
        "update_id": 1,
        "callback_query": {
            "id": "cb-1",
            "data": data,
            "message": {"message_id": 42, "chat": {"id": 1001}},
        },
    }


def test_parse_callback_session_id():
    assert parse_callback_session_id(f"summary:{SESSION_ID}") == SESSION_ID
    assert parse_callback_session_id(SESSION_ID.upper()) == SESSION_ID.upper()
    assert parse_callback_session_id("summary:not-a-uuid") is None
    assert parse_callback_session_id(None) is None


def test_format_summary_message_escapes_html():
    summary = ConversationSummary(
        session_id=SESSION_ID,
        customer_name="<Amir>",
        phone_number=None,
        summary="Needs a visa & office",
        next_action="Call back",
    )

    text = format_summary_message(SummaryOutcome(summary=summary, cached=True))

    assert text.startswith("<b>📊 Conversation Summary</b>")
    assert "&lt;Amir&gt;" in text
    assert "visa &amp; office" in text
    assert text.endswith("<i>📝 Note: This is a cached summary</i>")


def test_format_summary_message_hides_unknown_customer():
    summary = ConversationSummary(session_id=SESSION_ID, customer_name="Unknown", summary="s", next_action="n")

    text = format_summary_message(SummaryOutcome(summary=summary, cached=False))

    assert "Customer:" not in text
    assert "cached" not in text


def test_callback_generates_and_sends_summary():
    telegram = _FakeTelegram()
    client, db = _build_client(telegram, _FakeProvider())
    for row in chat_messages(SESSION_ID):
        db.add(ChatHistory(**row))
    db.commit()

    response = client.post("/api/telegram/webhook", json=_callback(f"summary:{SESSION_ID}"))

    assert response.status_code == 200
    assert response.json() == {"success": True, "sessionId": SESSION_ID}
    assert telegram.sent[0]["chat_id"] == 1001
    assert telegram.sent[0]["reply_to"] == 42
    assert "Amir Haddad" in telegram.sent[0]["text"]
    assert db.query(ConversationSummary).count() == 1


def test_callback_with_invalid_session_id_notifies_chat():
    telegram = _FakeTelegram()
    client, _ = _build_client(telegram, _FakeProvider())

    response = client.post("/api/telegram/webhook", json=_callback("summary:123"))

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Invalid session ID"}
    assert telegram.sent[0]["text"] == "❌ Invalid session ID format"


def test_callback_for_unknown_session_reports_error_to_chat():
    telegram = _FakeTelegram()
    client, _ = _build_client(telegram, _FakeProvider())

    response = client.post("/api/telegram/webhook", json=_callback(SESSION_ID))

    assert response.status_code == 500
    assert response.json()["error"] == "Session not found"
    assert telegram.sent[0]["text"] == "❌ Error generating summary: Session not found"


def test_failed_send_returns_500():
    telegram = _FakeTelegram(send_ok=False)
    client, db = _build_client(telegram, _FakeProvider())
    for row in chat_messages(SESSION_ID):
        db.add(ChatHistory(**row))
    db.commit()

    response = client.post("/api/telegram/webhook", json=_callback(SESSION_ID))

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to send message"


def test_non_string_callback_data_is_rejected_as_invalid():
    telegram = _FakeTelegram()
    client, _ = _build_client(telegram, _FakeProvider())

    response = client.post("/api/telegram/webhook", json=_callback(12345))

    assert parse_callback_session_id(12345) is None
    assert parse_callback_session_id({"session": SESSION_ID}) is None
    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Invalid session ID"}
    assert telegram.sent[0]["text"] == "❌ Invalid session ID format"


def test_unexpected_database_error_is_reported_to_chat():
    telegram = _FakeTelegram()
    client, db = _build_client(telegram, _FakeProvider())
    Base.metadata.drop_all(bind=db.get_bind())

    response = client.post("/api/telegram/webhook", json=_callback(SESSION_ID))

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
    assert telegram.sent[0]["chat_id"] == 1001
    assert telegram.sent[0]["text"] == "❌ Error generating summary: Internal server error"


def test_plain_message_and_unknown_update_are_acknowledged():
    telegram = _FakeTelegram()
    client, _ = _build_client(telegram)

    message = client.post(
        "/api/telegram/webhook",
        json={"update_id": 2, "message": {"chat": {"id": 5}, "text": "hi"}},
    )
    other = client.post("/api/telegram/webhook", json={"update_id": 3, "edited_message": {}})

    assert message.json() == {"success": True, "message": "Message received"}
    assert other.json() == {"success": True, "message": "Update received"}
    assert telegram.sent == []


def test_missing_bot_token_is_500():
    client, _ = _build_client(_FakeTelegram(configured=False))

    response = client.post("/api/telegram/webhook", json=_callback(SESSION_ID))

    assert response.status_code == 500
    assert response.json()["detail"] == "TELEGRAM_BOT_TOKEN not configured"


def test_set_webhook_and_info():
    telegram = _FakeTelegram()
    client, _ = _build_client(telegram)

    missing = client.post("/api/telegram/set-webhook", json={})
    registered = client.post(
        "/api/telegram/set-webhook",
        json={"webhookUrl": "https://oqta.example/api/telegram/webhook"},
    )
    info = client.get("/api/telegram/webhook-info")

    assert missing.status_code == 400
    assert registered.json()["success"] is True
    assert telegram.webhooks == ["https://oqta.example/api/telegram/webhook"]
    assert info.json()["info"]["url"].endswith("/api/telegram/webhook")
