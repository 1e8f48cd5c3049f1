from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oqta.core import config
from oqta.core.database import Base, get_db, utcnow
from oqta.deps import require_admin
from oqta.integrations.chat_webhook import ChatWebhookError, get_chat_webhook_client
from oqta.models.chat_history import ChatHistory
from oqta.models.chat_session import ChatSession
from oqta.models.invoice import Invoice
from oqta.models.setting import Setting
from oqta.routers.analytics import router as analytics_router
from oqta.routers.chat import router as chat_router
from oqta.routers.dashboard import router as dashboard_router
from oqta.routers.settings import router as settings_router
from tests.fixtures_data import ADMIN_CLAIMS, SESSION_ID


class _FakeWebhook:
    def __init__(self, reply="Hello from OQTA", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def send(self, url, envelope):
        self.calls.append((url, envelope))
        if self.error:
            raise self.error
        return self.reply


def _build_client(webhook=None):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = testing_session_local()

    app = FastAPI()
    app.include_router(settings_router)
    app.include_router(chat_router)
    app.include_router(dashboard_router)
    app.include_router(analytics_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
    app.dependency_overrides[get_chat_webhook_client] = lambda: webhook or _FakeWebhook()
    return TestClient(app), db


def test_settings_bulk_and_single_update():
    client, _ = _build_client()

    bulk = client.put("/api/settings", json={"phone_number": "+971 4 000 0000", "whatsapp_number": "+971500000000"})
    single = client.put("/api/settings/n8n_url", json={"value": "https://n8n.example/webhook/chat"})
    missing_value = client.put("/api/settings/n8n_url", json={})

    assert bulk.json() == {"success": True, "updated": 2}
    assert single.json()["setting"]["value"] == "https://n8n.example/webhook/chat"
    assert missing_value.status_code == 400
    assert client.get("/api/settings").json() == {
        "phone_number": "+971 4 000 0000",
        "whatsapp_number": "+971500000000",
        "n8n_url": "https://n8n.example/webhook/chat",
    }


def test_public_settings_expose_only_contact_keys_and_analytics(monkeypatch):
    client, db = _build_client()
    monkeypatch.setattr(config, "YANDEX_METRIKA_ID", "12345")
    monkeypatch.setattr(config, "GA_MEASUREMENT_ID", "G-TEST")
    db.add_all(
        [
            Setting(key="phone_number", value="+971 4 000 0000"),
            Setting(key="n8n_url", value="https://internal.example"),
        ]
    )
    db.commit()

    body = client.get("/api/settings/public").json()

    assert body == {"phone_number": "+971 4 000 0000", "yandexMetrikaId": "12345", "gaMeasurementId": "G-TEST"}
    assert client.get("/api/analytics/config").json() == {"yandexMetrikaId": "12345", "gaMeasurementId": "G-TEST"}


def test_chat_message_requires_session_id():
    client, _ = _build_client()

    response = client.post("/api/chat/message", json={"message": "hi"})

    assert response.status_code == 400
    assert response.json()["detail"] == "sessionId is required"


def test_chat_message_creates_session_then_bumps_last_message():
    client, db = _build_client()

    first = client.post("/api/chat/message", json={"sessionId": SESSION_ID, "userName": "Amir"})
    started = db.query(ChatSession).one().last_message_at
    second = client.post("/api/chat/message", json={"sessionId": SESSION_ID})

    assert first.status_code == second.status_code == 200
    session = db.query(ChatSession).one()
    assert session.user_name == "Amir"
    assert session.last_message_at >= started


def test_utcnow_is_naive_utc():
    before = datetime.now(timezone.utc).replace(tzinfo=None)
    value = utcnow()

    assert value.tzinfo is None
    assert before <= value <= before + timedelta(seconds=5)


def test_chat_message_is_forwarded_with_fixed_envelope(monkeypatch):
    webhook = _FakeWebhook()
    client, db = _build_client(webhook)
    monkeypatch.setattr(config, "CHAT_WEBHOOK_URL", "https://env.example/webhook")
    db.add(Setting(key="n8n_url", value="https://n8n.example/webhook/chat"))
    db.commit()

    response = client.post(
        "/api/chat/message",
        json={"sessionId": SESSION_ID, "userEmail": "amir@example.com", "message": "What does IFZA cost?"},
    )

    assert response.json()["response"] == "Hello from OQTA"
    url, envelope = webhook.calls[0]
    assert url == "https://n8n.example/webhook/chat"
    assert envelope["chatInput"] == envelope["systemPrompt"] == "What does IFZA cost?"
    assert envelope["chat_id"] == SESSION_ID
    assert envelope["user_email"] == "amir@example.com"
    assert envelope["user_role"] == "user"
    assert envelope["message_id"]


def test_chat_upstream_failure_is_500():
    client, _ = _build_client(_FakeWebhook(error=ChatWebhookError("boom")))

    with patch("oqta.routers.chat.logger") as logger:
        response = client.post("/api/chat/message", json={"sessionId": SESSION_ID, "message": "hi"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to get AI response"
    logger.exception.assert_called_once()


def test_dashboard_stats(monkeypatch):
    client, db = _build_client()
    monkeypatch.setattr(config, "AI_TOKENS_PER_MESSAGE", 100)
    now = utcnow()
    yesterday = now - timedelta(days=2)
    db.add_all(
        [
            ChatSession(id="today", started_at=now, last_message_at=now),
            ChatSession(id="old", started_at=yesterday, last_message_at=yesterday),
            ChatHistory(session_id="today", created_at=now, message={"type": "human", "content": "a"}),
            ChatHistory(session_id="old", created_at=yesterday, message={"type": "human", "content": "b"}),
            ChatHistory(session_id="old", created_at=yesterday, message={"type": "ai", "content": "c"}),
            Invoice(invoice_number="A", amount=Decimal("100.00"), status="paid"),
            Invoice(invoice_number="B", amount=Decimal("50.50"), status="in_progress"),
            Invoice(invoice_number="C", amount=Decimal("10.00"), status="draft"),
        ]
    )
    db.commit()

    stats = client.get("/api/dashboard/stats").json()

    assert stats == {
        "conversationsToday": 1,
        "messagesToday": 1,
        "totalMessages": 3,
        "aiTokens": 300,
        "totalInvoiced": 160.5,
        "totalPaid": 100.0,
        "dealsInProgress": 1,
    }
