from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oqta.core.database import Base, get_db
from oqta.models.admin_user import AdminUser
from oqta.models.setting import Setting
from oqta.services.admin_bootstrap import seed_default_settings, upsert_admin_user
from oqta.services.passwords import verify_password


REQUIRED_ROUTES = {
    "/api/health",
    "/api/db-check",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/verify",
    "/api/dashboard/stats",
    "/api/conversations/sessions",
    "/api/conversations/sessions/{session_id}",
    "/api/conversations/sessions/{session_id}/summary",
    "/api/conversations/export",
    "/api/settings",
    "/api/settings/public",
    "/api/settings/{key}",
    "/api/knowledge/documents",
    "/api/knowledge/documents/{document_id}",
    "/api/knowledge/documents/bulk-delete",
    "/api/chat/message",
    "/api/customers",
    "/api/customers/export",
    "/api/customers/link-session",
    "/api/customers/sessions/{link_id}",
    "/api/billing",
    "/api/billing/{invoice_id}/send",
    "/api/free-zones",
    "/api/analytics/config",
    "/api/telegram/webhook",
    "/api/telegram/set-webhook",
    "/api/telegram/webhook-info",
}


def _memory_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


def test_api_startup_and_router_registration(monkeypatch):
    from oqta import main

    engine, testing_session_local = _memory_engine()
    db = testing_session_local()
    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    main.app.dependency_overrides[get_db] = lambda: db
    try:
        with TestClient(main.app) as client:
            health = client.get("/api/health")
            db_check = client.get("/api/db-check")
            openapi_response = client.get("/openapi.json")
    finally:
        main.app.dependency_overrides.clear()

    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["database"] == "connected"
    assert "X-Request-ID" in health.headers
    assert db_check.json()["missingTables"] == []
    assert db_check.json()["counts"] == {"admins": 0, "sessions": 0, "settings": 0}
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_startup_tasks_bootstrap_admin_and_settings(monkeypatch):
    from oqta import main

    engine, testing_session_local = _memory_engine()
    monkeypatch.setattr(main, "engine", engine)
    monkeypatch.setattr(main, "SessionLocal", testing_session_local)
    monkeypatch.setattr(main, "ADMIN_EMAIL", "Admin@OQTA.ai")
    monkeypatch.setattr(main, "ADMIN_PASSWORD", "boot-pass")
    monkeypatch.setattr(main, "DEFAULT_SETTINGS", {"phone_number": "+971 4 000 0000", "n8n_url": ""})

    main._startup_tasks()
    main._startup_tasks()

    db = testing_session_local()
    admins = db.query(AdminUser).all()
    assert [admin.email for admin in admins] == ["admin@oqta.ai"]
    assert verify_password("boot-pass", admins[0].password_hash)
    assert {row.key: row.value for row in db.query(Setting).all()} == {"phone_number": "+971 4 000 0000"}


def test_upsert_admin_user_resets_password_only_when_asked():
    _, testing_session_local = _memory_engine()
    db = testing_session_local()

    admin, created = upsert_admin_user(db, email="ops@oqta.ai", password="first")
    same, created_again = upsert_admin_user(db, email="OPS@oqta.ai", password="second")
    reset, _ = upsert_admin_user(db, email="ops@oqta.ai", password="third", reset_password=True)

    assert created is True
    assert created_again is False
    assert same.id == admin.id
    assert verify_password("third", reset.password_hash)


def test_seed_default_settings_never_overwrites():
    _, testing_session_local = _memory_engine()
    db = testing_session_local()
    db.add(Setting(key="whatsapp_number", value="+971 custom"))
    db.commit()

    created = seed_default_settings(db, {"whatsapp_number": "+971 default", "phone_number": "+971 4"})

    assert created == 1
    assert db.query(Setting).filter(Setting.key == "whatsapp_number").one().value == "+971 custom"
