import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oqta.core.config import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    CORS_ORIGINS,
    DATABASE_URL,
    DEFAULT_SETTINGS,
    ENV,
    IS_SERVERLESS,
    PORT,
)
from oqta.core.database import Base, SessionLocal, engine, get_db
from oqta.core.logging_setup import configure_logging
from oqta.core.startup_checks import ensure_migrations_applied, find_missing_tables, validate_database_environment
from oqta.integrations.qdrant import close_qdrant_client
from oqta.middleware.observability import ObservabilityMiddleware
from oqta.middleware.rate_limit import RateLimitMiddleware
import oqta.models  # registers every model before create_all

from oqta.models.admin_user import AdminUser
from oqta.models.chat_session import ChatSession
from oqta.models.setting import Setting
from oqta.services.admin_bootstrap import (
    BOOTSTRAP_PREFIX,
    ensure_admin_users_table,
    seed_default_settings,
    upsert_admin_user,
)
from oqta.routers.analytics import router as analytics_router
from oqta.routers.auth import router as auth_router
from oqta.routers.billing import router as billing_router
from oqta.routers.chat import router as chat_router
from oqta.routers.conversations import router as conversations_router
from oqta.routers.customers import router as customers_router
from oqta.routers.dashboard import router as dashboard_router
from oqta.routers.free_zones import router as free_zones_router
from oqta.routers.knowledge import router as knowledge_router
from oqta.routers.settings import router as settings_router
from oqta.routers.telegram import router as telegram_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))
REQUIRED_TABLES = {"admin_users", "sessions", "settings", "n8n_chat_histories", "conversation_summaries"}


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield
    await close_qdrant_client()


app = FastAPI(
    title="OQTA API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(RateLimitMiddleware)


def _bootstrap_admin_from_env() -> None:
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        logger.warning("%s skipped: configure ADMIN_EMAIL and ADMIN_PASSWORD.", BOOTSTRAP_PREFIX)
        return

    db = SessionLocal()
    try:
        admin, created = upsert_admin_user(db, email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        logger.info("%s ready id=%s created=%s", BOOTSTRAP_PREFIX, admin.id, created)
    finally:
        db.close()


def _seed_settings() -> None:
    db = SessionLocal()
    try:
        seed_default_settings(db, DEFAULT_SETTINGS)
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        ensure_admin_users_table(engine)
        _bootstrap_admin_from_env()
        _seed_settings()
    except Exception:
        logger.exception("%s ERROR startup failed", BOOTSTRAP_PREFIX)
        raise


app.include_router(auth_router)
app.include_router(dashboard_router)
app.include_router(conversations_router)
app.include_router(settings_router)
app.include_router(knowledge_router)
app.include_router(chat_router)
app.include_router(customers_router)
app.include_router(billing_router)
app.include_router(free_zones_router)
app.include_router(analytics_router)
app.include_router(telegram_router)


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError:
        logger.exception("health check database probe failed")
        database = "disconnected"
    return {
        "status": "ok" if database == "connected" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": ENV,
        "database": database,
    }


@app.get("/api/db-check")
def db_check(db: Session = Depends(get_db)):
    missing = find_missing_tables(db.get_bind(), REQUIRED_TABLES)
    counts = {}
    if not missing:
        counts = {
            "admins": db.query(AdminUser).count(),
            "sessions": db.query(ChatSession).count(),
            "settings": db.query(Setting).count(),
        }
    return {
        "status": "ok" if not missing else "missing_tables",
        "missingTables": missing,
        "counts": counts,
    }


if __name__ == "__main__" and not IS_SERVERLESS:
    import uvicorn

    uvicorn.run("oqta.main:app", host="0.0.0.0", port=PORT)
