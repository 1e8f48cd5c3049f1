#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from oqta.core.database import engine  # noqa: E402
from oqta.core.startup_checks import find_missing_tables  # noqa: E402

REQUIRED_TABLES = {
    "admin_users",
    "sessions",
    "n8n_chat_histories",
    "settings",
    "customers",
    "invoices",
    "customer_sessions",
    "free_zone_integrations",
    "conversation_summaries",
}


def main() -> int:
    print("Validating database connection...")
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        print(f"Database connection failed: {exc}")
        return 1
    print("Database connection OK")

    missing = find_missing_tables(engine, REQUIRED_TABLES)
    for table in sorted(REQUIRED_TABLES):
        marker = "missing" if table in missing else "ok"
        print(f"  {table}: {marker}")

    if missing:
        print("Missing tables detected. Run: alembic upgrade head")
        return 1
    print("All required tables present")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
