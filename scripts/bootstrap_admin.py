#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from oqta.core.config import ADMIN_EMAIL, ADMIN_PASSWORD  # noqa: E402
from oqta.core.database import SessionLocal, engine  # noqa: E402
from oqta.services.admin_bootstrap import (  # noqa: E402
    ensure_admin_users_table,
    upsert_admin_user,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or update the dashboard admin.")
    parser.add_argument("--email", default=ADMIN_EMAIL, help="Admin email (defaults to ADMIN_EMAIL)")
    parser.add_argument("--password", default=ADMIN_PASSWORD or None, help="Admin password (defaults to ADMIN_PASSWORD)")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="Overwrite the password of an existing admin",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if not args.email:
        print("Admin email is required (--email or ADMIN_EMAIL).")
        return 1

    try:
        ensure_admin_users_table(engine)
    except RuntimeError as exc:
        print(str(exc))
        return 1

    db = SessionLocal()
    try:
        admin, created = upsert_admin_user(
            db,
            email=args.email,
            password=args.password,
            reset_password=args.reset_password,
        )
    except ValueError as exc:
        print(str(exc))
        return 1
    finally:
        db.close()

    if created:
        action = "created"
    elif args.reset_password and args.password:
        action = "password reset"
    else:
        action = "already exists"
    print(f"Admin {action}: id={admin.id} email={admin.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
