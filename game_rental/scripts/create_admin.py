#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from db.base import Base
from models.enums import SubscriptionPlan, UserRole
from models.rental_models import User
from services.passwords import set_password

load_dotenv()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create an ADMIN user, or promote an existing one, directly from terminal.",
    )
    parser.add_argument("--email", required=True, help="Login email of the admin.")
    parser.add_argument("--name", default=None, help="Display name; required when the user does not exist yet.")
    parser.add_argument(
        "--password",
        default=None,
        help="Password to set (6-20 characters). Required for a new user; optional when promoting.",
    )
    parser.add_argument(
        "--plan",
        choices=[plan.value for plan in SubscriptionPlan],
        default=SubscriptionPlan.LEGEND.value,
        help="Subscription plan for a new user.",
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get("GAME_RENTAL_DB_URL", "").strip(),
        help="SQLAlchemy DB URL; defaults to GAME_RENTAL_DB_URL env var.",
    )
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    email = args.email.strip().lower()
    if not email or "@" not in email:
        parser.error("--email must be a valid email address.")
    if not args.db_url:
        parser.error("Missing DB URL. Set GAME_RENTAL_DB_URL or pass --db-url.")
    if args.password is not None and not 6 <= len(args.password) <= 20:
        parser.error("--password must be 6-20 characters.")

    engine = create_engine(args.db_url, pool_pre_ping=True, future=True)
    Base.metadata.create_all(bind=engine)

    with Session(engine) as db:
        user = db.execute(select(User).where(func.lower(User.Email) == email)).scalars().first()
        created = user is None
        if created:
            if not (args.name or "").strip():
                parser.error("--name is required when creating a new user.")
            if args.password is None:
                parser.error("--password is required when creating a new user.")
            user = User(
                Name=args.name.strip(),
                Email=email,
                Plan=SubscriptionPlan(args.plan),
                ActiveRentals=0,
            )
            db.add(user)
        elif args.name:
            user.Name = args.name.strip()

        user.Role = UserRole.ADMIN
        if args.password is not None:
            set_password(user, args.password)
        db.commit()

        print(
            f"OK user_id={user.UserID} email={user.Email} role={UserRole(user.Role).value} "
            f"plan={SubscriptionPlan(user.Plan).value} created={created}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
