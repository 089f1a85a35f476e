#!/usr/bin/env python3
"""Database overview and integrity checks for the game rental store."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from dotenv import load_dotenv
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

load_dotenv()

EXPECTED_TABLES = [
    "Games",
    "GamePlatforms",
    "Users",
    "Rentals",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "Games": ["GameID", "Title", "Genre", "Quantity"],
    "GamePlatforms": ["GameID", "Platform"],
    "Users": ["UserID", "Name", "Email", "PasswordHash", "PasswordSalt", "Role", "Plan", "ActiveRentals"],
    "Rentals": ["RentalID", "GameID", "UserID", "RentalDate", "EndDate", "Status"],
}


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).scalar()


def _rows(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).all()


def _table_exists(engine: Engine, table_name: str) -> bool:
    return inspect(engine).has_table(table_name)


def _column_names(engine: Engine, table_name: str) -> set[str]:
    return {str(column["name"]) for column in inspect(engine).get_columns(table_name)}


def _count_check(engine: Engine, name: str, sql: str) -> CheckResult:
    count = int(_scalar(engine, sql) or 0)
    return CheckResult(name, count == 0, f"count={count}")


def _run_existence_checks(engine: Engine) -> list[CheckResult]:
    results: list[CheckResult] = []
    for table in EXPECTED_TABLES:
        exists = _table_exists(engine, table)
        results.append(CheckResult(f"table:{table}", exists, "present" if exists else "missing"))
    return results


def _run_column_checks(engine: Engine) -> list[CheckResult]:
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if not _table_exists(engine, table):
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = _column_names(engine, table)
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def _run_integrity_checks(engine: Engine) -> list[CheckResult]:
    checks: list[CheckResult] = []

    if _table_exists(engine, "Games"):
        checks.append(
            _count_check(engine, "games:negative_quantity", "SELECT COUNT(*) FROM Games WHERE Quantity < 0")
        )

    if _table_exists(engine, "Users"):
        checks.append(
            _count_check(engine, "users:negative_active_rentals", "SELECT COUNT(*) FROM Users WHERE ActiveRentals < 0")
        )

    if _table_exists(engine, "Users") and _table_exists(engine, "Rentals"):
        # ACTIVE and LATE rentals both hold a copy
        checks.append(
            _count_check(
                engine,
                "users:active_rentals_mismatch",
                """
                SELECT COUNT(*)
                FROM Users u
                WHERE u.ActiveRentals <> (
                    SELECT COUNT(*)
                    FROM Rentals r
                    WHERE r.UserID = u.UserID AND r.Status IN ('ACTIVE', 'LATE')
                )
                """,
            )
        )
        checks.append(
            _count_check(
                engine,
                "rentals:orphan_userid",
                """
                SELECT COUNT(*)
                FROM Rentals r
                LEFT JOIN Users u ON u.UserID = r.UserID
                WHERE u.UserID IS NULL
                """,
            )
        )

    if _table_exists(engine, "Games") and _table_exists(engine, "Rentals"):
        checks.append(
            _count_check(
                engine,
                "rentals:orphan_gameid",
                """
                SELECT COUNT(*)
                FROM Rentals r
                LEFT JOIN Games g ON g.GameID = r.GameID
                WHERE g.GameID IS NULL
                """,
            )
        )
        checks.append(
            _count_check(
                engine,
                "rentals:end_before_start",
                "SELECT COUNT(*) FROM Rentals WHERE EndDate < RentalDate",
            )
        )

    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    for table in EXPECTED_TABLES:
        if not _table_exists(engine, table):
            print(f"{table}: missing")
            continue
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def _print_status_breakdown(engine: Engine) -> None:
    _print_section("Rentals by Status")
    if not _table_exists(engine, "Rentals"):
        print("Rentals: missing")
        return
    for status, count in _rows(engine, "SELECT Status, COUNT(*) FROM Rentals GROUP BY Status ORDER BY Status"):
        print(f"{status}: {int(count or 0)}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Game rental DB overview")
    parser.add_argument("--db-url", default=os.environ.get("GAME_RENTAL_DB_URL", ""))
    args = parser.parse_args()

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("GAME_RENTAL_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    _print_results("Table Existence", _run_existence_checks(engine))
    _print_results("Column Checks", _run_column_checks(engine))
    _print_results("Integrity Checks", _run_integrity_checks(engine))
    _print_row_counts(engine)
    _print_status_breakdown(engine)
    return 0


if __name__ == "__main__":
    sys.exit(main())
