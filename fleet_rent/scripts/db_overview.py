#!/usr/bin/env python3
"""Database overview and integrity checks for the fleet rental store."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine


EXPECTED_TABLES = [
    "Excavators",
    "Rentals",
    "RentalItems",
    "Invoices",
    "InvoiceItems",
    "Timesheets",
    "AuditLogs",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "Excavators": ["ExcavatorID", "Name", "Brand", "RegularRatePerHour", "OvertimeRatePerHour", "Status", "Stock"],
    "Rentals": ["RentalID", "RenterName", "RenterPhone", "StartDate", "EndDate", "DurationDays", "Status", "TotalAmount"],
    "RentalItems": ["RentalItemID", "RentalID", "ExcavatorID", "RegularHours", "OvertimeHours", "TotalPay"],
    "Invoices": ["InvoiceID", "RentalID", "InvoiceNumber", "TotalAmount", "IsPaid"],
    "InvoiceItems": ["InvoiceItemID", "InvoiceID", "DurationDays", "Total"],
    "Timesheets": ["TimesheetID", "ExcavatorID", "WorkDate", "WorkHours", "OvertimeHours", "TotalPay"],
    "AuditLogs": ["AuditID", "EntityType", "EntityID", "Action", "Details", "UserID", "CreatedAt"],
}

INTEGRITY_QUERIES: dict[str, tuple[tuple[str, ...], str]] = {
    "rentals:missing_invoice": (
        ("Rentals", "Invoices"),
        """
        SELECT COUNT(*)
        FROM Rentals r
        LEFT JOIN Invoices i ON i.RentalID = r.RentalID
        WHERE i.InvoiceID IS NULL
        """,
    ),
    "invoices:orphan_rentalid": (
        ("Rentals", "Invoices"),
        """
        SELECT COUNT(*)
        FROM Invoices i
        LEFT JOIN Rentals r ON r.RentalID = i.RentalID
        WHERE r.RentalID IS NULL
        """,
    ),
    "invoices:total_mismatch": (
        ("Rentals", "Invoices"),
        """
        SELECT COUNT(*)
        FROM Invoices i
        JOIN Rentals r ON r.RentalID = i.RentalID
        WHERE i.TotalAmount <> r.TotalAmount
        """,
    ),
    "rentals:end_before_start": (
        ("Rentals",),
        "SELECT COUNT(*) FROM Rentals WHERE EndDate < StartDate",
    ),
    "rentalitems:duplicate_excavator": (
        ("RentalItems",),
        """
        SELECT COUNT(*)
        FROM (
            SELECT RentalID, ExcavatorID
            FROM RentalItems
            GROUP BY RentalID, ExcavatorID
            HAVING COUNT(*) > 1
        ) d
        """,
    ),
    "excavators:negative_rate": (
        ("Excavators",),
        "SELECT COUNT(*) FROM Excavators WHERE RegularRatePerHour < 0 OR OvertimeRatePerHour < 0",
    ),
    "excavators:stock_below_one": (
        ("Excavators",),
        "SELECT COUNT(*) FROM Excavators WHERE Stock IS NULL OR Stock < 1",
    ),
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


def _run_existence_checks(tables: set[str]) -> list[CheckResult]:
    return [
        CheckResult(f"table:{table}", table in tables, "present" if table in tables else "missing")
        for table in EXPECTED_TABLES
    ]


def _run_column_checks(engine: Engine, tables: set[str]) -> list[CheckResult]:
    inspector = inspect(engine)
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in tables:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = {column["name"] for column in inspector.get_columns(table)}
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def _run_integrity_checks(engine: Engine, tables: set[str]) -> list[CheckResult]:
    checks: list[CheckResult] = []
    for name, (required, sql) in INTEGRITY_QUERIES.items():
        if not all(table in tables for table in required):
            checks.append(CheckResult(name, False, "table missing"))
            continue
        count = int(_scalar(engine, sql) or 0)
        checks.append(CheckResult(name, count == 0, f"count={count}"))
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine, tables: set[str]) -> None:
    _print_section("Row Counts")
    for table in EXPECTED_TABLES:
        if table not in tables:
            print(f"{table}: missing")
            continue
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Fleet rental DB overview")
    parser.add_argument("--db-url", default=os.environ.get("FLEET_RENT_DB_URL", ""))
    args = parser.parse_args()

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("FLEET_RENT_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    tables = set(inspect(engine).get_table_names())
    _print_results("Table Existence", _run_existence_checks(tables))
    _print_results("Column Checks", _run_column_checks(engine, tables))
    _print_results("Integrity Checks", _run_integrity_checks(engine, tables))
    _print_row_counts(engine, tables)
    return 0


if __name__ == "__main__":
    sys.exit(main())
