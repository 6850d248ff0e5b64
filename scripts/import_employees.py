"""
Import employees from an HR roster export into the time clock tables.

Roster format (JSON list):
    [{"account_id": 1001, "first_name": "Ana", "middle_name": "Maria",
      "last_name": "Silva", "employee_number": "E-17", "active": true,
      "cost_centers": {"0": 10, "2": 30}}]

Usage:
    python scripts/import_employees.py --company-id 1 roster.json [--dry-run] [--update-existing]
"""
import sys
import os
import json
import argparse
from typing import List

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load environment variables before settings are read
from dotenv import load_dotenv
load_dotenv()

from pydantic import ValidationError
from clocksync.db import SessionLocal
from clocksync.logging import setup_logging
from clocksync.models.models import Company
from clocksync.schemas.timeclock import EmployeeImportRecord
from clocksync.services.employees import upsert_employee


def load_roster(path: str) -> List[EmployeeImportRecord]:
    with open(path, "r", encoding="utf-8") as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise ValueError("roster must be a JSON list")
    records = []
    for i, row in enumerate(rows):
        try:
            records.append(EmployeeImportRecord.model_validate(row))
        except ValidationError as e:
            print(f"  ⚠️  row {i}: skipped ({e.error_count()} errors)")
    return records


def import_employees(company_id: int, path: str, dry_run: bool = False, update_existing: bool = False) -> dict:
    counts = {"created": 0, "updated": 0, "skipped": 0, "failed": 0}
    records = load_roster(path)

    db = SessionLocal()
    try:
        company = db.get(Company, company_id)
        if company is None:
            raise SystemExit(f"Company {company_id} not found")

        for record in records:
            try:
                _, action = upsert_employee(db, company.id, record, update_existing=update_existing)
                counts[action] += 1
            except ValueError as e:
                counts["failed"] += 1
                print(f"  ❌ {record.account_id}: {e}")

        if dry_run:
            db.rollback()
            print("Dry run: no changes written")
        else:
            db.commit()
    finally:
        db.close()
    return counts


def main():
    parser = argparse.ArgumentParser(description="Import employees from an HR roster")
    parser.add_argument("roster", help="Path to the roster JSON file")
    parser.add_argument("--company-id", type=int, required=True)
    parser.add_argument("--dry-run", action="store_true", help="Validate without writing")
    parser.add_argument("--update-existing", action="store_true", help="Update names and cost centers of existing employees")
    args = parser.parse_args()

    setup_logging()
    counts = import_employees(args.company_id, args.roster, args.dry_run, args.update_existing)
    print(f"Created: {counts['created']}  Updated: {counts['updated']}  Skipped: {counts['skipped']}  Failed: {counts['failed']}")


if __name__ == "__main__":
    main()
