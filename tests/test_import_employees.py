import json
from unittest.mock import patch

from clocksync.models.models import Employee
from scripts.import_employees import import_employees, load_roster


def write_roster(tmp_path, rows):
    path = tmp_path / "roster.json"
    path.write_text(json.dumps(rows), encoding="utf-8")
    return str(path)


def test_load_roster_skips_invalid_rows(tmp_path):
    path = write_roster(tmp_path, [
        {"account_id": 1, "first_name": "Ana", "cost_centers": {"0": 10}},
        {"first_name": "No id"},
    ])
    records = load_roster(path)
    assert [r.account_id for r in records] == [1]
    assert records[0].cost_centers == {0: 10}


def test_import_employees_counts(tmp_path, db, company, other_company, session_factory, make_employee):
    make_employee(company, 2, first_name="Old")
    make_employee(other_company, 3)
    path = write_roster(tmp_path, [
        {"account_id": 1, "first_name": "Ana", "last_name": "Silva"},
        {"account_id": 2, "first_name": "New"},
        {"account_id": 3, "first_name": "Taken"},
    ])

    with patch("scripts.import_employees.SessionLocal", session_factory):
        counts = import_employees(company.id, path, update_existing=True)

    assert counts == {"created": 1, "updated": 1, "skipped": 0, "failed": 1}
    db.expire_all()
    assert db.query(Employee).filter_by(account_id=2).one().first_name == "New"


def test_import_employees_dry_run(tmp_path, db, company, session_factory):
    path = write_roster(tmp_path, [{"account_id": 1, "first_name": "Ana"}])

    with patch("scripts.import_employees.SessionLocal", session_factory):
        counts = import_employees(company.id, path, dry_run=True)

    assert counts["created"] == 1
    assert db.query(Employee).count() == 0
