"""Tests for the append-only change log store."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from clocksync.models.models import ChangeRecord
from clocksync.schemas.sync import (
    AddEmployeePayload,
    ChangeKind,
    DeleteEnrollmentPayload,
    UpdateInstallFilterPayload,
)
from clocksync.services import change_log
from clocksync.services.errors import MalformedPayload, NotFound, TransientStoreError


def test_append_assigns_increasing_ids(db, company):
    first = change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    second = change_log.append(db, company.id, ChangeKind.delete_enrollment, DeleteEnrollmentPayload(global_id=9))
    assert second.id > first.id
    assert first.kind == "ADD_EMPLOYEE"
    assert first.data == {"employee_id": 1}
    assert second.data == {"global_id": 9}


def test_append_accepts_dict_payload(db, company):
    record = change_log.append(db, company.id, "UPDATE_INSTALL_FILTER", {"installation_id": 4})
    assert record.kind == "UPDATE_INSTALL_FILTER"
    assert record.data == {"installation_id": 4}


def test_append_rejects_skip(db, company):
    with pytest.raises(ValueError):
        change_log.append(db, company.id, ChangeKind.skip, {"employee_id": 1})


def test_append_rejects_mismatched_payload(db, company):
    with pytest.raises(ValueError):
        change_log.append(db, company.id, ChangeKind.add_employee, UpdateInstallFilterPayload(installation_id=1))


def test_append_rejects_malformed_dict_payload(db, company):
    with pytest.raises(MalformedPayload):
        change_log.append(db, company.id, ChangeKind.add_enrollment, {"employee_id": 1})


def test_append_unknown_company(db):
    with pytest.raises(NotFound):
        change_log.append(db, 999, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))


def test_read_after_returns_ascending_records_past_cursor(db, company):
    ids = [
        change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=n)).id
        for n in range(5)
    ]
    records = change_log.read_after(db, company.id, ids[1])
    assert [r.id for r in records] == ids[2:]


def test_read_after_future_cursor_is_empty(db, company):
    change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    assert change_log.read_after(db, company.id, 10_000_000) == []


@pytest.mark.parametrize("cursor", [2 ** 63 - 1, 2 ** 63, 10 ** 30])
def test_read_after_cursor_beyond_id_range_is_empty(db, company, cursor):
    change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    assert change_log.read_after(db, company.id, cursor) == []


def test_read_after_negative_cursor_reads_everything(db, company):
    record = change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    assert [r.id for r in change_log.read_after(db, company.id, -5)] == [record.id]


def test_read_after_is_scoped_to_company(db, company, other_company):
    mine = change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    change_log.append(db, other_company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=2))
    assert [r.id for r in change_log.read_after(db, company.id, 0)] == [mine.id]


def test_results_shrink_monotonically_as_cursor_grows(db, company, other_company):
    for n in range(6):
        owner = company if n % 2 == 0 else other_company
        change_log.append(db, owner.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=n))

    head = change_log.head(db, company.id)
    previous = None
    for cursor in range(0, head + 2):
        current = {r.id for r in change_log.read_after(db, company.id, cursor)}
        if previous is not None:
            assert current <= previous
        previous = current
    assert previous == set()


def test_head(db, company, other_company):
    assert change_log.head(db, company.id) == 0
    record = change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    change_log.append(db, other_company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=2))
    assert change_log.head(db, company.id) == record.id


def test_append_without_commit_joins_caller_transaction(db, company):
    record = change_log.append(
        db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1), commit=False
    )
    assert record.id is not None
    db.rollback()
    assert db.query(ChangeRecord).count() == 0


def test_read_failure_raises_transient_error(db, company):
    with patch.object(db, "scalars", side_effect=OperationalError("select", {}, Exception("down"))):
        with pytest.raises(TransientStoreError):
            change_log.read_after(db, company.id, 0)


def test_append_failure_rolls_back_and_raises(db, company):
    with patch.object(db, "flush", side_effect=OperationalError("insert", {}, Exception("down"))):
        with pytest.raises(TransientStoreError):
            change_log.append(db, company.id, ChangeKind.add_employee, AddEmployeePayload(employee_id=1))
    assert db.query(ChangeRecord).count() == 0
