"""
Sync reader.

Turns the company change log after an installation's cursor into the
installation-specific stream it should apply:

- ADD_EMPLOYEE / ADD_ENROLLMENT are resolved against current state and
  filtered by the installation's employee filter (or skipped when stale).
- DELETE_EMPLOYEE / DELETE_ENROLLMENT always pass through, so a clock can drop
  records it synced under an older filter.
- UPDATE_INSTALL_FILTER for this installation is answered with a full snapshot
  of the employees it should now hold, and every later record in the same read
  becomes SKIP. Replaying older deltas after the snapshot could re-add
  employees the new filter excludes.

Every stored record yields exactly one entry, so the highest id returned is
always a safe next cursor.
"""
from typing import Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import Employee, Enrollment, Installation
from ..schemas.sync import (
    AddEmployeePayload,
    AddEnrollmentPayload,
    ChangeKind,
    DeleteEmployeePayload,
    DeleteEnrollmentPayload,
    EmployeeFilter,
    UpdateInstallFilterPayload,
    decode_payload,
)
from ..schemas.timeclock import SyncChange
from . import change_log
from .employees import (
    employee_to_dict,
    enrollment_to_dict,
    get_employee,
    get_enrollment,
    list_employees,
    list_enrollments,
)
from .errors import MalformedPayload, TransientStoreError
from .filters import parse_filter, visible

logger = structlog.get_logger(__name__)


class _Resolver:
    """Per-sync memo of entity lookups; never shared between reads."""

    def __init__(self, db: Session):
        self.db = db
        self._employees: Dict[int, Optional[Employee]] = {}
        self._enrollments: Dict[int, List[Enrollment]] = {}

    def employee(self, account_id: int) -> Optional[Employee]:
        if account_id not in self._employees:
            self._employees[account_id] = get_employee(self.db, account_id)
        return self._employees[account_id]

    def active_enrollments(self, account_id: int) -> List[Enrollment]:
        if account_id not in self._enrollments:
            self._enrollments[account_id] = list_enrollments(self.db, account_id, active_only=True)
        return self._enrollments[account_id]

    def enrollment(self, enrollment_id: int) -> Optional[Enrollment]:
        return get_enrollment(self.db, enrollment_id)


def _skip(change_id: int) -> SyncChange:
    return SyncChange(id=change_id, type=ChangeKind.skip.value, data=None)


def employee_snapshot(db: Session, installation: Installation, resolver: Optional[_Resolver] = None) -> dict:
    """Every active employee the installation's current filter admits, with active enrollments."""
    resolver = resolver or _Resolver(db)
    employee_filter = parse_filter(installation.employee_filters)
    employees = []
    for emp in list_employees(db, installation.company_id, active_only=True):
        if visible(emp, employee_filter):
            employees.append(employee_to_dict(emp, resolver.active_enrollments(emp.account_id)))
    return {"employees": employees}


def _resolve(
    change_id: int,
    kind: str,
    payload,
    stored: Optional[dict],
    employee_filter: Optional[EmployeeFilter],
    resolver: _Resolver,
) -> SyncChange:
    if isinstance(payload, AddEmployeePayload):
        emp = resolver.employee(payload.employee_id)
        if emp is None:
            logger.warning("change_entity_missing", change_id=change_id, kind=kind, account_id=payload.employee_id)
            return _skip(change_id)
        if not visible(emp, employee_filter):
            return _skip(change_id)
        return SyncChange(id=change_id, type=kind, data=employee_to_dict(emp, resolver.active_enrollments(emp.account_id)))

    if isinstance(payload, DeleteEmployeePayload):
        emp = resolver.employee(payload.employee_id)
        if emp is None:
            # still delivered so clocks holding the employee can drop it
            logger.warning("change_entity_missing", change_id=change_id, kind=kind, account_id=payload.employee_id)
            return SyncChange(id=change_id, type=kind, data={"account_id": payload.employee_id})
        return SyncChange(id=change_id, type=kind, data=employee_to_dict(emp))

    if isinstance(payload, AddEnrollmentPayload):
        emp = resolver.employee(payload.employee_id)
        if emp is None:
            logger.warning("change_entity_missing", change_id=change_id, kind=kind, account_id=payload.employee_id)
            return _skip(change_id)
        if not visible(emp, employee_filter):
            return _skip(change_id)
        enrollment = resolver.enrollment(payload.enrollment_id)
        if enrollment is None or not enrollment.active:
            # replaced or deleted since it was captured
            return _skip(change_id)
        return SyncChange(id=change_id, type=kind, data={
            "enrollment": enrollment_to_dict(enrollment),
            "employee": employee_to_dict(emp),
        })

    if isinstance(payload, DeleteEnrollmentPayload):
        return SyncChange(id=change_id, type=kind, data=stored)

    # UPDATE_INSTALL_FILTER aimed at another installation
    return _skip(change_id)


def sync(db: Session, installation: Installation, cursor: int) -> List[SyncChange]:
    """
    Build the change stream for an installation after its cursor.

    Args:
        db: Database session
        installation: Requesting installation (current filter is used)
        cursor: Highest change id the installation has applied

    Returns:
        One entry per stored change after the cursor, ascending by id

    Raises:
        TransientStoreError: storage failed; nothing is returned and the
            installation should retry with the same cursor
    """
    changes = change_log.read_after(db, installation.company_id, cursor)
    employee_filter = parse_filter(installation.employee_filters)
    resolver = _Resolver(db)

    out: List[SyncChange] = []
    compacted = False
    try:
        for record in changes:
            if compacted:
                out.append(_skip(record.id))
                continue

            try:
                payload = decode_payload(record.kind, record.data)
            except MalformedPayload as e:
                logger.warning("change_payload_malformed", change_id=record.id, kind=record.kind, reason=e.reason)
                out.append(_skip(record.id))
                continue

            if isinstance(payload, UpdateInstallFilterPayload) and payload.installation_id == installation.id:
                out.append(SyncChange(
                    id=record.id,
                    type=record.kind,
                    data=employee_snapshot(db, installation, resolver),
                ))
                compacted = True
                continue

            out.append(_resolve(record.id, record.kind, payload, record.data, employee_filter, resolver))
    except SQLAlchemyError as e:
        logger.exception("store_error", op="sync", installation_id=installation.id, cursor=cursor)
        raise TransientStoreError() from e

    logger.info(
        "sync_served",
        installation_id=installation.id,
        company_id=installation.company_id,
        cursor=cursor,
        returned=len(out),
        compacted=compacted,
    )
    return out
