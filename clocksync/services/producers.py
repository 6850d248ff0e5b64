"""
Change producers.

Each mutation that installations must learn about appends one change record
carrying identifiers only; the sync reader resolves current state at read
time.

Append modes (settings.change_append_mode):
    deferred       the mutation commits first and the append runs as a
                   background task after the HTTP response. Until it runs, a
                   sync can observe the mutated rows without the change
                   record; the installation catches up on its next poll.
                   If the background append itself fails it is logged
                   (change_publish_failed) and not retried. That record is
                   lost and no later poll delivers it.
    transactional  the append joins the mutation's transaction, so both
                   commit together or not at all.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Company, Employee, Enrollment, Installation
from ..schemas.sync import (
    AddEmployeePayload,
    AddEnrollmentPayload,
    ChangeKind,
    ChangePayload,
    DeleteEmployeePayload,
    DeleteEnrollmentPayload,
    UpdateInstallFilterPayload,
)
from ..schemas.timeclock import NewEnrollmentRequest
from . import change_log
from .employees import get_employee, get_enrollment
from .errors import NotFound, TransientStoreError, Unauthorized
from .filters import parse_filter
from .installations import get_company_installation

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChangeIntent:
    """A change record waiting to be appended."""
    company_id: int
    payload: ChangePayload

    @property
    def kind(self) -> ChangeKind:
        return ChangeKind(self.payload.kind)


def _commit(db: Session, intent: Optional[ChangeIntent], mode: Optional[str] = None) -> Optional[ChangeIntent]:
    """
    Commit the pending mutation, appending the change per the append mode.

    Returns:
        The intent still to be published (deferred mode), else None
    """
    mode = mode or settings.change_append_mode
    try:
        if intent is not None and mode == "transactional":
            change_log.append(db, intent.company_id, intent.kind, intent.payload, commit=False)
            db.commit()
            return None
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("store_error", op="commit_mutation")
        raise TransientStoreError() from e
    return intent


def publish(intent: ChangeIntent, session_factory: Callable[[], Session]) -> None:
    """Append a deferred change in its own session (FastAPI background task)."""
    db = session_factory()
    try:
        change_log.append(db, intent.company_id, intent.kind, intent.payload)
    except (TransientStoreError, NotFound):
        logger.error(
            "change_publish_failed",
            company_id=intent.company_id,
            kind=intent.kind.value,
            payload=intent.payload.to_data(),
        )
    finally:
        db.close()


def toggle_employee_active(
    db: Session,
    company: Company,
    account_id: int,
    mode: Optional[str] = None,
) -> Tuple[Employee, Optional[ChangeIntent]]:
    """
    Flip an employee's active flag.

    Activation produces ADD_EMPLOYEE, deactivation DELETE_EMPLOYEE.
    """
    employee = get_employee(db, account_id)
    if employee is None:
        raise NotFound("Employee not found")
    if employee.company_id != company.id:
        raise Unauthorized()

    employee.active = not employee.active
    if employee.active:
        payload = AddEmployeePayload(employee_id=employee.account_id)
    else:
        payload = DeleteEmployeePayload(employee_id=employee.account_id)

    pending = _commit(db, ChangeIntent(company.id, payload), mode)
    db.refresh(employee)
    logger.info("employee_active_toggled", account_id=account_id, active=employee.active)
    return employee, pending


def create_enrollment(
    db: Session,
    company: Company,
    request: NewEnrollmentRequest,
    mode: Optional[str] = None,
) -> Tuple[Enrollment, Optional[ChangeIntent]]:
    """
    Record a new enrollment captured at an installation.

    Any active enrollment at the same position for the employee is
    deactivated first; only the newest capture per position stays active.
    """
    installation = get_company_installation(db, company, request.installation_token)

    employee = get_employee(db, request.employee_account_id)
    if employee is None:
        raise NotFound("Employee not found")
    if employee.company_id != company.id:
        raise Unauthorized()

    db.execute(
        update(Enrollment)
        .where(
            Enrollment.employee_account_id == request.employee_account_id,
            Enrollment.position == request.position,
            Enrollment.active.is_(True),
        )
        .values(active=False)
    )

    enrollment = Enrollment(
        company_id=company.id,
        employee_account_id=request.employee_account_id,
        position=request.position,
        created_date=request.created_date,
        installation_id=installation.id,
        data=request.data,
        active=True,
    )
    db.add(enrollment)
    try:
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("store_error", op="create_enrollment")
        raise TransientStoreError() from e

    payload = AddEnrollmentPayload(employee_id=employee.account_id, enrollment_id=enrollment.id)
    pending = _commit(db, ChangeIntent(company.id, payload), mode)
    db.refresh(enrollment)
    logger.info(
        "enrollment_created",
        enrollment_id=enrollment.id,
        account_id=employee.account_id,
        installation_id=installation.id,
    )
    return enrollment, pending


def delete_enrollment(
    db: Session,
    company: Company,
    global_id: int,
    mode: Optional[str] = None,
) -> Tuple[Enrollment, Optional[ChangeIntent]]:
    """Soft-delete an enrollment by its global id."""
    enrollment = get_enrollment(db, global_id)
    if enrollment is None:
        raise NotFound("Enrollment not found")
    if enrollment.company_id != company.id:
        raise Unauthorized()

    enrollment.active = False
    pending = _commit(db, ChangeIntent(company.id, DeleteEnrollmentPayload(global_id=enrollment.id)), mode)
    db.refresh(enrollment)
    logger.info("enrollment_deleted", enrollment_id=enrollment.id)
    return enrollment, pending


def update_installation(
    db: Session,
    company: Company,
    token: str,
    display_name: Optional[str] = None,
    employee_filters: Optional[dict] = None,
    ip: Optional[str] = None,
    mode: Optional[str] = None,
) -> Tuple[Installation, Optional[ChangeIntent]]:
    """
    Update an installation's name and/or employee filter.

    Only a filter carrying an explicit ``cost_centers.indexes`` list is
    applied, and only then is UPDATE_INSTALL_FILTER produced.
    """
    installation = get_company_installation(db, company, token)

    if display_name:
        installation.display_name = display_name

    intent = None
    if employee_filters is not None:
        parsed = parse_filter(employee_filters)
        if parsed is not None and parsed.is_configured:
            installation.employee_filters = parsed.model_dump()
            intent = ChangeIntent(company.id, UpdateInstallFilterPayload(installation_id=installation.id))
        else:
            logger.warning("installation_filter_ignored", installation_id=installation.id)

    if ip is not None:
        installation.last_ip = ip

    pending = _commit(db, intent, mode)
    db.refresh(installation)
    logger.info("installation_updated", installation_id=installation.id, filter_updated=intent is not None)
    return installation, pending
