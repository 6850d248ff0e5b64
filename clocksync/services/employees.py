"""
Employee and enrollment lookups shared by the sync reader, producers and routes.
"""
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models.models import Employee, Enrollment
from ..schemas.timeclock import EmployeeImportRecord, EmployeeOut, EnrollmentOut
from .filters import COST_CENTER_SLOTS

logger = structlog.get_logger(__name__)


def get_employee(db: Session, account_id: int) -> Optional[Employee]:
    return db.scalar(select(Employee).where(Employee.account_id == account_id))


def get_enrollment(db: Session, enrollment_id: int) -> Optional[Enrollment]:
    return db.get(Enrollment, enrollment_id)


def list_employees(db: Session, company_id: int, active_only: bool = False) -> List[Employee]:
    """Company employees ordered by first name then last name, case-insensitive."""
    query = select(Employee).where(Employee.company_id == company_id)
    if active_only:
        query = query.where(Employee.active.is_(True))
    query = query.order_by(func.upper(Employee.first_name), func.upper(Employee.last_name), Employee.id)
    return list(db.scalars(query))


def list_enrollments(db: Session, account_id: int, active_only: bool = True) -> List[Enrollment]:
    query = select(Enrollment).where(Enrollment.employee_account_id == account_id)
    if active_only:
        query = query.where(Enrollment.active.is_(True))
    return list(db.scalars(query.order_by(Enrollment.id)))


def search_employees(db: Session, company_id: int, first_name: str, last_name: str) -> List[Employee]:
    """Exact, case-insensitive match on first and last name."""
    return list(db.scalars(
        select(Employee)
        .where(
            Employee.company_id == company_id,
            func.lower(Employee.first_name) == (first_name or "").lower(),
            func.lower(Employee.last_name) == (last_name or "").lower(),
        )
        .order_by(Employee.id)
    ))


def enrollment_to_dict(enrollment: Enrollment, include_data: bool = True) -> dict:
    exclude = None if include_data else {"data"}
    return EnrollmentOut.model_validate(enrollment).model_dump(exclude=exclude, exclude_none=True)


def employee_to_dict(
    employee: Employee,
    enrollments: Optional[Iterable[Enrollment]] = None,
    include_data: bool = True,
) -> dict:
    """Wire form of an employee; ``enrollments`` is only present when given."""
    out = EmployeeOut.model_validate(employee).model_dump(exclude={"enrollments"})
    if enrollments is not None:
        out["enrollments"] = [enrollment_to_dict(e, include_data=include_data) for e in enrollments]
    return out


def employees_with_enrollments(db: Session, company_id: int) -> List[dict]:
    """Every employee (active or not) with all enrollments, without data blobs."""
    return [
        employee_to_dict(emp, list_enrollments(db, emp.account_id, active_only=False), include_data=False)
        for emp in list_employees(db, company_id)
    ]


def middle_initial(middle_name: Optional[str]) -> str:
    if not middle_name:
        return ""
    return middle_name.strip()[:1].upper()


def upsert_employee(
    db: Session,
    company_id: int,
    record: EmployeeImportRecord,
    update_existing: bool = False,
) -> Tuple[Employee, str]:
    """
    Insert or update an employee from an HR roster row.

    Roster imports do not append change records; installations learn about
    employees through enrollments, activation toggles and filter updates.

    Returns:
        (employee, action) where action is created|updated|skipped
    """
    employee = get_employee(db, record.account_id)
    if employee is not None and employee.company_id != company_id:
        raise ValueError(f"account {record.account_id} belongs to another company")
    if employee is not None and not update_existing:
        return employee, "skipped"

    action = "updated"
    if employee is None:
        employee = Employee(company_id=company_id, account_id=record.account_id, active=record.active)
        db.add(employee)
        action = "created"

    employee.first_name = record.first_name
    employee.middle_initial = middle_initial(record.middle_name)
    employee.last_name = record.last_name
    employee.employee_number = record.employee_number

    slots: Dict[int, int] = {i: 0 for i in range(COST_CENTER_SLOTS)}
    for index, cost_center_id in record.cost_centers.items():
        if 0 <= int(index) < COST_CENTER_SLOTS:
            slots[int(index)] = cost_center_id
    for index, value in slots.items():
        setattr(employee, f"cost_center_{index}", value)

    logger.info("employee_upserted", company_id=company_id, account_id=record.account_id, action=action)
    return employee, action
