"""
Time clock API routes.
Installation sync, enrollments, installation settings and company info.
"""
from typing import Callable, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from ..auth.security import get_current_company
from ..config import settings
from ..db import get_db, get_session_factory
from ..models.models import Company
from ..schemas.timeclock import (
    DeleteEnrollmentRequest,
    NewEnrollmentRequest,
    NewEnrollmentResponse,
    NewInstallationRequest,
    SyncChange,
    UpdateInstallationRequest,
)
from ..services import change_log, producers
from ..services.errors import InvalidRequest, NotFound
from ..services.employees import (
    employee_to_dict,
    employees_with_enrollments,
    enrollment_to_dict,
    list_enrollments,
    search_employees,
)
from ..services.heartbeat import record_heartbeat_job
from ..services.installations import (
    create_installation,
    get_company_installation,
    installation_to_dict,
    list_installations,
)
from ..services.sync_reader import sync

router = APIRouter(prefix="/timeclock", tags=["timeclock"])


def client_ip(request: Request) -> Optional[str]:
    ip = request.headers.get(settings.client_ip_header)
    if ip:
        return ip
    return request.client.host if request.client else None


def _schedule(background_tasks: BackgroundTasks, pending, session_factory: Callable) -> None:
    if pending is not None:
        background_tasks.add_task(producers.publish, pending, session_factory)


# Sync

@router.get("/sync", response_model=List[SyncChange])
def get_sync(
    request: Request,
    background_tasks: BackgroundTasks,
    install_token: Optional[str] = Query(None, alias="installToken"),
    marker: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
    session_factory=Depends(get_session_factory),
):
    """
    Changes after the installation's marker.
    The installation keeps the highest returned id as its next marker.
    """
    if not install_token:
        raise InvalidRequest("Install token is a required parameter")
    if marker is None or marker == "":
        raise InvalidRequest("Marker is a required parameter")
    try:
        cursor = int(marker)
    except ValueError:
        raise InvalidRequest("Marker must be an integer")

    installation = get_company_installation(db, company, install_token)
    changes = sync(db, installation, cursor)

    background_tasks.add_task(record_heartbeat_job, session_factory, installation.id, client_ip(request))
    return changes


@router.post("/sync/deleteenrollment")
def delete_enrollment(
    payload: DeleteEnrollmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
    session_factory=Depends(get_session_factory),
):
    if payload.installation_token:
        get_company_installation(db, company, payload.installation_token)
    enrollment, pending = producers.delete_enrollment(db, company, payload.global_id)
    _schedule(background_tasks, pending, session_factory)
    return enrollment_to_dict(enrollment)


# Enrollments

@router.post("/enrollments", status_code=201, response_model=NewEnrollmentResponse)
def create_enrollment(
    payload: NewEnrollmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
    session_factory=Depends(get_session_factory),
):
    enrollment, pending = producers.create_enrollment(db, company, payload)
    _schedule(background_tasks, pending, session_factory)
    return {"global_id": enrollment.id}


# Installations

@router.get("/installations")
def get_installations(db: Session = Depends(get_db), company: Company = Depends(get_current_company)):
    return [installation_to_dict(i, company) for i in list_installations(db, company.id)]


@router.post("/installations", status_code=201)
def new_installation(
    payload: NewInstallationRequest,
    request: Request,
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
):
    installation = create_installation(db, company, client_ip(request), payload.name, payload.employee_filters)
    return installation_to_dict(installation, company)


@router.post("/installations/{installation_token}/update")
def update_installation(
    installation_token: str,
    payload: UpdateInstallationRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
    session_factory=Depends(get_session_factory),
):
    installation, pending = producers.update_installation(
        db,
        company,
        installation_token,
        display_name=payload.display_name,
        employee_filters=payload.employee_filters,
        ip=client_ip(request),
    )
    _schedule(background_tasks, pending, session_factory)
    return installation_to_dict(installation, company)


# Company info

@router.get("/companyinfo")
def company_info(db: Session = Depends(get_db), company: Company = Depends(get_current_company)):
    return {
        "installations": [installation_to_dict(i, company) for i in list_installations(db, company.id)],
        "employees": employees_with_enrollments(db, company.id),
        "change_head": change_log.head(db, company.id),
    }


@router.get("/companyinfo/installations")
def company_installations(db: Session = Depends(get_db), company: Company = Depends(get_current_company)):
    return [installation_to_dict(i, company) for i in list_installations(db, company.id)]


@router.get("/companyinfo/employees")
def company_employees(db: Session = Depends(get_db), company: Company = Depends(get_current_company)):
    return employees_with_enrollments(db, company.id)


@router.get("/companyinfo/employees/search")
def search_company_employees(
    fname: str = "",
    lname: str = "",
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
):
    found = [
        employee_to_dict(emp, list_enrollments(db, emp.account_id, active_only=True) or None)
        for emp in search_employees(db, company.id, fname, lname)
    ]
    if not found:
        raise NotFound("Employee Not Found")
    return found


@router.post("/companyinfo/employee/{account_id}/toggleActive")
def toggle_employee_active(
    account_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    company: Company = Depends(get_current_company),
    session_factory=Depends(get_session_factory),
):
    employee, pending = producers.toggle_employee_active(db, company, account_id)
    _schedule(background_tasks, pending, session_factory)
    return employee_to_dict(employee)
