from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# Requests

class NewEnrollmentRequest(BaseModel):
    installation_token: str
    employee_account_id: int
    position: int
    created_date: str = ""
    data: str = ""


class DeleteEnrollmentRequest(BaseModel):
    installation_token: Optional[str] = None
    global_id: int


class NewInstallationRequest(BaseModel):
    name: str = ""
    employee_filters: Optional[Dict[str, Any]] = None


class UpdateInstallationRequest(BaseModel):
    display_name: Optional[str] = None
    employee_filters: Optional[Dict[str, Any]] = None


class EmployeeImportRecord(BaseModel):
    """One roster row from the HR system of record."""
    account_id: int
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    employee_number: Optional[str] = None
    active: bool = True
    cost_centers: Dict[int, int] = Field(default_factory=dict)  # slot index -> cost center id


# Responses

class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    employee_account_id: int
    position: int
    created_date: Optional[str] = None
    installation_id: int
    data: Optional[str] = None
    active: bool


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    account_id: int
    first_name: str
    middle_initial: str
    last_name: str
    employee_number: Optional[str] = None
    active: bool
    cost_center_0: int
    cost_center_1: int
    cost_center_2: int
    cost_center_3: int
    cost_center_4: int
    enrollments: Optional[List[EnrollmentOut]] = None


class InstallationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    token: str
    company_id: int
    display_name: str
    ip: Optional[str] = Field(default=None, validation_alias=AliasChoices("last_ip", "ip"))
    last_synced_at: Optional[datetime] = None
    last_synced: str = ""
    employee_filters: Optional[Dict[str, Any]] = None
    client_settings: Optional[Dict[str, Any]] = None
    company_name: str = ""


class SyncChange(BaseModel):
    id: int
    type: str
    data: Optional[Dict[str, Any]] = None


class NewEnrollmentResponse(BaseModel):
    global_id: int
