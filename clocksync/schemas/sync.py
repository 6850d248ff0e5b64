"""
Change log payloads and installation employee filters.

Each stored change carries only identifiers. The payload shape depends on the
change kind; decoding goes through a discriminated union keyed on ``kind`` so
the reader dispatches on the variant class instead of re-parsing loose dicts.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..services.errors import MalformedPayload


class ChangeKind(str, Enum):
    add_employee = "ADD_EMPLOYEE"
    delete_employee = "DELETE_EMPLOYEE"
    add_enrollment = "ADD_ENROLLMENT"
    delete_enrollment = "DELETE_ENROLLMENT"
    update_install_filter = "UPDATE_INSTALL_FILTER"
    skip = "SKIP"  # synthetic, never stored


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_data(self) -> Dict[str, Any]:
        """Stored JSON form (the kind lives in its own column)."""
        return self.model_dump(exclude={"kind"})


class AddEmployeePayload(_Payload):
    kind: Literal["ADD_EMPLOYEE"] = "ADD_EMPLOYEE"
    employee_id: int


class DeleteEmployeePayload(_Payload):
    kind: Literal["DELETE_EMPLOYEE"] = "DELETE_EMPLOYEE"
    employee_id: int


class AddEnrollmentPayload(_Payload):
    kind: Literal["ADD_ENROLLMENT"] = "ADD_ENROLLMENT"
    employee_id: int
    enrollment_id: int


class DeleteEnrollmentPayload(_Payload):
    kind: Literal["DELETE_ENROLLMENT"] = "DELETE_ENROLLMENT"
    global_id: int


class UpdateInstallFilterPayload(_Payload):
    kind: Literal["UPDATE_INSTALL_FILTER"] = "UPDATE_INSTALL_FILTER"
    installation_id: int


ChangePayload = Annotated[
    Union[
        AddEmployeePayload,
        DeleteEmployeePayload,
        AddEnrollmentPayload,
        DeleteEnrollmentPayload,
        UpdateInstallFilterPayload,
    ],
    Field(discriminator="kind"),
]

_payload_adapter = TypeAdapter(ChangePayload)


def decode_payload(kind: str, data: Optional[dict]) -> ChangePayload:
    kind = getattr(kind, "value", kind)
    if not isinstance(data, dict):
        raise MalformedPayload(kind, data, "payload is not an object")
    try:
        return _payload_adapter.validate_python({**data, "kind": kind})
    except ValidationError as e:
        raise MalformedPayload(kind, data, str(e.errors(include_url=False)))


# Installation employee filter
#
# Wire/stored shape kept from the time clock client:
#   {"cost_centers": {"indexes": [{"index": 0, "values": [{"cost_center_id": 10}]}]}}

class CostCenterValue(BaseModel):
    cost_center_id: int


class CostCenterIndexFilter(BaseModel):
    index: int
    values: List[CostCenterValue] = Field(default_factory=list)


class CostCenterFilter(BaseModel):
    indexes: Optional[List[CostCenterIndexFilter]] = None


class EmployeeFilter(BaseModel):
    cost_centers: CostCenterFilter = Field(default_factory=CostCenterFilter)

    @property
    def is_configured(self) -> bool:
        """True when the filter carries an explicit (possibly empty) index list."""
        return self.cost_centers.indexes is not None

    def entries(self) -> List[CostCenterIndexFilter]:
        return list(self.cost_centers.indexes or [])

    @classmethod
    def from_slots(cls, slots: Dict[int, List[int]]) -> "EmployeeFilter":
        return cls(cost_centers=CostCenterFilter(indexes=[
            CostCenterIndexFilter(index=i, values=[CostCenterValue(cost_center_id=v) for v in values])
            for i, values in slots.items()
        ]))
