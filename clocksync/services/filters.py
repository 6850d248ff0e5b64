"""
Installation employee filters.
An employee is visible when any configured cost center slot matches.
"""
from typing import Optional, Sequence

from pydantic import ValidationError

from ..schemas.sync import EmployeeFilter, CostCenterFilter

COST_CENTER_SLOTS = 5


def empty_filter() -> EmployeeFilter:
    """Default filter for a new installation: configured, but matches nobody."""
    return EmployeeFilter(cost_centers=CostCenterFilter(indexes=[]))


def parse_filter(raw) -> Optional[EmployeeFilter]:
    """
    Decode a stored or submitted filter.

    Returns None when the value is missing or does not have the filter shape;
    a None filter matches no employee.
    """
    if raw is None:
        return None
    if isinstance(raw, EmployeeFilter):
        return raw
    try:
        return EmployeeFilter.model_validate(raw)
    except ValidationError:
        return None


def visible(employee, employee_filter: Optional[EmployeeFilter]) -> bool:
    """
    Check whether an employee passes an installation filter.

    Args:
        employee: Anything with ``active`` and ``cost_centers`` (5 slot values)
        employee_filter: Parsed installation filter

    Returns:
        True if the employee is active and, for any filter entry, the
        employee's cost center at that slot is one of the allowed ids
    """
    if not employee.active or employee_filter is None:
        return False

    slots: Sequence[int] = employee.cost_centers
    for entry in employee_filter.entries():
        if not 0 <= entry.index < min(len(slots), COST_CENTER_SLOTS):
            continue
        slot_value = slots[entry.index]
        if any(v.cost_center_id == slot_value for v in entry.values):
            return True
    return False
