"""
Field-level edit permissions for samples.

Once any result on a sample is validated, fields that feed SLA dates or
result interpretation are locked. Fields absent from the table are denied.
"""

from enum import Enum
from typing import Dict, Iterable, List


class EditPolicy(Enum):
    BLOCKED = "blocked"
    EDITABLE = "editable"


FIELD_EDIT_POLICY: Dict[str, EditPolicy] = {
    # Identity, ownership and anything feeding SLA dates or interpretation
    "code": EditPolicy.BLOCKED,
    "species": EditPolicy.BLOCKED,
    "client_id": EditPolicy.BLOCKED,
    "company_id": EditPolicy.BLOCKED,
    "project_id": EditPolicy.BLOCKED,
    "received_date": EditPolicy.BLOCKED,
    "sla_type": EditPolicy.BLOCKED,
    "variety": EditPolicy.BLOCKED,
    "rootstock": EditPolicy.BLOCKED,
    "planting_year": EditPolicy.BLOCKED,
    "previous_crop": EditPolicy.BLOCKED,
    "next_crop": EditPolicy.BLOCKED,
    "fallow": EditPolicy.BLOCKED,
    "region": EditPolicy.BLOCKED,
    "locality": EditPolicy.BLOCKED,
    "taken_by": EditPolicy.BLOCKED,
    "sampling_method": EditPolicy.BLOCKED,
    "suspected_pathogen": EditPolicy.BLOCKED,

    # Workflow progress and free-text notes
    "status": EditPolicy.EDITABLE,
    "stage": EditPolicy.EDITABLE,
    "sla_status": EditPolicy.EDITABLE,
    "due_date": EditPolicy.EDITABLE,
    "client_notes": EditPolicy.EDITABLE,
    "reception_notes": EditPolicy.EDITABLE,
    "sampling_observations": EditPolicy.EDITABLE,
    "reception_observations": EditPolicy.EDITABLE,
}


def can_edit_field(field_name: str, has_validated_results: bool) -> bool:
    """Return True if ``field_name`` may be changed on a sample"""
    if not has_validated_results:
        return True
    return FIELD_EDIT_POLICY.get(field_name) is EditPolicy.EDITABLE


def denied_fields(changes: Iterable[str], has_validated_results: bool) -> List[str]:
    """Fields of an update payload that the guard rejects, in payload order"""
    return [name for name in changes if not can_edit_field(name, has_validated_results)]


def blocked_fields() -> List[str]:
    return sorted(name for name, policy in FIELD_EDIT_POLICY.items() if policy is EditPolicy.BLOCKED)


def editable_when_validated() -> List[str]:
    return sorted(name for name, policy in FIELD_EDIT_POLICY.items() if policy is EditPolicy.EDITABLE)
