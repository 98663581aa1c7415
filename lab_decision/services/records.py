"""
Plain record types handed out by the data store.

Engines never see ORM instances or joined-relation shapes; every row is
converted into one of these immutable records at the store boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import (
    Sample, Result, InterpretationRule, AppliedInterpretation,
    SampleStage, SLAType, SLAStatus, ResultStatus, Comparator, Severity,
)


@dataclass(frozen=True)
class SampleRecord:
    id: int
    code: str
    stage: SampleStage
    sla_type: SLAType
    received_date: datetime
    due_date: Optional[datetime]
    sla_status: SLAStatus
    species: str
    next_crop: Optional[str] = None
    variety: Optional[str] = None
    company_id: Optional[str] = None
    client_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    sla_frozen_bucket: Optional[SLAStatus] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    @classmethod
    def from_model(cls, sample: Sample) -> "SampleRecord":
        return cls(
            id=sample.id,
            code=sample.code,
            stage=sample.stage,
            sla_type=sample.sla_type,
            received_date=sample.received_date,
            due_date=sample.due_date,
            sla_status=sample.sla_status,
            species=sample.species,
            next_crop=sample.next_crop,
            variety=sample.variety,
            company_id=sample.company_id,
            client_id=sample.client_id,
            completed_at=sample.completed_at,
            sla_frozen_bucket=sample.sla_frozen_bucket,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "stage": self.stage.value,
            "sla_type": self.sla_type.value,
            "received_date": self.received_date.isoformat() if self.received_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "sla_status": self.sla_status.value,
            "species": self.species,
            "client_id": self.client_id,
        }


@dataclass(frozen=True)
class ResultRecord:
    id: int
    sample_id: int
    sample_test_id: int
    area: Optional[str]
    analyte: str
    result_value: Optional[str]
    numeric_value: Optional[float]
    result_flag: Optional[str]
    units: Optional[str]
    status: ResultStatus

    @property
    def value(self) -> Any:
        """Numeric value when reported, the raw text otherwise"""
        if self.numeric_value is not None:
            return self.numeric_value
        return self.result_value

    @classmethod
    def from_model(cls, result: Result) -> "ResultRecord":
        return cls(
            id=result.id,
            sample_id=result.sample_id,
            sample_test_id=result.sample_test_id,
            area=result.area,
            analyte=result.analyte,
            result_value=result.result_value,
            numeric_value=result.numeric_value,
            result_flag=result.result_flag,
            units=result.units,
            status=result.status,
        )


@dataclass(frozen=True)
class SampleContext:
    """A sample together with every result reported on it"""
    sample: SampleRecord
    results: List[ResultRecord] = field(default_factory=list)


@dataclass(frozen=True)
class RuleRecord:
    id: int
    area: str
    analyte: str
    comparator: Comparator
    threshold: Dict[str, Any]
    message: str
    severity: Severity
    active: bool
    species: Optional[str] = None
    crop_next: Optional[str] = None
    company_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, rule: InterpretationRule) -> "RuleRecord":
        return cls(
            id=rule.id,
            area=rule.area,
            analyte=rule.analyte,
            comparator=rule.comparator,
            threshold=dict(rule.threshold or {}),
            message=rule.message,
            severity=rule.severity,
            active=bool(rule.active),
            species=rule.species,
            crop_next=rule.crop_next,
            company_id=rule.company_id,
            created_at=rule.created_at,
        )


@dataclass(frozen=True)
class AppliedInterpretationRecord:
    id: int
    sample_id: int
    rule_id: int
    result_id: int
    message: str
    severity: Severity
    observed_value: Optional[str]
    created_at: datetime
    rule: Optional[RuleRecord] = None

    @classmethod
    def from_model(cls, applied: AppliedInterpretation) -> "AppliedInterpretationRecord":
        return cls(
            id=applied.id,
            sample_id=applied.sample_id,
            rule_id=applied.rule_id,
            result_id=applied.result_id,
            message=applied.message,
            severity=applied.severity,
            observed_value=applied.observed_value,
            created_at=applied.created_at,
            rule=RuleRecord.from_model(applied.rule) if applied.rule is not None else None,
        )


@dataclass(frozen=True)
class InterpretationCandidate:
    """A match found by the engine, not yet persisted"""
    sample_id: int
    rule_id: int
    result_id: int
    message: str
    severity: Severity
    observed_value: Optional[str]
