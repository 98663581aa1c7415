"""
Pydantic schemas for the Lab Decision Engine API
Defines request and response models for REST API endpoints
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Any, Dict
from datetime import datetime

from ..models import Comparator, Severity, SampleStage, SLAType, SLAStatus
from ..services.comparators import parse_comparator, normalize_threshold, as_number


# Base schemas with common fields
class BaseSchema(BaseModel):
    """Base schema with common configuration"""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Interpretation rule schemas
class RuleCreate(BaseModel):
    """Schema for creating an interpretation rule"""

    area: str = Field(..., min_length=1, max_length=50, description="Laboratory area")
    analyte: str = Field(..., min_length=1, max_length=100, description="Analyte or diagnosis name")
    comparator: Comparator = Field(..., description="Relational operator")
    threshold: Dict[str, Any] = Field(..., description="Threshold payload, shape depends on comparator")
    message: str = Field(..., min_length=1, description="Message template")
    severity: Severity = Field(..., description="Interpretation severity")
    species: Optional[str] = Field(None, max_length=100, description="Species scope, null matches any")
    crop_next: Optional[str] = Field(None, max_length=100, description="Next crop scope, null matches any")
    active: bool = True
    created_by: Optional[str] = Field(None, max_length=100)

    @field_validator('area', 'analyte', 'message')
    @classmethod
    def strip_required_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('must not be blank')
        return v

    @field_validator('species', 'crop_next')
    @classmethod
    def blank_scope_is_wildcard(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator('comparator', mode='before')
    @classmethod
    def parse_comparator_alias(cls, v):
        try:
            return parse_comparator(v)
        except ValueError:
            raise ValueError(f"unknown comparator: {v}")

    @field_validator('severity', mode='before')
    @classmethod
    def parse_severity(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            # Older rule sets used "moderate"
            if v == "moderate":
                return Severity.MEDIUM
        return v

    @model_validator(mode='before')
    @classmethod
    def normalize_threshold_shape(cls, data):
        if isinstance(data, dict) and "threshold" not in data and "threshold_json" in data:
            data = dict(data)
            data["threshold"] = data.pop("threshold_json")
        if isinstance(data, dict) and "comparator" in data and "threshold" in data:
            try:
                comparator = parse_comparator(data["comparator"])
            except ValueError:
                return data
            data = dict(data)
            data["threshold"] = normalize_threshold(comparator, data["threshold"])
        return data

    @model_validator(mode='after')
    def check_threshold_fits_comparator(self):
        threshold = self.threshold
        if self.comparator in (Comparator.LT, Comparator.LTE, Comparator.GT, Comparator.GTE):
            if as_number(threshold.get("value")) is None:
                raise ValueError(f"comparator '{self.comparator.value}' needs a numeric threshold value")
        elif self.comparator in (Comparator.EQ, Comparator.NEQ):
            if threshold.get("value") is None and threshold.get("flag") is None:
                raise ValueError(f"comparator '{self.comparator.value}' needs a threshold value or flag")
        elif self.comparator == Comparator.BETWEEN:
            low, high = as_number(threshold.get("min")), as_number(threshold.get("max"))
            if low is None or high is None:
                raise ValueError("comparator 'between' needs numeric min and max")
            if low > high:
                raise ValueError("threshold min must not exceed max")
        elif self.comparator == Comparator.IN:
            values = threshold.get("values")
            if not isinstance(values, list) or not values:
                raise ValueError("comparator 'in' needs a non-empty list of values")
        return self


class RuleResponse(BaseSchema):
    """Schema for interpretation rule API response"""
    id: int
    area: str
    species: Optional[str] = None
    crop_next: Optional[str] = None
    analyte: str
    comparator: Comparator
    threshold: Dict[str, Any]
    message: str
    severity: Severity
    active: bool
    company_id: Optional[str] = None
    created_at: Optional[datetime] = None


class AppliedInterpretationResponse(BaseSchema):
    """Schema for applied interpretation API response"""
    id: int
    sample_id: int
    rule_id: int
    result_id: int
    message: str
    severity: Severity
    observed_value: Optional[str] = None
    created_at: datetime


class EvaluateRequest(BaseModel):
    sample_id: int = Field(..., description="Sample to evaluate")


class EvaluateResponse(BaseModel):
    message: str
    applied_interpretations: List[AppliedInterpretationResponse]
    count: int


# SLA schemas
class SLAUpdateRequest(BaseModel):
    sample_id: Optional[int] = Field(None, description="Sample to refresh; omit for a full sweep")


class SLABatchResponse(BaseModel):
    message: str
    updated: int
    errors: int
    status: str
    timestamp: datetime


class SLAStatsResponse(BaseModel):
    total_active: int
    on_time: int
    at_risk: int
    breached: int
    express: int


class SampleSLAResponse(BaseSchema):
    id: int
    code: str
    stage: SampleStage
    sla_type: SLAType
    sla_status: SLAStatus
    received_date: datetime
    due_date: Optional[datetime] = None
    species: str
    client_id: Optional[str] = None


class SLAOverviewResponse(BaseModel):
    stats: SLAStatsResponse
    attention: List[SampleSLAResponse]
    express_due_soon: List[SampleSLAResponse] = []


# Edit guard schemas
class EditCheckRequest(BaseModel):
    fields: List[str] = Field(..., description="Fields the caller intends to change")


class EditCheckResponse(BaseModel):
    sample_id: int
    has_validated_results: bool
    allowed: bool
    denied_fields: List[str]
