"""
Interpretation rule and applied interpretation models
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from ..core.database import Base


class Comparator(PyEnum):
    """Relational operator used to test a result against a threshold"""
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    EQ = "eq"
    NEQ = "neq"
    BETWEEN = "between"
    IN = "in"


class Severity(PyEnum):
    """Severity attached to an interpretation"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class InterpretationRule(Base):
    """Analyst-authored threshold rule"""

    __tablename__ = "interpretation_rules"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Tenant
    company_id = Column(String(64), index=True)

    # Scope (species and crop_next are wildcards when NULL)
    area = Column(String(50), nullable=False, index=True)
    species = Column(String(100))
    crop_next = Column(String(100))
    analyte = Column(String(100), nullable=False)

    # Condition
    comparator = Column(Enum(Comparator), nullable=False)
    threshold = Column(JSON, nullable=False)

    # Outcome
    message = Column(Text, nullable=False)
    severity = Column(Enum(Severity), nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by = Column(String(100))

    # Relationships
    applications = relationship("AppliedInterpretation", back_populates="rule")

    def __repr__(self):
        return f"<InterpretationRule(id={self.id}, area='{self.area}', analyte='{self.analyte}', comparator='{self.comparator.value}')>"


class AppliedInterpretation(Base):
    """Immutable record of one rule having matched one result"""

    __tablename__ = "applied_interpretations"
    __table_args__ = (
        UniqueConstraint("rule_id", "result_id", name="uq_applied_interpretation_rule_result"),
    )

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # References
    sample_id = Column(Integer, ForeignKey("samples.id"), nullable=False, index=True)
    rule_id = Column(Integer, ForeignKey("interpretation_rules.id"), nullable=False, index=True)
    result_id = Column(Integer, ForeignKey("results.id"), nullable=False, index=True)

    # Rendered outcome
    message = Column(Text, nullable=False)
    severity = Column(Enum(Severity), nullable=False)
    observed_value = Column(Text)

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    rule = relationship("InterpretationRule", back_populates="applications")

    def __repr__(self):
        return f"<AppliedInterpretation(id={self.id}, rule_id={self.rule_id}, result_id={self.result_id}, severity='{self.severity.value}')>"
