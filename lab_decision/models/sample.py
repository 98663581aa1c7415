"""
Sample model for the Lab Decision Engine
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from ..core.database import Base


class SampleStage(PyEnum):
    """Workflow stage enumeration, in processing order"""
    RECEIVED = "received"
    PROCESSING = "processing"
    MICROSCOPY = "microscopy"
    ISOLATION = "isolation"
    IDENTIFICATION = "identification"
    MOLECULAR_ANALYSIS = "molecular_analysis"
    VALIDATION = "validation"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES

    @property
    def position(self) -> int:
        return list(SampleStage).index(self)


TERMINAL_STAGES = frozenset({SampleStage.COMPLETED})


class SLAType(PyEnum):
    """SLA urgency class"""
    STANDARD = "standard"
    EXPRESS = "express"


class SLAStatus(PyEnum):
    """Cached SLA classification of a sample"""
    ON_TIME = "on_time"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    FROZEN = "frozen"


class Sample(Base):
    """Laboratory sample"""

    __tablename__ = "samples"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Sample identifiers
    code = Column(String(50), unique=True, index=True, nullable=False)

    # Tenant and ownership
    company_id = Column(String(64), index=True)
    client_id = Column(String(64), index=True)
    project_id = Column(String(64))

    # Workflow
    stage = Column(Enum(SampleStage), default=SampleStage.RECEIVED, nullable=False, index=True)
    completed_at = Column(DateTime)

    # SLA tracking
    sla_type = Column(Enum(SLAType), default=SLAType.STANDARD, nullable=False)
    received_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    due_date = Column(DateTime, index=True)
    sla_status = Column(Enum(SLAStatus), default=SLAStatus.ON_TIME, nullable=False, index=True)
    sla_frozen_bucket = Column(Enum(SLAStatus))

    # Agronomic context
    species = Column(String(100), nullable=False)
    variety = Column(String(100))
    rootstock = Column(String(100))
    planting_year = Column(Integer)
    previous_crop = Column(String(100))
    next_crop = Column(String(100))
    fallow = Column(Boolean, default=False)

    # Sampling information
    region = Column(String(100))
    locality = Column(String(100))
    taken_by = Column(String(20))
    sampling_method = Column(String(100))
    suspected_pathogen = Column(String(200))

    # Notes and observations
    client_notes = Column(Text)
    reception_notes = Column(Text)
    sampling_observations = Column(Text)
    reception_observations = Column(Text)

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tests = relationship("SampleTest", back_populates="sample", cascade="all, delete-orphan")
    results = relationship("Result", back_populates="sample", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Sample(id={self.id}, code='{self.code}', stage='{self.stage.value}', sla_status='{self.sla_status.value}')>"

    @property
    def is_terminal(self) -> bool:
        """Check if the sample has left the tracked workflow"""
        return self.stage is not None and self.stage.is_terminal

    @property
    def age_in_days(self) -> Optional[int]:
        """Days elapsed since reception"""
        if not self.received_date:
            return None
        return (datetime.utcnow() - self.received_date).days
