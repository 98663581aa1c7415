"""
Result model for the Lab Decision Engine
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey, Enum
from sqlalchemy.orm import relationship, validates
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from ..core.database import Base


class ResultStatus(PyEnum):
    """Result lifecycle, forward-only"""
    PENDING = "pending"
    COMPLETED = "completed"
    VALIDATED = "validated"

    @property
    def position(self) -> int:
        return list(ResultStatus).index(self)


class Result(Base):
    """Analyte result reported for one test on one sample"""

    __tablename__ = "results"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # References
    sample_id = Column(Integer, ForeignKey("samples.id"), nullable=False, index=True)
    sample_test_id = Column(Integer, ForeignKey("sample_tests.id"), nullable=False, index=True)

    # Result values
    analyte = Column(String(100), nullable=False, index=True)
    result_value = Column(Text)
    numeric_value = Column(Float)
    result_flag = Column(String(50))
    units = Column(String(30))

    # Lifecycle
    status = Column(Enum(ResultStatus), default=ResultStatus.PENDING, nullable=False)
    validated_at = Column(DateTime)
    validated_by = Column(String(100))

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    sample = relationship("Sample", back_populates="results")
    sample_test = relationship("SampleTest", back_populates="results")

    def __repr__(self):
        return f"<Result(id={self.id}, analyte='{self.analyte}', value='{self.result_value}', status='{self.status.value}')>"

    @validates("status")
    def validate_status(self, key, value):
        """Results move forward only and never leave the validated state"""
        if isinstance(value, str):
            value = ResultStatus(value)
        current = self.status
        if current is not None and value is not None and value.position < current.position:
            raise ValueError(f"Result status cannot regress from {current.value} to {value.value}")
        return value

    @property
    def is_validated(self) -> bool:
        return self.status == ResultStatus.VALIDATED

    @property
    def value(self):
        """Numeric value when present, the raw reported text otherwise"""
        if self.numeric_value is not None:
            return self.numeric_value
        return self.result_value

    @property
    def area(self) -> Optional[str]:
        return self.sample_test.area if self.sample_test else None
