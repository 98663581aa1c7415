"""
Sample test model for the Lab Decision Engine
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from ..core.database import Base


class SampleTest(Base):
    """A test requested on a sample; carries the laboratory area it belongs to"""

    __tablename__ = "sample_tests"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # References
    sample_id = Column(Integer, ForeignKey("samples.id"), nullable=False, index=True)

    # Test information
    test_code = Column(String(20), nullable=False, index=True)
    test_name = Column(String(200))
    area = Column(String(50), nullable=False, index=True)
    method = Column(String(100))

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    sample = relationship("Sample", back_populates="tests")
    results = relationship("Result", back_populates="sample_test")

    def __repr__(self):
        return f"<SampleTest(id={self.id}, test_code='{self.test_code}', area='{self.area}')>"
