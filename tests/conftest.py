"""
Pytest configuration and fixtures for Lab Decision Engine tests
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lab_decision.core.database import create_tables
from lab_decision.models import (
    Sample, SampleTest, Result, InterpretationRule,
    SampleStage, SLAType, SLAStatus, ResultStatus, Comparator, Severity,
)
from lab_decision.services.store import LabStore
from lab_decision.services.sla_engine import SLAEngine, SLAPolicy
from lab_decision.services.interpretation_engine import InterpretationEngine


# Wednesday noon, far from any weekend boundary
FIXED_NOW = datetime(2026, 3, 11, 12, 0, 0)


@pytest.fixture
def test_engine():
    """In-memory SQLite database, fresh for every test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db_session(session_factory):
    """Plain ORM session for model-level tests"""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(session_factory) -> LabStore:
    return LabStore(session_factory)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def policy() -> SLAPolicy:
    return SLAPolicy(standard_days=10, express_days=5, attention_fraction=0.2)


@pytest.fixture
def sla_engine(store, policy, now) -> SLAEngine:
    return SLAEngine(store, policy, clock=lambda: now)


@pytest.fixture
def interpretation_engine(store) -> InterpretationEngine:
    return InterpretationEngine(store)


@pytest.fixture
def make_sample(session_factory):
    """Insert a sample and return its id"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = generate_sample_data(code=f"S-{counter['n']:04d}")
        data.update(overrides)
        with session_factory() as session:
            sample = Sample(**data)
            session.add(sample)
            session.flush()
            sample_id = sample.id
            session.commit()
        return sample_id

    return _make


@pytest.fixture
def make_result(session_factory):
    """Insert a sample test plus one result on it and return the result id"""

    def _make(sample_id, area="nematology", analyte="count", value=None, flag=None,
              status=ResultStatus.COMPLETED, **overrides):
        with session_factory() as session:
            test = SampleTest(sample_id=sample_id, test_code=area[:3].upper(), test_name=area, area=area)
            session.add(test)
            session.flush()
            numeric = value if isinstance(value, (int, float)) and not isinstance(value, bool) else None
            result = Result(
                sample_id=sample_id,
                sample_test_id=test.id,
                analyte=analyte,
                result_value=None if value is None else str(value),
                numeric_value=numeric,
                result_flag=flag,
                status=status,
                **overrides
            )
            session.add(result)
            session.flush()
            result_id = result.id
            session.commit()
        return result_id

    return _make


@pytest.fixture
def make_rule(session_factory):
    """Insert an interpretation rule directly, bypassing validation"""

    def _make(**overrides):
        data = generate_rule_data()
        data.update(overrides)
        with session_factory() as session:
            rule = InterpretationRule(**data)
            session.add(rule)
            session.flush()
            rule_id = rule.id
            session.commit()
        return rule_id

    return _make


# Test data generators
def generate_sample_data(**overrides):
    """Generate test sample data"""
    data = {
        "code": "S-0001",
        "stage": SampleStage.PROCESSING,
        "sla_type": SLAType.STANDARD,
        "received_date": FIXED_NOW - timedelta(days=1),
        "sla_status": SLAStatus.ON_TIME,
        "species": "Vitis vinifera",
        "next_crop": None,
    }
    data.update(overrides)
    return data


def generate_rule_data(**overrides):
    """Generate test interpretation rule data"""
    data = {
        "area": "nematology",
        "analyte": "count",
        "comparator": Comparator.GT,
        "threshold": {"value": 100},
        "message": "{analyte} at {value} in {species}",
        "severity": Severity.HIGH,
        "active": True,
    }
    data.update(overrides)
    return data
