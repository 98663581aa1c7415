"""
Data store for the Lab Decision Engine
Reads and writes samples, results, rules and applied interpretations on behalf
of the engines. Every query is restricted to the store's company scope.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..core.database import DatabaseManager, SessionLocal
from ..core.exceptions import StorageError
from ..models import (
    Sample, Result, InterpretationRule, AppliedInterpretation,
    SLAStatus, SLAType, ResultStatus, TERMINAL_STAGES,
)
from .records import (
    SampleRecord, ResultRecord, SampleContext, RuleRecord,
    AppliedInterpretationRecord, InterpretationCandidate,
)

logger = logging.getLogger(__name__)


class LabStore:
    """SQLAlchemy-backed store, optionally scoped to one company"""

    def __init__(self, session_factory: sessionmaker = None, company_id: Optional[str] = None):
        self.db = DatabaseManager(session_factory or SessionLocal)
        self.company_id = company_id

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with self.db.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Storage failure during {operation}: {str(e)}")
            raise StorageError(f"{operation} failed: {str(e)}") from e

    def _scope(self, stmt, model):
        if self.company_id is None:
            return stmt
        return stmt.where(model.company_id == self.company_id)

    def _rule_scope(self, stmt):
        # Rules without a company are shared by every tenant
        if self.company_id is None:
            return stmt
        return stmt.where(or_(InterpretationRule.company_id == self.company_id,
                              InterpretationRule.company_id.is_(None)))

    # Samples

    def get_sample(self, sample_id: int) -> Optional[SampleRecord]:
        with self._session("get_sample") as session:
            stmt = self._scope(select(Sample).where(Sample.id == sample_id), Sample)
            sample = session.execute(stmt).scalar_one_or_none()
            return SampleRecord.from_model(sample) if sample else None

    def list_tracked_samples(self) -> List[SampleRecord]:
        """Samples whose SLA status still needs maintenance: every active
        sample plus terminal samples that have not been frozen yet"""
        with self._session("list_tracked_samples") as session:
            stmt = select(Sample).where(or_(
                Sample.stage.not_in(list(TERMINAL_STAGES)),
                Sample.sla_status != SLAStatus.FROZEN,
            )).order_by(Sample.id)
            stmt = self._scope(stmt, Sample)
            return [SampleRecord.from_model(s) for s in session.execute(stmt).scalars()]

    def list_active_samples(
        self,
        sla_statuses: Iterable[SLAStatus] = None,
        sla_type: SLAType = None,
        due_before: datetime = None,
    ) -> List[SampleRecord]:
        """Non-terminal samples, earliest due date first, then earliest received"""
        with self._session("list_active_samples") as session:
            stmt = select(Sample).where(Sample.stage.not_in(list(TERMINAL_STAGES)))
            if sla_statuses is not None:
                stmt = stmt.where(Sample.sla_status.in_(list(sla_statuses)))
            if sla_type is not None:
                stmt = stmt.where(Sample.sla_type == sla_type)
            if due_before is not None:
                stmt = stmt.where(and_(Sample.due_date.is_not(None), Sample.due_date <= due_before))
            stmt = self._scope(stmt, Sample).order_by(
                Sample.due_date.is_(None), Sample.due_date, Sample.received_date, Sample.id
            )
            return [SampleRecord.from_model(s) for s in session.execute(stmt).scalars()]

    def count_active_samples(self) -> List[Tuple[SLAStatus, SLAType, int]]:
        """(sla_status, sla_type, count) rows over non-terminal samples"""
        with self._session("count_active_samples") as session:
            stmt = (
                select(Sample.sla_status, Sample.sla_type, func.count(Sample.id))
                .where(Sample.stage.not_in(list(TERMINAL_STAGES)))
                .group_by(Sample.sla_status, Sample.sla_type)
            )
            stmt = self._scope(stmt, Sample)
            return [tuple(row) for row in session.execute(stmt)]

    def write_sla_status(
        self,
        sample_id: int,
        due_date: datetime,
        sla_status: SLAStatus,
        frozen_bucket: Optional[SLAStatus] = None,
    ) -> bool:
        """Write due date and status in one statement.

        Frozen samples are never rewritten, and a live bucket is only written
        while the sample is still in a non-terminal stage. Returns False when
        no row qualified: the sample is gone or its stage moved on.
        """
        with self._session("write_sla_status") as session:
            values = {"due_date": due_date, "sla_status": sla_status}
            if frozen_bucket is not None:
                values["sla_frozen_bucket"] = frozen_bucket
            stmt = update(Sample).where(Sample.id == sample_id, Sample.sla_status != SLAStatus.FROZEN)
            if sla_status == SLAStatus.FROZEN:
                stmt = stmt.where(Sample.stage.in_(list(TERMINAL_STAGES)))
            else:
                stmt = stmt.where(Sample.stage.not_in(list(TERMINAL_STAGES)))
            stmt = self._scope(stmt, Sample).values(**values)
            return session.execute(stmt).rowcount == 1

    def sample_has_validated_results(self, sample_id: int) -> bool:
        with self._session("sample_has_validated_results") as session:
            stmt = select(func.count(Result.id)).join(Sample, Result.sample_id == Sample.id).where(
                Result.sample_id == sample_id,
                Result.status == ResultStatus.VALIDATED,
            )
            stmt = self._scope(stmt, Sample)
            return session.execute(stmt).scalar_one() > 0

    def load_sample_context(self, sample_id: int) -> Optional[SampleContext]:
        with self._session("load_sample_context") as session:
            stmt = self._scope(
                select(Sample)
                .where(Sample.id == sample_id)
                .options(selectinload(Sample.results).selectinload(Result.sample_test)),
                Sample,
            )
            sample = session.execute(stmt).scalar_one_or_none()
            if sample is None:
                return None
            results = sorted(sample.results, key=lambda r: r.id)
            return SampleContext(
                sample=SampleRecord.from_model(sample),
                results=[ResultRecord.from_model(r) for r in results],
            )

    # Interpretation rules

    def list_rules(self, area: str = None, active: bool = None) -> List[RuleRecord]:
        with self._session("list_rules") as session:
            stmt = select(InterpretationRule)
            if area is not None:
                stmt = stmt.where(InterpretationRule.area == area)
            if active is not None:
                stmt = stmt.where(InterpretationRule.active == active)
            stmt = self._rule_scope(stmt).order_by(
                InterpretationRule.created_at.desc(), InterpretationRule.id.desc()
            )
            return [RuleRecord.from_model(r) for r in session.execute(stmt).scalars()]

    def get_rule(self, rule_id: int) -> Optional[RuleRecord]:
        with self._session("get_rule") as session:
            stmt = self._rule_scope(select(InterpretationRule).where(InterpretationRule.id == rule_id))
            rule = session.execute(stmt).scalar_one_or_none()
            return RuleRecord.from_model(rule) if rule else None

    def create_rule(self, **fields) -> RuleRecord:
        with self._session("create_rule") as session:
            fields.setdefault("company_id", self.company_id)
            rule = InterpretationRule(**fields)
            session.add(rule)
            session.flush()
            return RuleRecord.from_model(rule)

    def set_rule_active(self, rule_id: int, active: bool) -> Optional[RuleRecord]:
        with self._session("set_rule_active") as session:
            stmt = self._rule_scope(select(InterpretationRule).where(InterpretationRule.id == rule_id))
            rule = session.execute(stmt).scalar_one_or_none()
            if rule is None:
                return None
            rule.active = active
            session.flush()
            return RuleRecord.from_model(rule)

    # Applied interpretations

    def apply_interpretations(self, candidates: List[InterpretationCandidate]) -> int:
        """Insert every candidate whose (rule, result) pair is not stored yet.

        All candidates are written in one transaction. Returns the number of
        rows actually inserted.
        """
        if not candidates:
            return 0
        with self._session("apply_interpretations") as session:
            dialect = session.get_bind().dialect.name
            inserted = 0
            for candidate in candidates:
                values = _candidate_values(candidate)
                if dialect == "sqlite":
                    stmt = sqlite_insert(AppliedInterpretation).values(**values)
                elif dialect == "postgresql":
                    stmt = pg_insert(AppliedInterpretation).values(**values)
                else:
                    inserted += _insert_with_savepoint(session, values)
                    continue
                stmt = stmt.on_conflict_do_nothing(index_elements=["rule_id", "result_id"])
                inserted += session.execute(stmt).rowcount
            return inserted

    def list_applied_interpretations(self, sample_id: int) -> List[AppliedInterpretationRecord]:
        with self._session("list_applied_interpretations") as session:
            stmt = (
                select(AppliedInterpretation)
                .join(Sample, AppliedInterpretation.sample_id == Sample.id)
                .where(AppliedInterpretation.sample_id == sample_id)
                .options(selectinload(AppliedInterpretation.rule))
                .order_by(AppliedInterpretation.created_at, AppliedInterpretation.id)
            )
            stmt = self._scope(stmt, Sample)
            return [AppliedInterpretationRecord.from_model(a) for a in session.execute(stmt).scalars()]


def _candidate_values(candidate: InterpretationCandidate) -> Dict:
    return {
        "sample_id": candidate.sample_id,
        "rule_id": candidate.rule_id,
        "result_id": candidate.result_id,
        "message": candidate.message,
        "severity": candidate.severity,
        "observed_value": candidate.observed_value,
        "created_at": datetime.utcnow(),
    }


def _insert_with_savepoint(session: Session, values: Dict) -> int:
    # Backends without ON CONFLICT still reject duplicates through the unique constraint
    try:
        with session.begin_nested():
            session.add(AppliedInterpretation(**values))
        return 1
    except IntegrityError:
        return 0
