"""
SLA Status Engine - deadline classification of in-flight samples
Recomputes due dates and SLA buckets from stored inputs and the current time.
The engine keeps no state between calls, so concurrent sweeps and single
updates always write the same values.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import StorageError
from ..models import SampleStage, SLAType, SLAStatus
from .records import SampleRecord
from .store import LabStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SLAPolicy:
    """SLA windows and the attention threshold"""
    standard_days: int = 10
    express_days: int = 5
    attention_fraction: float = 0.2
    skip_weekends: bool = False
    express_due_soon_days: int = 2

    @classmethod
    def from_settings(cls, config: Settings = None) -> "SLAPolicy":
        config = config or default_settings
        return cls(
            standard_days=config.sla_standard_days,
            express_days=config.sla_express_days,
            attention_fraction=config.sla_attention_fraction,
            skip_weekends=config.sla_skip_weekends,
            express_due_soon_days=config.sla_express_due_soon_days,
        )

    def window_days(self, sla_type: SLAType) -> int:
        if sla_type == SLAType.EXPRESS:
            return self.express_days
        return self.standard_days


@dataclass(frozen=True)
class SLABatchResult:
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"updated": self.updated, "errors": self.errors}


@dataclass(frozen=True)
class SLAStats:
    total_active: int = 0
    on_time: int = 0
    at_risk: int = 0
    breached: int = 0
    express: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_active": self.total_active,
            "on_time": self.on_time,
            "at_risk": self.at_risk,
            "breached": self.breached,
            "express": self.express,
        }


def add_business_days(start: datetime, days: int) -> datetime:
    """Advance ``start`` by ``days`` weekdays, Saturdays and Sundays not counted"""
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


class SLAEngine:
    """Computes and refreshes sample SLA status"""

    def __init__(self, store: LabStore, policy: SLAPolicy = None,
                 clock: Callable[[], datetime] = None):
        self.store = store
        self.policy = policy or SLAPolicy.from_settings()
        self.clock = clock or datetime.utcnow

    def compute_due_date(self, received_date: datetime, sla_type: SLAType) -> datetime:
        days = self.policy.window_days(sla_type)
        if self.policy.skip_weekends:
            return add_business_days(received_date, days)
        return received_date + timedelta(days=days)

    def classify(self, due_date: datetime, received_date: datetime,
                 stage: SampleStage, now: datetime) -> SLAStatus:
        """Single breach-first lookup; terminal samples are frozen"""
        if stage.is_terminal:
            return SLAStatus.FROZEN
        return self._live_bucket(due_date, received_date, now)

    def _live_bucket(self, due_date: datetime, received_date: datetime, now: datetime) -> SLAStatus:
        if now > due_date:
            return SLAStatus.BREACHED
        window = due_date - received_date
        if due_date - now <= window * self.policy.attention_fraction:
            return SLAStatus.AT_RISK
        return SLAStatus.ON_TIME

    def update_sample_sla_status(self, sample_id: int) -> bool:
        """Recompute one sample. Failures are reported as False, never raised."""
        try:
            sample = self.store.get_sample(sample_id)
            if sample is None:
                logger.warning(f"SLA update skipped, sample {sample_id} not found")
                return False
            return self._refresh(sample)
        except StorageError as e:
            logger.error(f"Error updating SLA status for sample {sample_id}: {e.message}")
            return False

    def _refresh(self, sample: SampleRecord, reread: bool = True) -> bool:
        # Frozen samples keep their audit bucket forever
        if sample.sla_status == SLAStatus.FROZEN:
            return True

        now = self.clock()
        due_date = self.compute_due_date(sample.received_date, sample.sla_type)

        if sample.is_terminal:
            frozen_at = sample.completed_at or now
            bucket = self._live_bucket(due_date, sample.received_date, frozen_at)
            written = self.store.write_sla_status(sample.id, due_date, SLAStatus.FROZEN, frozen_bucket=bucket)
        else:
            status = self.classify(due_date, sample.received_date, sample.stage, now)
            written = self.store.write_sla_status(sample.id, due_date, status)

        if written:
            return True

        # The stored stage or status moved on since the sample was read
        current = self.store.get_sample(sample.id)
        if current is None:
            logger.warning(f"SLA update skipped, sample {sample.id} disappeared before write")
            return False
        if reread:
            return self._refresh(current, reread=False)
        logger.debug(f"SLA update for sample {sample.id} superseded by a concurrent change")
        return True

    def update_all_sla_statuses(self) -> SLABatchResult:
        """Sweep every tracked sample, isolating per-record failures"""
        try:
            samples = self.store.list_tracked_samples()
        except StorageError as e:
            logger.error(f"Error fetching samples for SLA update: {e.message}")
            return SLABatchResult(updated=0, errors=1)

        updated = 0
        errors = 0
        for sample in samples:
            try:
                ok = self._refresh(sample)
            except StorageError as e:
                logger.error(f"Error updating SLA status for sample {sample.id}: {e.message}")
                ok = False
            if ok:
                updated += 1
            else:
                errors += 1

        logger.info(f"SLA update completed: {updated} updated, {errors} errors")
        return SLABatchResult(updated=updated, errors=errors)

    def get_sla_stats(self) -> SLAStats:
        total = on_time = at_risk = breached = express = 0
        for sla_status, sla_type, count in self.store.count_active_samples():
            total += count
            if sla_type == SLAType.EXPRESS:
                express += count
            if sla_status == SLAStatus.ON_TIME:
                on_time += count
            elif sla_status == SLAStatus.AT_RISK:
                at_risk += count
            elif sla_status == SLAStatus.BREACHED:
                breached += count
        return SLAStats(total_active=total, on_time=on_time, at_risk=at_risk,
                        breached=breached, express=express)

    def get_samples_needing_attention(self) -> List[SampleRecord]:
        """At-risk and breached samples, most overdue first"""
        return self.store.list_active_samples(sla_statuses=[SLAStatus.AT_RISK, SLAStatus.BREACHED])

    def get_express_due_soon(self, days: Optional[int] = None) -> List[SampleRecord]:
        horizon = self.policy.express_due_soon_days if days is None else days
        return self.store.list_active_samples(
            sla_type=SLAType.EXPRESS,
            due_before=self.clock() + timedelta(days=horizon),
        )
