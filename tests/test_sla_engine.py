"""
Unit tests for the SLA status engine
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import update

from lab_decision.core.exceptions import StorageError
from lab_decision.models import Sample, SampleStage, SLAType, SLAStatus
from lab_decision.services.sla_engine import SLAEngine, SLAPolicy, add_business_days
from lab_decision.services.store import LabStore


class FailingWriteStore(LabStore):
    """Store whose writes fail for selected samples"""

    def __init__(self, session_factory, failing_ids):
        super().__init__(session_factory)
        self.failing_ids = set(failing_ids)

    def write_sla_status(self, sample_id, *args, **kwargs):
        if sample_id in self.failing_ids:
            raise StorageError(f"write refused for {sample_id}")
        return super().write_sla_status(sample_id, *args, **kwargs)


class TestClassification:
    """Pure classification and due date computation"""

    def test_due_date_uses_window_per_sla_type(self, sla_engine, now):
        assert sla_engine.compute_due_date(now, SLAType.STANDARD) == now + timedelta(days=10)
        assert sla_engine.compute_due_date(now, SLAType.EXPRESS) == now + timedelta(days=5)

    def test_breach_first_order(self, sla_engine, now):
        received = now - timedelta(days=12)
        due = received + timedelta(days=10)
        assert sla_engine.classify(due, received, SampleStage.PROCESSING, now) == SLAStatus.BREACHED

    def test_at_risk_boundary_is_inclusive(self, sla_engine, now):
        # Exactly 2 days (20% of 10) remaining
        received = now - timedelta(days=8)
        due = received + timedelta(days=10)
        assert sla_engine.classify(due, received, SampleStage.PROCESSING, now) == SLAStatus.AT_RISK

    def test_due_now_is_not_yet_breached(self, sla_engine, now):
        received = now - timedelta(days=10)
        assert sla_engine.classify(now, received, SampleStage.PROCESSING, now) == SLAStatus.AT_RISK

    def test_terminal_stage_is_frozen(self, sla_engine, now):
        received = now - timedelta(days=30)
        due = received + timedelta(days=10)
        assert sla_engine.classify(due, received, SampleStage.COMPLETED, now) == SLAStatus.FROZEN

    def test_attention_fraction_is_configurable(self, store, now):
        engine = SLAEngine(store, SLAPolicy(standard_days=10, attention_fraction=0.5), clock=lambda: now)
        received = now - timedelta(days=6)
        due = received + timedelta(days=10)
        assert engine.classify(due, received, SampleStage.PROCESSING, now) == SLAStatus.AT_RISK

    def test_business_days_skip_weekends(self):
        friday = datetime(2026, 3, 13, 9, 0)
        assert add_business_days(friday, 1) == datetime(2026, 3, 16, 9, 0)
        assert add_business_days(friday, 5) == datetime(2026, 3, 20, 9, 0)

    def test_skip_weekends_policy(self, store, now):
        engine = SLAEngine(store, SLAPolicy(express_days=4, skip_weekends=True), clock=lambda: now)
        # Wednesday + 4 business days = next Tuesday
        assert engine.compute_due_date(now, SLAType.EXPRESS) == now + timedelta(days=6)

    def test_policy_from_settings(self):
        from lab_decision.core.config import Settings
        config = Settings(sla_standard_days=7, sla_express_days=3, sla_attention_fraction=0.25)
        policy = SLAPolicy.from_settings(config)
        assert policy.window_days(SLAType.STANDARD) == 7
        assert policy.window_days(SLAType.EXPRESS) == 3
        assert policy.attention_fraction == 0.25


class TestSingleUpdate:
    """update_sample_sla_status"""

    @pytest.mark.parametrize("days_ago,expected", [
        (10, SLAStatus.BREACHED),
        (9, SLAStatus.AT_RISK),
        (1, SLAStatus.ON_TIME),
    ])
    def test_convergence_with_wall_clock(self, store, policy, make_sample, days_ago, expected):
        # The engine reads the clock after the sample is stored, so "now - 10d" is past due
        sample_id = make_sample(received_date=datetime.utcnow() - timedelta(days=days_ago))
        engine = SLAEngine(store, policy)

        assert engine.update_sample_sla_status(sample_id) is True
        sample = store.get_sample(sample_id)
        assert sample.sla_status == expected
        assert sample.due_date == sample.received_date + timedelta(days=10)

    def test_result_does_not_depend_on_previous_status(self, sla_engine, store, make_sample, now):
        first = make_sample(received_date=now - timedelta(days=1), sla_status=SLAStatus.BREACHED)
        second = make_sample(received_date=now - timedelta(days=1), sla_status=SLAStatus.ON_TIME)

        sla_engine.update_sample_sla_status(first)
        sla_engine.update_sample_sla_status(second)

        assert store.get_sample(first).sla_status == store.get_sample(second).sla_status == SLAStatus.ON_TIME

    def test_missing_sample_returns_false(self, sla_engine):
        assert sla_engine.update_sample_sla_status(9999) is False

    def test_storage_failure_returns_false(self, session_factory, policy, make_sample, now):
        sample_id = make_sample()
        engine = SLAEngine(FailingWriteStore(session_factory, [sample_id]), policy, clock=lambda: now)

        assert engine.update_sample_sla_status(sample_id) is False

    def test_failed_write_leaves_record_untouched(self, session_factory, store, policy, make_sample, now):
        sample_id = make_sample(received_date=now - timedelta(days=20))
        engine = SLAEngine(FailingWriteStore(session_factory, [sample_id]), policy, clock=lambda: now)

        engine.update_sample_sla_status(sample_id)

        sample = store.get_sample(sample_id)
        assert sample.sla_status == SLAStatus.ON_TIME
        assert sample.due_date is None


class TestFreeze:
    """Terminal samples stop being tracked"""

    def test_completed_sample_is_frozen(self, sla_engine, store, make_sample, now):
        sample_id = make_sample(stage=SampleStage.COMPLETED, received_date=now - timedelta(days=3))

        assert sla_engine.update_sample_sla_status(sample_id) is True

        sample = store.get_sample(sample_id)
        assert sample.sla_status == SLAStatus.FROZEN
        assert sample.sla_frozen_bucket == SLAStatus.ON_TIME

    def test_frozen_bucket_uses_completion_time(self, sla_engine, store, make_sample, now):
        received = now - timedelta(days=30)
        sample_id = make_sample(
            stage=SampleStage.COMPLETED,
            received_date=received,
            completed_at=received + timedelta(days=9),
        )

        sla_engine.update_sample_sla_status(sample_id)

        assert store.get_sample(sample_id).sla_frozen_bucket == SLAStatus.AT_RISK

    def test_repeated_updates_leave_frozen_status_unchanged(self, store, policy, make_sample, now):
        sample_id = make_sample(stage=SampleStage.COMPLETED, received_date=now - timedelta(days=3))
        SLAEngine(store, policy, clock=lambda: now).update_sample_sla_status(sample_id)
        before = store.get_sample(sample_id)

        later = SLAEngine(store, policy, clock=lambda: now + timedelta(days=365))
        assert later.update_sample_sla_status(sample_id) is True
        assert later.update_sample_sla_status(sample_id) is True

        after = store.get_sample(sample_id)
        assert after.sla_status == before.sla_status == SLAStatus.FROZEN
        assert after.sla_frozen_bucket == before.sla_frozen_bucket
        assert after.due_date == before.due_date


class TestBatchUpdate:
    """update_all_sla_statuses"""

    def test_updates_every_active_sample(self, sla_engine, store, make_sample, now):
        ids = [make_sample(received_date=now - timedelta(days=d)) for d in (1, 9, 11)]

        result = sla_engine.update_all_sla_statuses()

        assert result.to_dict() == {"updated": 3, "errors": 0}
        statuses = [store.get_sample(i).sla_status for i in ids]
        assert statuses == [SLAStatus.ON_TIME, SLAStatus.AT_RISK, SLAStatus.BREACHED]

    def test_partial_failure_is_counted_not_raised(self, session_factory, policy, make_sample, now):
        ids = [make_sample(received_date=now - timedelta(days=d)) for d in range(1, 6)]
        engine = SLAEngine(FailingWriteStore(session_factory, [ids[2]]), policy, clock=lambda: now)

        result = engine.update_all_sla_statuses()

        assert result.updated == 4
        assert result.errors == 1

    def test_frozen_samples_are_skipped(self, sla_engine, make_sample, now):
        make_sample()
        make_sample(stage=SampleStage.COMPLETED, sla_status=SLAStatus.FROZEN)

        assert sla_engine.update_all_sla_statuses().updated == 1

    def test_newly_completed_samples_get_frozen(self, sla_engine, store, make_sample):
        sample_id = make_sample(stage=SampleStage.COMPLETED)

        sla_engine.update_all_sla_statuses()

        assert store.get_sample(sample_id).sla_status == SLAStatus.FROZEN

    def test_listing_failure_reports_one_error(self, policy, now):
        class BrokenStore:
            def list_tracked_samples(self):
                raise StorageError("database unavailable")

        result = SLAEngine(BrokenStore(), policy, clock=lambda: now).update_all_sla_statuses()
        assert result.to_dict() == {"updated": 0, "errors": 1}

    def test_sweep_does_not_unfreeze_sample_completed_meanwhile(self, session_factory, store, policy,
                                                                make_sample, now):
        sample_id = make_sample(received_date=now - timedelta(days=9))

        class CompletingStore(LabStore):
            """Sample is completed and frozen right after the sweep lists it"""

            def list_tracked_samples(self):
                samples = super().list_tracked_samples()
                with session_factory() as session:
                    session.execute(update(Sample).where(Sample.id == sample_id).values(
                        stage=SampleStage.COMPLETED, completed_at=now))
                    session.commit()
                SLAEngine(LabStore(session_factory), policy, clock=lambda: now).update_sample_sla_status(sample_id)
                return samples

        engine = SLAEngine(CompletingStore(session_factory), policy, clock=lambda: now)

        assert engine.update_all_sla_statuses().to_dict() == {"updated": 1, "errors": 0}
        sample = store.get_sample(sample_id)
        assert sample.sla_status == SLAStatus.FROZEN
        assert sample.sla_frozen_bucket == SLAStatus.AT_RISK

    def test_sweep_freezes_sample_completed_after_listing(self, session_factory, store, policy,
                                                          make_sample, now):
        sample_id = make_sample(received_date=now - timedelta(days=1))

        class CompletingStore(LabStore):
            def list_tracked_samples(self):
                samples = super().list_tracked_samples()
                with session_factory() as session:
                    session.execute(update(Sample).where(Sample.id == sample_id).values(
                        stage=SampleStage.COMPLETED))
                    session.commit()
                return samples

        engine = SLAEngine(CompletingStore(session_factory), policy, clock=lambda: now)

        assert engine.update_all_sla_statuses().errors == 0
        sample = store.get_sample(sample_id)
        assert sample.sla_status == SLAStatus.FROZEN
        assert sample.sla_frozen_bucket == SLAStatus.ON_TIME

    def test_sweep_and_single_update_converge(self, sla_engine, store, make_sample, now):
        sample_id = make_sample(received_date=now - timedelta(days=9))

        sla_engine.update_sample_sla_status(sample_id)
        single = store.get_sample(sample_id)
        sla_engine.update_all_sla_statuses()
        swept = store.get_sample(sample_id)

        assert single == swept


class TestReporting:
    """Stats and attention lists"""

    def test_stats_count_active_samples_only(self, sla_engine, make_sample, now):
        make_sample(received_date=now - timedelta(days=1))
        make_sample(received_date=now - timedelta(days=9), sla_type=SLAType.STANDARD)
        make_sample(received_date=now - timedelta(days=6), sla_type=SLAType.EXPRESS)
        make_sample(stage=SampleStage.COMPLETED)
        sla_engine.update_all_sla_statuses()

        stats = sla_engine.get_sla_stats()

        assert stats.to_dict() == {
            "total_active": 3,
            "on_time": 1,
            "at_risk": 1,
            "breached": 1,
            "express": 1,
        }

    def test_attention_list_most_overdue_first(self, sla_engine, make_sample, now):
        make_sample(code="ON-TIME", received_date=now - timedelta(days=1))
        make_sample(code="AT-RISK", received_date=now - timedelta(days=9))
        make_sample(code="LATE", received_date=now - timedelta(days=11))
        make_sample(code="LATER", received_date=now - timedelta(days=15))
        sla_engine.update_all_sla_statuses()

        codes = [s.code for s in sla_engine.get_samples_needing_attention()]

        assert codes == ["LATER", "LATE", "AT-RISK"]

    def test_attention_ties_broken_by_received_date(self, sla_engine, make_sample, now):
        # Same due date: a standard sample received 5 days before an express one
        make_sample(code="EXPRESS", sla_type=SLAType.EXPRESS, received_date=now - timedelta(days=7))
        make_sample(code="STANDARD", sla_type=SLAType.STANDARD, received_date=now - timedelta(days=12))
        sla_engine.update_all_sla_statuses()

        codes = [s.code for s in sla_engine.get_samples_needing_attention()]

        assert codes == ["STANDARD", "EXPRESS"]

    def test_express_due_soon(self, sla_engine, make_sample, now):
        make_sample(code="SOON", sla_type=SLAType.EXPRESS, received_date=now - timedelta(days=4))
        make_sample(code="LATER", sla_type=SLAType.EXPRESS, received_date=now)
        make_sample(code="STD", sla_type=SLAType.STANDARD, received_date=now - timedelta(days=9))
        sla_engine.update_all_sla_statuses()

        assert [s.code for s in sla_engine.get_express_due_soon()] == ["SOON"]
