"""
Unit tests for the report generation dispatcher.

Independent tests over MockStorage with a fixed clock; no I/O.
"""

from datetime import datetime, timedelta

import pytest

from feedback_analytics.engine.clock import FixedClock
from feedback_analytics.engine.dispatcher import ReportGenerationDispatcher
from feedback_analytics.engine.report_builder import ReportBuilder
from feedback_analytics.engine.schedule_calculator import next_fire_time
from tests.conftest import REFERENCE_NOW, MockStorage, RecordingBuilder, make_report, make_schedule

PAST = REFERENCE_NOW - timedelta(hours=1)


def _dispatcher(storage, builder, **kwargs):
    return ReportGenerationDispatcher(
        storage=storage, builder=builder, clock=FixedClock(REFERENCE_NOW), **kwargs
    )


class TestDispatcherInit:
    def test_rejects_zero_workers(self, mock_storage, recording_builder):
        with pytest.raises(ValueError):
            ReportGenerationDispatcher(mock_storage, recording_builder, max_workers=0)

    def test_defaults_to_sequential(self, mock_storage, recording_builder):
        dispatcher = ReportGenerationDispatcher(mock_storage, recording_builder)
        assert dispatcher.max_workers == 1


class TestProcessDue:
    def test_nothing_due(self, mock_storage, recording_builder):
        mock_storage.write_report(make_report(next_generation_at=REFERENCE_NOW + timedelta(hours=1)))

        result = _dispatcher(mock_storage, recording_builder).process_due()

        assert result.processed == 0
        assert result.failed == []
        assert result.events == []
        assert recording_builder.built == []

    def test_due_report_is_generated_and_advanced(self, mock_storage, recording_builder):
        schedule = make_schedule("daily", "09:00")
        report = make_report(schedule=schedule, next_generation_at=PAST)
        mock_storage.write_report(report)

        result = _dispatcher(mock_storage, recording_builder).process_due()

        assert result.processed == 1
        assert recording_builder.built == [report.id]
        stored = mock_storage.read_report(report.id)
        assert stored.last_generated_at == REFERENCE_NOW
        assert stored.next_generation_at == datetime(2024, 3, 16, 9, 0)

        (event,) = result.events
        assert event.report_id == report.id
        assert event.generated_at == REFERENCE_NOW
        assert event.next_generation_at == next_fire_time(REFERENCE_NOW, schedule)

    def test_failure_is_contained_per_report(self, mock_storage):
        report_a = make_report(name="A", next_generation_at=PAST)
        report_b = make_report(name="B", next_generation_at=PAST)
        mock_storage.write_report(report_a)
        mock_storage.write_report(report_b)
        builder = RecordingBuilder(failing={report_a.id})

        result = _dispatcher(mock_storage, builder).process_due()

        assert result.processed == 1
        assert [f.id for f in result.failed] == [report_a.id]
        assert "template rendering failed" in result.failed[0].error
        assert [e.report_id for e in result.events] == [report_b.id]

        assert mock_storage.read_report(report_a.id).next_generation_at == PAST
        assert mock_storage.read_report(report_a.id).last_generated_at is None
        assert mock_storage.read_report(report_b.id).next_generation_at > REFERENCE_NOW

    def test_second_poll_does_not_refire(self, mock_storage, recording_builder):
        report = make_report(next_generation_at=PAST)
        mock_storage.write_report(report)
        dispatcher = _dispatcher(mock_storage, recording_builder)

        first = dispatcher.process_due(REFERENCE_NOW)
        second = dispatcher.process_due(REFERENCE_NOW)

        assert first.processed == 1
        assert second.processed == 0
        assert recording_builder.built == [report.id]
        assert mock_storage.mark_generated_calls == [report.id]

    def test_failed_report_is_retried_next_poll(self, mock_storage):
        report = make_report(next_generation_at=PAST)
        mock_storage.write_report(report)
        builder = RecordingBuilder(failing={report.id})
        dispatcher = _dispatcher(mock_storage, builder)

        dispatcher.process_due()
        builder.failing.clear()
        result = dispatcher.process_due()

        assert result.processed == 1
        assert builder.built == [report.id, report.id]

    def test_inactive_and_unscheduled_reports_skipped(self, mock_storage, recording_builder):
        mock_storage.write_report(make_report(is_active=False, next_generation_at=PAST))
        mock_storage.write_report(make_report(next_generation_at=None))

        result = _dispatcher(mock_storage, recording_builder).process_due()

        assert result.processed == 0
        assert recording_builder.built == []

    def test_stale_rows_from_storage_are_refiltered(self, recording_builder):
        class LooseStorage(MockStorage):
            def find_due_reports(self, now, organization_id=None):
                return list(self._reports.values())

        storage = LooseStorage()
        due = make_report(next_generation_at=PAST)
        storage.write_report(due)
        storage.write_report(make_report(next_generation_at=REFERENCE_NOW + timedelta(days=1)))
        storage.write_report(make_report(is_active=False, next_generation_at=PAST))

        result = _dispatcher(storage, recording_builder).process_due()

        assert recording_builder.built == [due.id]
        assert result.processed == 1

    def test_manual_schedule_generates_once_then_stops(self, mock_storage, recording_builder):
        report = make_report(schedule=make_schedule("manual", time=None), next_generation_at=PAST)
        mock_storage.write_report(report)
        dispatcher = _dispatcher(mock_storage, recording_builder)

        result = dispatcher.process_due()

        assert result.events[0].next_generation_at is None
        assert mock_storage.read_report(report.id).next_generation_at is None
        assert dispatcher.process_due().processed == 0

    def test_organization_scope_leaves_other_tenants_due(self, mock_storage, recording_builder):
        own = make_report(next_generation_at=PAST)
        foreign = make_report(organization_id="org_other", next_generation_at=PAST)
        mock_storage.write_report(own)
        mock_storage.write_report(foreign)

        result = _dispatcher(mock_storage, recording_builder).process_due(
            organization_id="org_other"
        )

        assert [e.report_id for e in result.events] == [foreign.id]
        assert recording_builder.built == [foreign.id]
        assert mock_storage.read_report(own.id).next_generation_at == PAST

    def test_organization_scope_refilters_loose_storage(self, recording_builder):
        class UnscopedStorage(MockStorage):
            def find_due_reports(self, now, organization_id=None):
                return super().find_due_reports(now)

        storage = UnscopedStorage()
        storage.write_report(make_report(next_generation_at=PAST))

        result = _dispatcher(storage, recording_builder).process_due(organization_id="org_other")

        assert result.processed == 0
        assert recording_builder.built == []

    def test_explicit_now_overrides_clock(self, mock_storage, recording_builder):
        later = REFERENCE_NOW + timedelta(days=2)
        mock_storage.write_report(make_report(next_generation_at=REFERENCE_NOW + timedelta(days=1)))

        result = _dispatcher(mock_storage, recording_builder).process_due(later)

        assert result.processed == 1
        assert result.events[0].generated_at == later


class TestPersistenceFailures:
    def test_schedule_update_error_is_reported(self, recording_builder):
        class BrokenStorage(MockStorage):
            def mark_generated(self, report_id, *args, **kwargs):
                raise RuntimeError("disk full")

        storage = BrokenStorage()
        report = make_report(next_generation_at=PAST)
        storage.write_report(report)

        result = _dispatcher(storage, recording_builder).process_due()

        assert result.processed == 0
        assert result.events == []
        assert result.failed[0].id == report.id
        assert result.failed[0].error == "Schedule update failed: disk full"

    def test_report_deleted_during_build(self, mock_storage):
        class DeletingBuilder(ReportBuilder):
            def build(self, report_id):
                mock_storage.delete_report(report_id)
                return None

        report = make_report(next_generation_at=PAST)
        mock_storage.write_report(report)

        result = _dispatcher(mock_storage, DeletingBuilder()).process_due()

        assert result.processed == 0
        assert result.failed[0].error == "Report no longer exists"

    def test_schedule_changed_to_manual_during_build(self, mock_storage):
        class ReschedulingBuilder(ReportBuilder):
            def build(self, report_id):
                mock_storage.update_report(
                    report_id,
                    schedule=make_schedule("manual", time=None),
                    next_generation_at=None,
                )
                return None

        report = make_report(schedule=make_schedule("daily", "09:00"), next_generation_at=PAST)
        mock_storage.write_report(report)

        result = _dispatcher(mock_storage, ReschedulingBuilder()).process_due()

        stored = mock_storage.read_report(report.id)
        assert stored.schedule.frequency == "manual"
        assert stored.next_generation_at is None
        assert stored.last_generated_at is None
        assert result.processed == 0
        assert result.failed[0].error == "Report schedule changed during generation"

    def test_reschedule_during_build_is_kept(self, mock_storage):
        new_schedule = make_schedule("weekly", "08:00", dayOfWeek=1)
        new_next = datetime(2024, 3, 18, 8, 0)

        class ReschedulingBuilder(ReportBuilder):
            def build(self, report_id):
                mock_storage.update_report(
                    report_id, schedule=new_schedule, next_generation_at=new_next
                )
                return None

        report = make_report(next_generation_at=PAST)
        mock_storage.write_report(report)

        _dispatcher(mock_storage, ReschedulingBuilder()).process_due()

        stored = mock_storage.read_report(report.id)
        assert stored.schedule == new_schedule
        assert stored.next_generation_at == new_next


class TestNextFireTimeFailures:
    def test_unrepresentable_next_fire_time_is_contained(self, mock_storage, recording_builder):
        end_of_calendar = datetime(9999, 6, 1, 10, 0)
        yearly = make_report(
            name="Yearly",
            schedule=make_schedule("yearly", "09:00"),
            next_generation_at=datetime(9999, 1, 1, 9, 0),
        )
        daily = make_report(
            name="Daily",
            schedule=make_schedule("daily", "09:00"),
            next_generation_at=datetime(9999, 6, 1, 9, 0),
        )
        mock_storage.write_report(yearly)
        mock_storage.write_report(daily)

        result = _dispatcher(mock_storage, recording_builder).process_due(end_of_calendar)

        assert result.processed == 1
        assert [e.report_id for e in result.events] == [daily.id]
        assert [f.id for f in result.failed] == [yearly.id]
        assert result.failed[0].error.startswith("Next fire-time computation failed")
        assert recording_builder.built == [daily.id]
        assert mock_storage.read_report(yearly.id).next_generation_at == datetime(9999, 1, 1, 9, 0)
        assert mock_storage.read_report(daily.id).next_generation_at == datetime(9999, 6, 2, 9, 0)


class TestConcurrentDispatch:
    def test_bounded_pool_generates_every_report_once(self, mock_storage, recording_builder):
        reports = [make_report(name=f"R{i}", next_generation_at=PAST) for i in range(10)]
        for report in reports:
            mock_storage.write_report(report)

        result = _dispatcher(mock_storage, recording_builder, max_workers=4).process_due()

        assert result.processed == 10
        assert sorted(recording_builder.built) == sorted(r.id for r in reports)
        assert sorted(mock_storage.mark_generated_calls) == sorted(r.id for r in reports)

    def test_pool_contains_failures(self, mock_storage):
        reports = [make_report(name=f"R{i}", next_generation_at=PAST) for i in range(6)]
        for report in reports:
            mock_storage.write_report(report)
        failing = {reports[1].id, reports[4].id}
        builder = RecordingBuilder(failing=failing)

        result = _dispatcher(mock_storage, builder, max_workers=3).process_due()

        assert result.processed == 4
        assert {f.id for f in result.failed} == failing
        for report in reports:
            stored = mock_storage.read_report(report.id)
            if report.id in failing:
                assert stored.next_generation_at == PAST
            else:
                assert stored.next_generation_at > REFERENCE_NOW
