"""
Aggregation Builder: status counts, chart summaries, periods, staleness,
deadlines.
"""

from datetime import datetime, timedelta, timezone

import pytest

from tension_hub.core.exceptions import ValidationError
from tension_hub.models.chart import ActionStatus
from tension_hub.services.aggregation import (
    chart_summaries,
    child_chart_progress,
    completion_rate,
    in_range,
    period_range,
    stale_charts,
    status_distribution,
    upcoming_deadlines,
)
from tension_hub.services.records import ActionRecord, ChartRecord

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _action(aid, *, chart="c1", status=ActionStatus.NOT_STARTED, due=None):
    return ActionRecord(id=aid, title=aid, chart_id=chart, status=status, due_date=due)


class TestStatusCounts:
    def test_distribution(self):
        counts = status_distribution([
            _action("a", status=ActionStatus.DONE),
            _action("b", status=ActionStatus.DONE),
            _action("c", status=ActionStatus.ON_HOLD),
            _action("d"),
        ])
        assert counts.to_dict() == {
            "total": 4, "done": 2, "in_progress": 0,
            "on_hold": 1, "not_started": 1, "cancelled": 0,
        }

    def test_completion_rate(self):
        assert completion_rate(0, 0) == 0
        assert completion_rate(1, 3) == 33
        assert completion_rate(2, 3) == 67


class TestChartSummaries:
    def test_counts_legacy_rows(self, store, make_chart, make_action):
        chart = make_chart()
        make_action(chart, status=None, is_completed=True)
        make_action(chart, status="pending")
        make_action(chart, status="todo")

        counts = chart_summaries(store, [chart.id])[chart.id].counts
        assert counts.done == 1
        assert counts.on_hold == 1
        assert counts.not_started == 1
        assert counts.total == 3

    def test_assignees_deduplicated(self, store, make_chart, make_action, make_profile):
        chart = make_chart()
        profile = make_profile("ann@x.io", "Ann")
        make_action(chart, assignee="ann@x.io")
        make_action(chart, assignee=" ann@x.io ")
        make_action(chart, assignee="ghost@x.io")
        make_action(chart, assignee="   ")

        summary = chart_summaries(store, [chart.id])[chart.id]
        people = {p.email: p for p in summary.assignees}
        assert set(people) == {"ann@x.io", "ghost@x.io"}
        assert people["ann@x.io"].id == profile.id
        assert people["ann@x.io"].name == "Ann"
        assert people["ghost@x.io"].id is None

    def test_unknown_chart_yields_empty_summary(self, store):
        summary = chart_summaries(store, ["nope"])["nope"]
        assert summary.counts.total == 0
        assert summary.assignees == []

    def test_child_chart_progress(self, store, make_chart, make_action):
        chart = make_chart()
        make_action(chart, status="done")
        make_action(chart, status="in_progress")
        assert child_chart_progress(store, chart.id) == {
            "chart_id": chart.id, "total": 2, "done": 1, "percentage": 50,
        }


class TestPeriodRange:
    def test_all_and_empty(self):
        assert period_range("all", NOW) is None
        assert period_range(None, NOW) is None

    def test_unknown_period(self):
        with pytest.raises(ValidationError):
            period_range("fortnight", NOW)

    def test_this_month(self):
        start, end = period_range("this_month", NOW)
        assert start == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert end == NOW

    def test_last_month_ends_before_this_month(self):
        start, end = period_range("last_month", NOW)
        assert start == datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 1, tzinfo=timezone.utc) - timedelta(microseconds=1)

    def test_last_month_wraps_year(self):
        start, _ = period_range("last_month", datetime(2026, 1, 10, tzinfo=timezone.utc))
        assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)

    def test_last_quarter_covers_three_full_months(self):
        start, end = period_range("last_quarter", datetime(2026, 5, 20, tzinfo=timezone.utc))
        assert start == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 4, 1, tzinfo=timezone.utc) - timedelta(microseconds=1)
        assert in_range(datetime(2026, 3, 31, 23, 0, tzinfo=timezone.utc), (start, end))

    def test_last_quarter_from_first_quarter(self):
        start, end = period_range("last_quarter", NOW)
        assert start == datetime(2025, 10, 1, tzinfo=timezone.utc)
        assert end.year == 2025 and end.month == 12 and end.day == 31

    def test_this_year(self):
        start, end = period_range("this_year", NOW)
        assert start == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert end == NOW

    def test_custom_whole_days(self):
        start, end = period_range("custom", NOW, "2026-02-01", "2026-02-10")
        assert start == datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert (end.day, end.hour, end.minute) == (10, 23, 59)

    def test_custom_missing_bound(self):
        assert period_range("custom", NOW, "2026-02-01", None) is None

    def test_custom_garbage(self):
        with pytest.raises(ValidationError):
            period_range("custom", NOW, "yesterday-ish", "2026-02-10")


class TestStaleCharts:
    def _chart(self, cid, days_ago):
        return ChartRecord(id=cid, title=cid, updated_at=NOW - timedelta(days=days_ago))

    def test_threshold_and_order(self):
        charts = [self._chart("fresh", 2), self._chart("old", 9), self._chart("older", 30)]
        stale = stale_charts(charts, NOW, after_days=7)
        assert [s.id for s in stale] == ["older", "old"]
        assert stale[0].days_since_update == 30

    def test_days_floored(self):
        chart = ChartRecord(id="c", title="c", updated_at=NOW - timedelta(days=8, hours=20))
        assert stale_charts([chart], NOW)[0].days_since_update == 8

    def test_limit(self):
        charts = [self._chart(f"c{n}", 10 + n) for n in range(12)]
        assert len(stale_charts(charts, NOW, limit=5)) == 5

    def test_missing_timestamp_skipped(self):
        assert stale_charts([ChartRecord(id="c", title="c")], NOW) == []


class TestUpcomingDeadlines:
    def test_window_and_exclusions(self):
        actions = [
            _action("soon", due=NOW + timedelta(days=2)),
            _action("later", due=NOW + timedelta(days=20)),
            _action("done", due=NOW + timedelta(days=1), status=ActionStatus.DONE),
            _action("undated"),
            _action("late", due=NOW - timedelta(days=3)),
        ]
        deadlines = upcoming_deadlines(actions, {"c1": "Chart one"}, NOW, window_days=7)
        assert [d.id for d in deadlines] == ["late", "soon"]
        assert deadlines[0].is_overdue is True
        assert deadlines[1].days_until_due == 2
        assert deadlines[1].chart_title == "Chart one"

    def test_minutes_past_due_is_overdue(self):
        [deadline] = upcoming_deadlines([_action("a", due=NOW - timedelta(minutes=10))], {}, NOW)
        assert deadline.days_until_due == 0
        assert deadline.is_overdue is True
        assert deadline.to_dict()["is_overdue"] is True

    def test_partial_day_rounds_up(self):
        deadlines = upcoming_deadlines([_action("a", due=NOW + timedelta(hours=5))], {}, NOW)
        assert deadlines[0].days_until_due == 1

    def test_blocking_counts_attached(self):
        deadlines = upcoming_deadlines(
            [_action("a", due=NOW + timedelta(days=1))], {}, NOW, blocking_counts={"a": 3},
        )
        assert deadlines[0].to_dict()["blocking_count"] == 3

    def test_limit(self):
        actions = [_action(f"a{n}", due=NOW + timedelta(hours=n + 1)) for n in range(15)]
        assert len(upcoming_deadlines(actions, {}, NOW)) == 10
