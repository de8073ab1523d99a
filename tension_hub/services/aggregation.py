"""
Aggregation Builder — per-chart rollups used by the dashboard.

    chart_summaries:      {chart_id: ChartSummary(counts, assignees)}
    status_distribution:  StatusCounts over a list of actions
    period_range:         dashboard period keyword → (start, end)
    stale_charts:         charts not updated for STALE_AFTER_DAYS
    upcoming_deadlines:   open actions due within UPCOMING_WINDOW_DAYS
    child_chart_progress: done / total for one chart

Everything operates on normalized records (services.records); statuses
have already been reconciled, so counting never sees legacy values.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone

from tension_hub.core.exceptions import ValidationError
from tension_hub.models.chart import Action, ActionStatus
from tension_hub.models.profile import Profile
from tension_hub.services.record_store import RecordStore
from tension_hub.services.records import (
    ActionRecord,
    ChartRecord,
    Person,
    ProfileRecord,
    action_record,
    normalize_assignee,
    profile_record,
)
from tension_hub.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)

PERIODS = ("all", "this_month", "last_month", "this_quarter", "last_quarter", "this_year", "custom")


# ── Status counts ────────────────────────────────────────────────────────────


@dataclass
class StatusCounts:
    total: int = 0
    done: int = 0
    in_progress: int = 0
    on_hold: int = 0
    not_started: int = 0
    cancelled: int = 0

    def add(self, status: ActionStatus) -> None:
        self.total += 1
        setattr(self, status.value, getattr(self, status.value) + 1)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "done": self.done,
            "in_progress": self.in_progress,
            "on_hold": self.on_hold,
            "not_started": self.not_started,
            "cancelled": self.cancelled,
        }


def status_distribution(actions) -> StatusCounts:
    counts = StatusCounts()
    for action in actions:
        counts.add(action.status)
    return counts


def completion_rate(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round(completed / total * 100))


# ── Profiles ─────────────────────────────────────────────────────────────────


def load_profiles(store: RecordStore, emails) -> dict[str, ProfileRecord]:
    """email → profile for every distinct non-empty email, one batched query."""
    emails = {e for e in (normalize_assignee(x) for x in emails) if e}
    if not emails:
        return {}
    return {
        p.email: profile_record(p)
        for p in store.find_many_by_ids(Profile, sorted(emails), field="email")
    }


# ── Chart summaries ──────────────────────────────────────────────────────────


@dataclass
class ChartSummary:
    chart_id: str
    counts: StatusCounts = field(default_factory=StatusCounts)
    assignees: list[Person] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "chart_id": self.chart_id,
            "counts": self.counts.to_dict(),
            "assignees": [p.to_dict() for p in self.assignees],
        }


def summarize(chart_ids, actions: list[ActionRecord], profiles: dict[str, ProfileRecord]) -> dict[str, ChartSummary]:
    """Pure rollup: counts and a deduplicated assignee roster per chart.

    Assignees without a matching profile stay on the roster with no id,
    named by their email.
    """
    summaries = {cid: ChartSummary(cid) for cid in chart_ids}
    seen: dict[str, set] = {cid: set() for cid in chart_ids}
    for action in actions:
        summary = summaries.get(action.chart_id)
        if summary is None:
            continue
        summary.counts.add(action.status)
        email = action.assignee
        if email is None or email in seen[action.chart_id]:
            continue
        seen[action.chart_id].add(email)
        profile = profiles.get(email)
        if profile is not None:
            summary.assignees.append(Person(id=profile.id, name=profile.display_name, email=email))
        else:
            summary.assignees.append(Person(id=None, name=email, email=email))
    return summaries


def chart_summaries(store: RecordStore, chart_ids) -> dict[str, ChartSummary]:
    """Counts and assignees for each chart id; unknown ids yield empty summaries."""
    chart_ids = list(dict.fromkeys(chart_ids))
    actions = [action_record(a) for a in store.find_many_by_ids(Action, chart_ids, field="chart_id")]
    profiles = load_profiles(store, (a.assignee for a in actions))
    return summarize(chart_ids, actions, profiles)


def child_chart_progress(store: RecordStore, chart_id: str) -> dict:
    counts = chart_summaries(store, [chart_id])[chart_id].counts
    return {
        "chart_id": chart_id,
        "total": counts.total,
        "done": counts.done,
        "percentage": completion_rate(counts.done, counts.total),
    }


# ── Period filter ────────────────────────────────────────────────────────────


def _month_start(year: int, month: int) -> datetime:
    while month < 1:
        month += 12
        year -= 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def period_range(period: str | None, now: datetime, date_from=None, date_to=None):
    """
    Resolve a dashboard period keyword into an inclusive (start, end) range.

    Returns None for "all", an empty period, or a custom period missing a
    bound. Custom bounds cover whole days (00:00 to 23:59:59.999999 UTC).

    Raises:
        ValidationError: unknown keyword or unparseable custom date.
    """
    if not period or period == "all":
        return None
    if period not in PERIODS:
        raise ValidationError(f"Unknown period {period!r}", details={"allowed": list(PERIODS)})

    if period == "custom":
        try:
            start, end = parse_datetime(date_from), parse_datetime(date_to)
        except ValueError as exc:
            raise ValidationError(f"Invalid custom period: {exc}") from exc
        if start is None or end is None:
            return None
        start = datetime.combine(start.date(), time.min, tzinfo=timezone.utc)
        end = datetime.combine(end.date(), time.max, tzinfo=timezone.utc)
        return start, end

    year, month = now.year, now.month
    quarter_month = (month - 1) // 3 * 3 + 1
    if period == "this_month":
        return _month_start(year, month), now
    if period == "last_month":
        this_month = _month_start(year, month)
        return _month_start(year, month - 1), this_month - timedelta(microseconds=1)
    if period == "this_quarter":
        return _month_start(year, quarter_month), now
    if period == "last_quarter":
        this_quarter = _month_start(year, quarter_month)
        return _month_start(year, quarter_month - 3), this_quarter - timedelta(microseconds=1)
    return datetime(year, 1, 1, tzinfo=timezone.utc), now


def in_range(value: datetime | None, rng) -> bool:
    if value is None:
        return False
    start, end = rng
    return start <= value <= end


# ── Staleness ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StaleChart:
    id: str
    title: str
    updated_at: datetime
    days_since_update: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "updated_at": self.updated_at.isoformat(),
            "days_since_update": self.days_since_update,
        }


def stale_charts(charts: list[ChartRecord], now: datetime, *, after_days: int = 7, limit: int = 10) -> list[StaleChart]:
    """Charts not updated for at least ``after_days``, most neglected first."""
    cutoff = now - after_days * DAY
    stale = [
        StaleChart(
            id=c.id,
            title=c.title,
            updated_at=c.updated_at,
            days_since_update=math.floor((now - c.updated_at) / DAY),
        )
        for c in charts
        if c.updated_at is not None and c.updated_at < cutoff
    ]
    stale.sort(key=lambda s: s.days_since_update, reverse=True)
    return stale[:limit]


# ── Deadlines ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UpcomingDeadline:
    id: str
    title: str
    due_date: datetime
    status: ActionStatus
    chart_id: str
    chart_title: str
    days_until_due: int
    blocking_count: int = 0
    is_overdue: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "chart_id": self.chart_id,
            "chart_title": self.chart_title,
            "is_overdue": self.is_overdue,
            "days_until_due": self.days_until_due,
            "blocking_count": self.blocking_count,
        }


def days_until(due: datetime, now: datetime) -> int:
    return math.ceil((due - now) / DAY)


def upcoming_deadlines(
    actions: list[ActionRecord],
    chart_titles: dict[str, str],
    now: datetime,
    *,
    window_days: int = 7,
    blocking_counts: dict[str, int] | None = None,
    limit: int = 10,
) -> list[UpcomingDeadline]:
    """Open actions due on or before now + ``window_days`` (overdue ones included)."""
    horizon = now + window_days * DAY
    blocking_counts = blocking_counts or {}
    deadlines = [
        UpcomingDeadline(
            id=a.id,
            title=a.title,
            due_date=a.due_date,
            status=a.status,
            chart_id=a.chart_id,
            chart_title=chart_titles.get(a.chart_id, ""),
            days_until_due=days_until(a.due_date, now),
            blocking_count=blocking_counts.get(a.id, 0),
            is_overdue=a.is_overdue(now),
        )
        for a in actions
        if a.due_date is not None and not a.is_closed and a.due_date <= horizon
    ]
    deadlines.sort(key=lambda d: d.days_until_due)
    return deadlines[:limit]
