"""
Workspace Dashboard Service.

Computes the dashboard views for one workspace (optionally scoped to one
chart and its descendants):

    stats                status distribution, completion rate (period aware)
    stale_charts         neglected charts
    upcoming_deadlines   open actions due soon, with blocking counts
    delay_impacts        what each overdue action is holding up
    delay_cascade        transitive cascade forest
    recommendations      ranked next steps
    available_charts     root charts selectable as a scope

One DashboardBuilder per request. The chart list, action list, dependency
graph and profiles are each loaded once and shared by every view. Store
failures propagate; nothing here is retried or swallowed.

Usage:
    builder = DashboardBuilder(store, workspace_id, chart_id=chart_id, period="this_month")
    builder.build()                # every view
    builder.compute("stale_charts")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import cached_property

from tension_hub.models.chart import Action, ActionStatus, Chart
from tension_hub.services import aggregation, delay_cascade, recommendations
from tension_hub.services.dependency_graph import load_reachable
from tension_hub.services.hierarchy_resolver import descendants
from tension_hub.services.record_store import RecordStore
from tension_hub.services.records import action_record, chart_record
from tension_hub.utils.helpers import get_setting

logger = logging.getLogger(__name__)

# Workspace view shows more stale charts than the cross-workspace one.
STALE_LIMIT_WORKSPACE = 10
STALE_LIMIT_PERSONAL = 5
DEADLINE_LIMIT = 10


class DashboardBuilder:
    """Lazily loads the dashboard inputs and computes individual views."""

    _VIEWS: dict = {}

    @classmethod
    def view(cls, name: str):
        """Decorator to register a view."""
        def decorator(fn):
            cls._VIEWS[name] = fn
            return fn
        return decorator

    @classmethod
    def view_names(cls) -> list[str]:
        return list(cls._VIEWS)

    def __init__(
        self,
        store: RecordStore,
        workspace_id: str | None,
        *,
        chart_id: str | None = None,
        period: str | None = None,
        date_from=None,
        date_to=None,
        now: datetime | None = None,
    ):
        self.store = store
        self.workspace_id = workspace_id
        self.chart_id = chart_id if chart_id and chart_id != "all" else None
        self.now = now or datetime.now(timezone.utc)
        self.period = period
        self.period_range = aggregation.period_range(period, self.now, date_from, date_to)

    # ── Inputs ───────────────────────────────────────────────────────────

    @cached_property
    def scope_chart_ids(self) -> list[str] | None:
        """Chart ids in scope; None means the whole workspace."""
        if self.chart_id is None:
            return None
        return [self.chart_id] + sorted(descendants(self.store, self.chart_id))

    @cached_property
    def charts(self):
        filters = {"archived_at__is_null": True}
        if self.workspace_id is not None:
            filters["workspace_id"] = self.workspace_id
        if self.scope_chart_ids is not None:
            rows = self.store.find_many_by_ids(Chart, self.scope_chart_ids, **filters)
        else:
            rows = self.store.find_many(Chart, **filters)
        return [chart_record(c) for c in rows]

    @cached_property
    def chart_titles(self) -> dict[str, str]:
        return {c.id: c.title for c in self.charts}

    @cached_property
    def actions(self):
        rows = self.store.find_many_by_ids(
            Action, [c.id for c in self.charts], field="chart_id", order_by="created_at",
        )
        return [action_record(a) for a in rows]

    @cached_property
    def overdue_ids(self) -> list[str]:
        return [a.id for a in self.actions if a.is_overdue(self.now)]

    @cached_property
    def graph(self):
        graph = load_reachable(
            self.store,
            self.overdue_ids,
            known={a.id: a for a in self.actions},
            chart_titles=self.chart_titles,
        )
        if graph.truncated:
            logger.warning(
                "Dashboard dependency graph truncated for workspace %s",
                self.workspace_id, extra={"workspace_id": self.workspace_id},
            )
        return graph

    @cached_property
    def profiles(self):
        return aggregation.load_profiles(
            self.store, (n.assignee for n in self.graph.nodes.values()),
        )

    # ── Computation ──────────────────────────────────────────────────────

    def compute(self, name: str):
        fn = self._VIEWS.get(name)
        if fn is None:
            raise KeyError(f"Unknown dashboard view: {name}")
        return fn(self)

    def build(self) -> dict:
        result = {name: self.compute(name) for name in self._VIEWS}
        result["graph_truncated"] = self.graph.truncated
        logger.debug(
            "Dashboard built: %d charts, %d actions, %d overdue",
            len(self.charts), len(self.actions), len(self.overdue_ids),
            extra={"workspace_id": self.workspace_id, "chart_id": self.chart_id},
        )
        return result

    # Typed accessors used across views.

    def stale(self):
        limit = STALE_LIMIT_WORKSPACE if self.workspace_id is not None else STALE_LIMIT_PERSONAL
        return aggregation.stale_charts(
            self.charts, self.now,
            after_days=get_setting("STALE_AFTER_DAYS", 7),
            limit=limit,
        )

    def deadlines(self):
        return aggregation.upcoming_deadlines(
            self.actions, self.chart_titles, self.now,
            window_days=get_setting("UPCOMING_WINDOW_DAYS", 7),
            blocking_counts={i: self.graph.blocking_count(i) for i in self.overdue_ids},
            limit=DEADLINE_LIMIT,
        )

    def impacts(self):
        return delay_cascade.build_delay_impacts(self.graph, self.overdue_ids, self.now, self.profiles)

    def ranked(self):
        return recommendations.rank(
            self.impacts(), self.deadlines(), self.stale(),
            deadline_days=get_setting("DEADLINE_RECOMMEND_DAYS", 3),
            stale_days=get_setting("STALE_RECOMMEND_DAYS", 14),
            limit=get_setting("RECOMMENDATION_LIMIT", 5),
        )


# ═════════════════════════════════════════════════════════════════════════════
# VIEWS
# ═════════════════════════════════════════════════════════════════════════════


@DashboardBuilder.view("stats")
def _stats(b: DashboardBuilder) -> dict:
    rng = b.period_range
    in_period = [a for a in b.actions if aggregation.in_range(a.created_at, rng)] if rng else b.actions
    distribution = aggregation.status_distribution(in_period)
    if rng:
        completed = sum(
            1 for a in b.actions
            if a.status is ActionStatus.DONE and aggregation.in_range(a.updated_at, rng)
        )
    else:
        completed = distribution.done + distribution.cancelled
    return {
        "total_charts": len(b.charts),
        "total_actions": distribution.total,
        "completed_actions": completed,
        "completion_rate": aggregation.completion_rate(completed, distribution.total),
        "status_distribution": distribution.to_dict(),
        "period": {
            "name": b.period or "all",
            "start": rng[0].isoformat() if rng else None,
            "end": rng[1].isoformat() if rng else None,
        },
    }


@DashboardBuilder.view("stale_charts")
def _stale_charts(b: DashboardBuilder) -> list[dict]:
    return [s.to_dict() for s in b.stale()]


@DashboardBuilder.view("upcoming_deadlines")
def _upcoming_deadlines(b: DashboardBuilder) -> list[dict]:
    return [d.to_dict() for d in b.deadlines()]


@DashboardBuilder.view("delay_impacts")
def _delay_impacts(b: DashboardBuilder) -> list[dict]:
    return [i.to_dict() for i in b.impacts()]


@DashboardBuilder.view("delay_cascade")
def _delay_cascade(b: DashboardBuilder) -> list[dict]:
    forest = delay_cascade.build_cascades(b.graph, b.overdue_ids, b.now, b.profiles)
    return [
        {**tree.to_dict(), "descendant_count": delay_cascade.count_descendants(tree)}
        for tree in forest
    ]


@DashboardBuilder.view("recommendations")
def _recommendations(b: DashboardBuilder) -> list[dict]:
    return [r.to_dict() for r in b.ranked()]


@DashboardBuilder.view("available_charts")
def _available_charts(b: DashboardBuilder) -> list[dict]:
    filters = {"archived_at__is_null": True, "parent_action_id__is_null": True}
    if b.workspace_id is not None:
        filters["workspace_id"] = b.workspace_id
    return [
        {"id": c.id, "title": chart_record(c).title}
        for c in b.store.find_many(Chart, order_by="title", **filters)
    ]


def get_dashboard(store: RecordStore, workspace_id: str | None, **kwargs) -> dict:
    """All dashboard views in one payload."""
    return DashboardBuilder(store, workspace_id, **kwargs).build()
