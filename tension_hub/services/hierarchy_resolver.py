"""
Chart Hierarchy Resolver.

No chart stores its parent chart. Structure is derived from the telescoping
edge ``action.child_chart_id`` only:

    Chart P ──contains──▶ Action A ──child_chart_id──▶ Chart C

Two walks are offered:
    - upward (depth, breadcrumbs, root): through a reverse index
      child chart → owning chart, built once per computation
    - downward (descendants): level-batched, one query per tree level
      across the whole frontier, never one query per chart

Depth is 1 for a chart nobody points at. Corrupted data (cycles) must not
hang a request: the upward walk falls back to depth 1, the downward walk
skips charts already seen and stops at HIERARCHY_MAX_DEPTH levels.

Usage:
    from tension_hub.services.hierarchy_resolver import HierarchyIndex, descendants

    index = HierarchyIndex.load(store, workspace_id)
    index.depth(chart_id)
    descendants(store, chart_id)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from tension_hub.core.exceptions import NotFoundError
from tension_hub.models.chart import Action, Chart
from tension_hub.services.record_store import RecordStore
from tension_hub.services.records import (
    ActionRecord,
    ChartRecord,
    action_record,
    chart_record,
)
from tension_hub.utils.helpers import get_setting

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50
RECENT_CHARTS_LIMIT = 4
INCOMPLETE_PREVIEW_LIMIT = 5


# ── Edge loading ─────────────────────────────────────────────────────────────


def linking_actions(store: RecordStore, chart_ids=None) -> list[ActionRecord]:
    """Every action carrying a child chart pointer (current or legacy column).

    ``chart_ids`` restricts the scan to actions owned by those charts;
    None scans all actions.
    """
    if chart_ids is None:
        rows = store.find_many(Action, child_chart_id__is_null=False)
        rows += store.find_many(Action, child_chart_id__is_null=True, sub_chart_id__is_null=False)
    else:
        rows = store.find_many_by_ids(Action, chart_ids, field="chart_id", child_chart_id__is_null=False)
        rows += store.find_many_by_ids(
            Action, chart_ids, field="chart_id",
            child_chart_id__is_null=True, sub_chart_id__is_null=False,
        )
    return [action_record(a) for a in rows]


def workspace_chart_ids(store: RecordStore, workspace_id: str | None) -> list[str] | None:
    if workspace_id is None:
        return None
    return [c.id for c in store.find_many(Chart, workspace_id=workspace_id)]


# ── Reverse index ────────────────────────────────────────────────────────────


class HierarchyIndex:
    """child chart id → owning chart id, plus the linking action.

    Build one per request and reuse it for every depth query in it.
    """

    def __init__(self, edges=()):
        self.parent_of: dict[str, str] = {}
        self.parent_action_of: dict[str, str] = {}
        self.children_of: dict[str, list[str]] = defaultdict(list)
        for action in edges:
            child = action.child_chart_id
            if not child:
                continue
            if child in self.parent_of and self.parent_of[child] != action.chart_id:
                logger.warning(
                    "Chart id=%s is the child of several charts; keeping %s",
                    child, self.parent_of[child], extra={"chart_id": child},
                )
                continue
            self.parent_of[child] = action.chart_id
            self.parent_action_of[child] = action.id
            self.children_of[action.chart_id].append(child)

    @classmethod
    def load(cls, store: RecordStore, workspace_id: str | None = None) -> "HierarchyIndex":
        return cls(linking_actions(store, workspace_chart_ids(store, workspace_id)))

    def parent(self, chart_id: str) -> str | None:
        return self.parent_of.get(chart_id)

    def ancestors(self, chart_id: str) -> list[str] | None:
        """Parent first, root last. None when the upward walk hits a cycle."""
        path = []
        visited = {chart_id}
        current = self.parent_of.get(chart_id)
        while current is not None:
            if current in visited:
                logger.warning(
                    "Cycle in chart hierarchy reached from chart id=%s at id=%s",
                    chart_id, current, extra={"chart_id": chart_id},
                )
                return None
            visited.add(current)
            path.append(current)
            current = self.parent_of.get(current)
        return path

    def depth(self, chart_id: str) -> int:
        """1 for a root chart; falls back to 1 on a corrupted (cyclic) chain."""
        path = self.ancestors(chart_id)
        if path is None:
            return 1
        return len(path) + 1

    def root_of(self, chart_id: str) -> str:
        path = self.ancestors(chart_id)
        if not path:
            return chart_id
        return path[-1]

    def subtree_levels(self, chart_id: str, max_depth: int | None = None) -> list[list[str]]:
        """In-memory downward walk over the index, one list per level below ``chart_id``."""
        max_depth = max_depth or get_setting("HIERARCHY_MAX_DEPTH", DEFAULT_MAX_DEPTH)
        levels = []
        seen = {chart_id}
        frontier = [chart_id]
        while frontier:
            if len(levels) >= max_depth:
                logger.warning(
                    "Descendant walk of chart id=%s stopped at depth cap %d",
                    chart_id, max_depth, extra={"chart_id": chart_id},
                )
                break
            nxt = []
            for parent in frontier:
                for child in self.children_of.get(parent, ()):
                    if child not in seen:
                        seen.add(child)
                        nxt.append(child)
            if nxt:
                levels.append(nxt)
            frontier = nxt
        return levels


# ── Downward walk against the store ──────────────────────────────────────────


def descendants(
    store: RecordStore,
    chart_id: str,
    *,
    include_detached: bool = False,
    max_depth: int | None = None,
) -> set[str]:
    """All charts below ``chart_id`` (the chart itself excluded).

    One query per level for the whole frontier. ``include_detached`` also
    follows charts whose ``parent_action_id`` points into the frontier,
    which is how an archived subtree (forward edges cleared) is found again.
    """
    max_depth = max_depth or get_setting("HIERARCHY_MAX_DEPTH", DEFAULT_MAX_DEPTH)
    seen = {chart_id}
    frontier = [chart_id]
    level = 0
    while frontier:
        if level >= max_depth:
            logger.warning(
                "Descendant walk of chart id=%s stopped at depth cap %d",
                chart_id, max_depth, extra={"chart_id": chart_id},
            )
            break
        actions = [action_record(a) for a in store.find_many_by_ids(Action, frontier, field="chart_id")]
        found = [a.child_chart_id for a in actions if a.child_chart_id]
        if include_detached and actions:
            found += [
                c.id for c in store.find_many_by_ids(
                    Chart, [a.id for a in actions], field="parent_action_id",
                )
            ]
        frontier = []
        for child in found:
            if child not in seen:
                seen.add(child)
                frontier.append(child)
        level += 1
    seen.discard(chart_id)
    return seen


def depth(store: RecordStore, chart_id: str, index: HierarchyIndex | None = None) -> int:
    chart = store.get(Chart, chart_id)
    if index is None:
        index = HierarchyIndex.load(store, chart.workspace_id)
    return index.depth(chart_id)


# ── Project groups ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChartWithDepth:
    chart: ChartRecord
    depth: int

    def to_dict(self) -> dict:
        return {**self.chart.to_dict(), "depth": self.depth}


@dataclass
class ProjectGroup:
    """A depth-1 chart and its descendants bucketed by depth."""

    master: ChartWithDepth
    layers: dict[int, list[ChartWithDepth]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "master": self.master.to_dict(),
            "layers": [
                {"depth": d, "charts": [c.to_dict() for c in self.layers[d]]}
                for d in sorted(self.layers)
            ],
        }


def group_projects(charts: list[ChartRecord], index: HierarchyIndex) -> list[ProjectGroup]:
    """Masters (depth 1) with their descendants layered by depth.

    ``charts`` order (most recently updated first) is kept for masters and
    inside each layer. Charts absent from ``charts`` (archived, other
    workspace) are skipped.
    """
    position = {c.id: i for i, c in enumerate(charts)}
    by_id = {c.id: c for c in charts}
    groups = []
    for chart in charts:
        if index.depth(chart.id) != 1:
            continue
        group = ProjectGroup(master=ChartWithDepth(chart, 1))
        for level_no, level in enumerate(index.subtree_levels(chart.id), start=2):
            members = sorted((cid for cid in level if cid in by_id), key=position.__getitem__)
            if members:
                group.layers[level_no] = [ChartWithDepth(by_id[cid], level_no) for cid in members]
        groups.append(group)
    return groups


def recent_charts(charts: list[ChartRecord], limit: int = RECENT_CHARTS_LIMIT) -> list[ChartRecord]:
    return sorted(
        charts,
        key=lambda c: c.updated_at.timestamp() if c.updated_at else 0.0,
        reverse=True,
    )[:limit]


def list_active_charts(store: RecordStore, workspace_id: str | None) -> list[ChartRecord]:
    filters = {"archived_at__is_null": True}
    if workspace_id is not None:
        filters["workspace_id"] = workspace_id
    return [chart_record(c) for c in store.find_many(Chart, order_by="-updated_at", **filters)]


def charts_hierarchy(store: RecordStore, workspace_id: str | None) -> dict:
    """Project groups plus the most recently updated charts of a workspace."""
    charts = list_active_charts(store, workspace_id)
    index = HierarchyIndex.load(store, workspace_id)
    groups = group_projects(charts, index)
    return {
        "project_groups": [g.to_dict() for g in groups],
        "recent_charts": [
            {**c.to_dict(), "depth": index.depth(c.id)} for c in recent_charts(charts)
        ],
        "total": len(charts),
    }


# ── Parent lookups ───────────────────────────────────────────────────────────


def parent_info(store: RecordStore, chart_id: str) -> dict | None:
    """Parent chart and parent action of a telescoped chart; None for roots.

    A ``parent_action_id`` pointing at a vanished action is logged and
    treated as a root.
    """
    chart = store.get(Chart, chart_id)
    if not chart.parent_action_id:
        return None
    action = store.find_by_id(Action, chart.parent_action_id)
    if action is None:
        logger.warning(
            "Chart id=%s references missing parent action id=%s",
            chart_id, chart.parent_action_id, extra={"chart_id": chart_id},
        )
        return None
    parent_action = action_record(action)
    if chart.archived_at is None and parent_action.child_chart_id != chart_id:
        logger.warning(
            "Parent action id=%s does not point back at chart id=%s",
            parent_action.id, chart_id, extra={"chart_id": chart_id},
        )
    parent_chart = store.find_by_id(Chart, parent_action.chart_id)
    return {
        "parent_action": {"id": parent_action.id, "title": parent_action.title},
        "parent_chart": chart_record(parent_chart).to_dict() if parent_chart else None,
    }


def breadcrumbs(store: RecordStore, chart_id: str, index: HierarchyIndex | None = None) -> list[dict]:
    """Root-to-chart path of ``{id, title, depth}`` entries."""
    chart = store.get(Chart, chart_id)
    if index is None:
        index = HierarchyIndex.load(store, chart.workspace_id)
    path = index.ancestors(chart_id) or []
    ids = list(reversed(path)) + [chart_id]
    titles = {c.id: chart_record(c).title for c in store.find_many_by_ids(Chart, ids)}
    return [
        {"id": cid, "title": titles.get(cid), "depth": n}
        for n, cid in enumerate(ids, start=1)
    ]


def root_chart_id(store: RecordStore, chart_id: str, index: HierarchyIndex | None = None) -> str:
    chart = store.get(Chart, chart_id)
    if index is None:
        index = HierarchyIndex.load(store, chart.workspace_id)
    return index.root_of(chart_id)


# ── Incomplete telescoped work ───────────────────────────────────────────────


def incomplete_descendant_actions(
    store: RecordStore, action_id: str, limit: int = INCOMPLETE_PREVIEW_LIMIT,
) -> dict:
    """Open actions anywhere in the subtree telescoped from ``action_id``.

    Used before closing an action: warns when its child charts still have
    unfinished work.
    """
    action = action_record(store.get(Action, action_id))
    empty = {"has_incomplete": False, "count": 0, "actions": []}
    if not action.child_chart_id:
        return empty
    try:
        root = store.get(Chart, action.child_chart_id)
    except NotFoundError:
        logger.warning(
            "Action id=%s points at missing child chart id=%s",
            action_id, action.child_chart_id, extra={"action_id": action_id},
        )
        return empty

    chart_ids = [root.id] + sorted(descendants(store, root.id))
    titles = {c.id: chart_record(c).title for c in store.find_many_by_ids(Chart, chart_ids)}
    open_actions = [
        a for a in (action_record(r) for r in store.find_many_by_ids(Action, chart_ids, field="chart_id"))
        if not a.is_closed
    ]
    return {
        "has_incomplete": bool(open_actions),
        "count": len(open_actions),
        "actions": [
            {"id": a.id, "title": a.title, "status": a.status.value, "chart_title": titles.get(a.chart_id)}
            for a in open_actions[:limit]
        ],
    }
