"""
Dependency Graph Builder.

Loads the part of the workspace-wide "blocks" graph reachable forward from
a seed set (usually every overdue open action):

    frontier = seeds
    repeat:
        edges  ← ActionDependency where blocker IN frontier      (1 query)
        nodes  ← Action where id IN <blocked ids not yet known> (1 query)
        frontier = blocked ids not expanded yet
    until the frontier is empty

Dependencies cross chart boundaries, so the walk never assumes a chart
scope. It is bounded by DEPENDENCY_MAX_FRONTIERS steps and
DEPENDENCY_MAX_NODES nodes; hitting either marks the graph ``truncated``.

Edge CRUD lives here too. Cycles are not rejected on insert: the analytics
side walks the graph defensively.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from tension_hub.core.exceptions import ConflictError, ValidationError
from tension_hub.models.chart import Action, ActionDependency, Chart
from tension_hub.services.record_store import RecordStore
from tension_hub.services.records import ActionRecord, action_record, chart_record
from tension_hub.utils.helpers import get_setting

logger = logging.getLogger(__name__)

DEFAULT_MAX_FRONTIERS = 25
DEFAULT_MAX_NODES = 2000


@dataclass
class DependencyGraph:
    nodes: dict[str, ActionRecord] = field(default_factory=dict)
    edges: list[tuple[str, str]] = field(default_factory=list)
    chart_titles: dict[str, str] = field(default_factory=dict)
    truncated: bool = False

    def __post_init__(self):
        self._adjacency = None

    @classmethod
    def from_edges(cls, nodes, edges, chart_titles=None) -> "DependencyGraph":
        """Build from in-memory data (no store); duplicate edges collapse."""
        graph = cls(nodes={n.id: n for n in nodes}, chart_titles=dict(chart_titles or {}))
        seen = set()
        for pair in edges:
            if pair not in seen:
                seen.add(pair)
                graph.edges.append(pair)
        return graph

    @property
    def adjacency(self) -> dict[str, list[str]]:
        if self._adjacency is None:
            adjacency = defaultdict(list)
            for blocker, blocked in self.edges:
                adjacency[blocker].append(blocked)
            self._adjacency = adjacency
        return self._adjacency

    def blocked_by(self, blocker_id: str) -> list[str]:
        """Ids ``blocker_id`` blocks, in edge order, restricted to loaded nodes."""
        return [b for b in self.adjacency.get(blocker_id, ()) if b in self.nodes]

    def blocking_count(self, blocker_id: str) -> int:
        return len(self.blocked_by(blocker_id))

    def chart_title(self, chart_id: str) -> str:
        return self.chart_titles.get(chart_id, "")


def load_reachable(
    store: RecordStore,
    seed_ids,
    *,
    known: dict[str, ActionRecord] | None = None,
    chart_titles: dict[str, str] | None = None,
    max_frontiers: int | None = None,
    max_nodes: int | None = None,
) -> DependencyGraph:
    """
    Breadth-first load of everything reachable from ``seed_ids`` via "blocks".

    Args:
        seed_ids: Starting action ids; unknown ids are fetched, missing ones dropped.
        known: Already-loaded records (e.g. the dashboard's action list);
            never re-fetched, but still expanded.
        chart_titles: Titles already known; only missing ones are fetched.
        max_frontiers / max_nodes: Walk bounds; config defaults when None.
    """
    max_frontiers = max_frontiers or get_setting("DEPENDENCY_MAX_FRONTIERS", DEFAULT_MAX_FRONTIERS)
    max_nodes = max_nodes or get_setting("DEPENDENCY_MAX_NODES", DEFAULT_MAX_NODES)

    graph = DependencyGraph(nodes=dict(known or {}), chart_titles=dict(chart_titles or {}))
    seeds = list(dict.fromkeys(seed_ids))
    _fetch_nodes(store, graph, [s for s in seeds if s not in graph.nodes])

    seen_edges = set()
    expanded = set()
    frontier = [s for s in seeds if s in graph.nodes]
    steps = 0
    while frontier:
        if steps >= max_frontiers:
            graph.truncated = True
            logger.warning(
                "Dependency walk stopped after %d frontier steps (%d nodes)",
                steps, len(graph.nodes), extra={"affected_count": len(graph.nodes)},
            )
            break
        steps += 1
        expanded.update(frontier)

        discovered = []
        rows = store.find_many_by_ids(
            ActionDependency, frontier, field="blocker_action_id", order_by="created_at",
        )
        for dep in rows:
            pair = (dep.blocker_action_id, dep.blocked_action_id)
            if pair in seen_edges:
                continue
            seen_edges.add(pair)
            graph.edges.append(pair)
            discovered.append(dep.blocked_action_id)

        unknown = [i for i in dict.fromkeys(discovered) if i not in graph.nodes]
        room = max_nodes - len(graph.nodes)
        if len(unknown) > room:
            graph.truncated = True
            logger.warning(
                "Dependency walk hit the node cap (%d); %d actions not loaded",
                max_nodes, len(unknown) - max(room, 0),
                extra={"affected_count": len(graph.nodes)},
            )
            unknown = unknown[:max(room, 0)]
        _fetch_nodes(store, graph, unknown)

        frontier = [
            i for i in dict.fromkeys(discovered)
            if i in graph.nodes and i not in expanded
        ]

    graph.edges = [(a, b) for a, b in graph.edges if a in graph.nodes and b in graph.nodes]
    graph._adjacency = None
    _fetch_chart_titles(store, graph)
    return graph


def _fetch_nodes(store: RecordStore, graph: DependencyGraph, ids: list[str]) -> None:
    if not ids:
        return
    for action in store.find_many_by_ids(Action, ids):
        graph.nodes[action.id] = action_record(action)


def _fetch_chart_titles(store: RecordStore, graph: DependencyGraph) -> None:
    missing = sorted({n.chart_id for n in graph.nodes.values()} - set(graph.chart_titles))
    for chart in store.find_many_by_ids(Chart, missing):
        graph.chart_titles[chart.id] = chart_record(chart).title


# ── Edge CRUD ────────────────────────────────────────────────────────────────


def add_dependency(store: RecordStore, blocker_id: str, blocked_id: str) -> ActionDependency:
    """Record that ``blocker_id`` must finish before ``blocked_id``.

    Raises:
        ValidationError: an action cannot block itself.
        NotFoundError: either action is missing.
        ConflictError: the edge already exists.
    """
    if blocker_id == blocked_id:
        raise ValidationError("An action cannot block itself", details={"action_id": blocker_id})
    store.get(Action, blocker_id)
    store.get(Action, blocked_id)
    if store.find_many(ActionDependency, blocker_action_id=blocker_id, blocked_action_id=blocked_id):
        raise ConflictError("ActionDependency", "blocker/blocked", f"{blocker_id}->{blocked_id}")

    with store.transaction():
        dep = store.insert(ActionDependency, blocker_action_id=blocker_id, blocked_action_id=blocked_id)
    logger.info(
        "Dependency added %s blocks %s", blocker_id, blocked_id, extra={"action_id": blocker_id},
    )
    return dep


def remove_dependency(store: RecordStore, dependency_id: str) -> None:
    store.get(ActionDependency, dependency_id)
    with store.transaction():
        store.delete(ActionDependency, dependency_id)
    logger.info("Dependency removed id=%s", dependency_id)


def list_dependencies(store: RecordStore, action_id: str) -> dict:
    """Direct edges of one action in both directions."""
    store.get(Action, action_id)
    return {
        "action_id": action_id,
        "blocks": [
            d.to_dict() for d in store.find_many(
                ActionDependency, blocker_action_id=action_id, order_by="created_at",
            )
        ],
        "blocked_by": [
            d.to_dict() for d in store.find_many(
                ActionDependency, blocked_action_id=action_id, order_by="created_at",
            )
        ],
    }
