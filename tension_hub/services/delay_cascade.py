"""
Delay Cascade Analyzer.

Turns a loaded DependencyGraph into:
    - delay impacts: each overdue action with the actions it directly blocks
      and the people affected (top N by blocked count)
    - cascade forest: one tree per overdue action, following "blocks" edges
      transitively; only trees with at least one child are kept, most
      disruptive (largest) first

Cycle handling inside one tree build:
    - an edge back to an action on the current root→node path is dropped
      (X blocks Y blocks X yields X → Y, Y a leaf)
    - any other action already placed in this tree is emitted once more as
      a terminal stub: no days_overdue, no assignee, no chart, no children

Trees are built with an explicit stack, so arbitrarily long chains do not
hit the interpreter's recursion limit.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from tension_hub.services.dependency_graph import DependencyGraph
from tension_hub.services.records import ActionRecord, Person, ProfileRecord, person_for

DAY = timedelta(days=1)
DEFAULT_IMPACT_LIMIT = 5


def days_overdue(due_date: datetime | None, now: datetime) -> int | None:
    if due_date is None or due_date >= now:
        return None
    return math.ceil((now - due_date) / DAY)


# ── Cascade trees ────────────────────────────────────────────────────────────


@dataclass
class CascadeNode:
    action_id: str
    title: str
    status: str
    due_date: datetime | None
    days_overdue: int | None
    assignee: Person | None
    chart_id: str
    chart_title: str
    is_root: bool = False
    is_stub: bool = False
    children: list["CascadeNode"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "action": {
                "id": self.action_id,
                "title": self.title,
                "status": self.status,
                "due_date": self.due_date.isoformat() if self.due_date else None,
                "days_overdue": self.days_overdue,
            },
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "chart": {"id": self.chart_id, "title": self.chart_title},
            "is_root": self.is_root,
            "is_stub": self.is_stub,
            "children": [c.to_dict() for c in self.children],
        }


def count_descendants(node: CascadeNode) -> int:
    """Nodes below ``node`` in the already-built tree (stubs included)."""
    total = 0
    stack = list(node.children)
    while stack:
        current = stack.pop()
        total += 1
        stack.extend(current.children)
    return total


def _node(action: ActionRecord, graph: DependencyGraph, profiles, now, is_root=False) -> CascadeNode:
    return CascadeNode(
        action_id=action.id,
        title=action.title,
        status=action.status.value,
        due_date=action.due_date,
        days_overdue=days_overdue(action.due_date, now),
        assignee=person_for(action.assignee, profiles),
        chart_id=action.chart_id,
        chart_title=graph.chart_title(action.chart_id),
        is_root=is_root,
    )


def _stub(action: ActionRecord) -> CascadeNode:
    return CascadeNode(
        action_id=action.id,
        title=action.title,
        status=action.status.value,
        due_date=action.due_date,
        days_overdue=None,
        assignee=None,
        chart_id="",
        chart_title="",
        is_stub=True,
    )


def build_tree(
    graph: DependencyGraph,
    root_id: str,
    now: datetime,
    profiles: dict[str, ProfileRecord] | None = None,
) -> CascadeNode | None:
    """Cascade tree below one action; None when the action is not in the graph."""
    root_action = graph.nodes.get(root_id)
    if root_action is None:
        return None
    profiles = profiles or {}

    root = _node(root_action, graph, profiles, now, is_root=True)
    visited = {root_id}
    path = {root_id}
    stack = [(root, iter(graph.blocked_by(root_id)))]
    while stack:
        parent, pending = stack[-1]
        child_id = next(pending, None)
        if child_id is None:
            stack.pop()
            path.discard(parent.action_id)
            continue
        if child_id in path:
            continue
        child_action = graph.nodes[child_id]
        if child_id in visited:
            parent.children.append(_stub(child_action))
            continue
        visited.add(child_id)
        path.add(child_id)
        child = _node(child_action, graph, profiles, now)
        parent.children.append(child)
        stack.append((child, iter(graph.blocked_by(child_id))))
    return root


def build_cascades(
    graph: DependencyGraph,
    overdue_ids,
    now: datetime,
    profiles: dict[str, ProfileRecord] | None = None,
) -> list[CascadeNode]:
    """One tree per overdue action that blocks something, largest first (stable)."""
    forest = []
    for action_id in dict.fromkeys(overdue_ids):
        tree = build_tree(graph, action_id, now, profiles)
        if tree is not None and tree.children:
            forest.append(tree)
    forest.sort(key=count_descendants, reverse=True)
    return forest


# ── Delay impacts ────────────────────────────────────────────────────────────


@dataclass
class BlockedAction:
    id: str
    title: str
    chart_id: str
    chart_title: str
    assignee: Person | None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "chart_id": self.chart_id,
            "chart_title": self.chart_title,
            "assignee": self.assignee.to_dict() if self.assignee else None,
        }


@dataclass
class DelayImpact:
    action: ActionRecord
    days_overdue: int
    chart_title: str
    assignee: Person | None
    blocked_actions: list[BlockedAction] = field(default_factory=list)
    affected_people: list[Person] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "action": {
                "id": self.action.id,
                "title": self.action.title,
                "due_date": self.action.due_date.isoformat() if self.action.due_date else None,
                "status": self.action.status.value,
                "days_overdue": self.days_overdue,
            },
            "chart": {"id": self.action.chart_id, "title": self.chart_title},
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "blocked_actions": [b.to_dict() for b in self.blocked_actions],
            "affected_people": [p.to_dict() for p in self.affected_people],
        }


def build_delay_impacts(
    graph: DependencyGraph,
    overdue_ids,
    now: datetime,
    profiles: dict[str, ProfileRecord] | None = None,
    *,
    limit: int = DEFAULT_IMPACT_LIMIT,
) -> list[DelayImpact]:
    """
    Direct blocking impact of each overdue action.

    Affected people are the resolved assignees of the overdue action and of
    every action it blocks, deduplicated by profile id. Sorted by number of
    blocked actions, descending (stable), then truncated to ``limit``.
    """
    profiles = profiles or {}
    impacts = []
    for action_id in dict.fromkeys(overdue_ids):
        action = graph.nodes.get(action_id)
        if action is None or action.due_date is None:
            continue
        owner = person_for(action.assignee, profiles)
        blocked = []
        for blocked_id in graph.blocked_by(action_id):
            b = graph.nodes[blocked_id]
            blocked.append(BlockedAction(
                id=b.id,
                title=b.title,
                chart_id=b.chart_id,
                chart_title=graph.chart_title(b.chart_id),
                assignee=person_for(b.assignee, profiles),
            ))

        people: dict[str, Person] = {}
        for person in [owner] + [b.assignee for b in blocked]:
            if person is not None:
                people.setdefault(person.id, person)

        impacts.append(DelayImpact(
            action=action,
            days_overdue=days_overdue(action.due_date, now) or 0,
            chart_title=graph.chart_title(action.chart_id),
            assignee=owner,
            blocked_actions=blocked,
            affected_people=list(people.values()),
        ))
    impacts.sort(key=lambda i: len(i.blocked_actions), reverse=True)
    return impacts[:limit]
