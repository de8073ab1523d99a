"""
Hierarchy Resolver: depth, descendants, project groups and parent lookups.

Covers:
    1. Telescoping depth (R → C1 → C2)
    2. Depth monotonicity across a wider tree
    3. Cycle guard in the reverse index (depth falls back to 1)
    4. Descendant walk terminates on cyclic forward edges
    5. Depth cap stops the walk
    6. Project groups layered by depth
    7. Breadcrumbs, parent info, incomplete descendant work
"""

import pytest

from tension_hub.core.exceptions import NotFoundError
from tension_hub.models import db
from tension_hub.services.hierarchy_resolver import (
    HierarchyIndex,
    breadcrumbs,
    charts_hierarchy,
    depth,
    descendants,
    group_projects,
    incomplete_descendant_actions,
    list_active_charts,
    parent_info,
    root_chart_id,
)
from tension_hub.services.records import ActionRecord


def _edge(action_id, chart_id, child_id):
    return ActionRecord(id=action_id, title=action_id, chart_id=chart_id, child_chart_id=child_id)


class TestDepth:
    def test_telescoping_depth(self, store, make_chart, make_child):
        root = make_chart("R")
        _, c1 = make_child(root, "C1")
        _, c2 = make_child(c1, "C2")

        assert depth(store, root.id) == 1
        assert depth(store, c1.id) == 2
        assert depth(store, c2.id) == 3
        assert descendants(store, root.id) == {c1.id, c2.id}

    def test_depth_monotonicity(self, store, make_chart, make_child):
        root = make_chart("R")
        _, a = make_child(root, "A")
        _, b = make_child(root, "B")
        _, a1 = make_child(a, "A1")
        _, a1x = make_child(a1, "A1x")

        index = HierarchyIndex.load(store, root.workspace_id)
        for child, parent in ((a, root), (b, root), (a1, a), (a1x, a1)):
            assert index.depth(child.id) == index.depth(parent.id) + 1

    def test_unknown_chart_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            depth(store, "missing")

    def test_legacy_sub_chart_pointer_counts_as_edge(self, store, make_chart, make_action):
        root = make_chart("R")
        child = make_chart("C")
        make_action(root, sub_chart_id=child.id)
        assert depth(store, child.id) == 2

    def test_index_scoped_to_workspace(self, store, make_chart, make_child):
        root = make_chart("R", workspace_id="ws-a")
        _, child = make_child(root, "C")
        assert HierarchyIndex.load(store, "ws-b").depth(child.id) == 1
        assert HierarchyIndex.load(store, "ws-a").depth(child.id) == 2


class TestCycleGuard:
    def test_two_cycle_depth_is_one(self):
        index = HierarchyIndex([_edge("a1", "X", "Y"), _edge("a2", "Y", "X")])
        assert index.depth("X") == 1
        assert index.depth("Y") == 1

    def test_self_loop_depth_is_one(self):
        index = HierarchyIndex([_edge("a1", "X", "X")])
        assert index.depth("X") == 1

    def test_cycle_above_chart(self):
        # Z hangs under a 2-cycle; the walk from Z must stop too.
        index = HierarchyIndex([
            _edge("a1", "X", "Y"), _edge("a2", "Y", "X"), _edge("a3", "Y", "Z"),
        ])
        assert index.depth("Z") == 1

    def test_descendants_terminate_on_cycle(self, store, make_chart, make_action):
        x = make_chart("X")
        y = make_chart("Y")
        make_action(x, child_chart_id=y.id)
        make_action(y, child_chart_id=x.id)
        assert descendants(store, x.id) == {y.id}

    def test_depth_cap(self, store, make_chart, make_child):
        chart = make_chart("L1")
        chain = [chart]
        for n in range(2, 6):
            _, chart = make_child(chart, f"L{n}")
            chain.append(chart)
        found = descendants(store, chain[0].id, max_depth=2)
        assert found == {chain[1].id, chain[2].id}


class TestProjectGroups:
    def test_masters_and_layers(self, store, make_chart, make_child):
        root = make_chart("Root")
        _, a = make_child(root, "A")
        _, b = make_child(root, "B")
        _, a1 = make_child(a, "A1")
        other = make_chart("Other root")

        charts = list_active_charts(store, root.workspace_id)
        groups = group_projects(charts, HierarchyIndex.load(store, root.workspace_id))

        masters = {g.master.chart.id: g for g in groups}
        assert set(masters) == {root.id, other.id}
        group = masters[root.id]
        assert {c.chart.id for c in group.layers[2]} == {a.id, b.id}
        assert [c.chart.id for c in group.layers[3]] == [a1.id]
        assert masters[other.id].layers == {}

    def test_archived_charts_excluded(self, store, make_chart, make_child):
        root = make_chart("Root")
        _, child = make_child(root, "Archived child")
        child.archive()
        db.session.commit()
        payload = charts_hierarchy(store, root.workspace_id)
        ids = [c["id"] for g in payload["project_groups"] for layer in g["layers"] for c in layer["charts"]]
        assert child.id not in ids

    def test_recent_charts_limited_to_four(self, store, make_chart):
        for n in range(6):
            make_chart(f"Chart {n}")
        payload = charts_hierarchy(store, "ws-test")
        assert len(payload["recent_charts"]) == 4
        assert payload["total"] == 6


class TestParentLookups:
    def test_breadcrumbs_root_first(self, store, make_chart, make_child):
        root = make_chart("Root")
        _, c1 = make_child(root, "C1")
        _, c2 = make_child(c1, "C2")
        crumbs = breadcrumbs(store, c2.id)
        assert [c["title"] for c in crumbs] == ["Root", "C1", "C2"]
        assert [c["depth"] for c in crumbs] == [1, 2, 3]
        assert root_chart_id(store, c2.id) == root.id

    def test_parent_info(self, store, make_chart, make_child):
        root = make_chart("Root")
        action, child = make_child(root, "C1")
        info = parent_info(store, child.id)
        assert info["parent_action"]["id"] == action.id
        assert info["parent_chart"]["id"] == root.id

    def test_parent_info_root_is_none(self, store, make_chart):
        assert parent_info(store, make_chart().id) is None

    def test_parent_info_missing_action_is_none(self, store, make_chart):
        chart = make_chart(parent_action_id="vanished")
        assert parent_info(store, chart.id) is None


class TestIncompleteDescendants:
    def test_counts_open_actions_in_subtree(self, store, make_chart, make_child, make_action):
        root = make_chart("Root")
        action, c1 = make_child(root, "C1")
        _, c2 = make_child(c1, "C2")
        make_action(c1, "open", status="in_progress")
        make_action(c2, "done", status="done")
        make_action(c2, "legacy done", is_completed=True)
        make_action(c2, "open too")

        result = incomplete_descendant_actions(store, action.id)
        # C1 also holds the telescoping action towards C2, which is open.
        assert result["count"] == 3
        assert result["has_incomplete"] is True
        assert {a["title"] for a in result["actions"]} >= {"open", "open too"}

    def test_action_without_child(self, store, make_chart, make_action):
        action = make_action(make_chart())
        assert incomplete_descendant_actions(store, action.id) == {
            "has_incomplete": False, "count": 0, "actions": [],
        }

    def test_preview_limited_to_five(self, store, make_chart, make_child, make_action):
        root = make_chart("Root")
        action, c1 = make_child(root, "C1")
        for n in range(8):
            make_action(c1, f"todo {n}")
        result = incomplete_descendant_actions(store, action.id)
        assert result["count"] == 8
        assert len(result["actions"]) == 5
