"""
Hierarchy Mutator: archive / restore / delete cascades and status sync.

Covers:
    1. Archive stamps the whole subtree and severs forward edges
    2. Archive → restore round-trip on a five-level tree
    3. Restore with a vanished or re-telescoped parent action
    4. Delete (sever): no dangling pointer, subtree becomes roots
    5. Delete (cascade): whole subtree gone
    6. Store failure mid-cascade rolls everything back
    7. Telescoping is idempotent
    8. Chart/action status sync
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from tension_hub.core.exceptions import (
    CascadeError,
    InconsistentStructureError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from tension_hub.models import db
from tension_hub.models.chart import Action, Chart, Vision
from tension_hub.services.hierarchy_mutator import (
    DeleteMode,
    archive_chart,
    create_chart,
    delete_chart,
    list_archived_charts,
    restore_chart,
    telescope_action,
    update_action_status,
    update_chart_status,
)
from tension_hub.services.hierarchy_resolver import HierarchyIndex, descendants
from tension_hub.services.record_store import RecordStore

WHEN = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def chain(make_chart, make_child):
    """R → C1 → C2 → C3 → C4, returns (charts, linking_actions)."""
    charts = [make_chart("R")]
    actions = []
    for n in range(1, 5):
        action, child = make_child(charts[-1], f"C{n}")
        charts.append(child)
        actions.append(action)
    return charts, actions


def _pointers_into(chart_ids):
    return Action.query.filter(
        db.or_(Action.child_chart_id.in_(chart_ids), Action.sub_chart_id.in_(chart_ids))
    ).all()


# ═════════════════════════════════════════════════════════════════════════════
# Archive / Restore
# ═════════════════════════════════════════════════════════════════════════════


class TestArchive:
    def test_archives_whole_subtree(self, store, chain):
        charts, actions = chain
        result = archive_chart(store, charts[1].id, now=WHEN)

        assert set(result["archived"]) == {c.id for c in charts[1:]}
        assert db.session.get(Chart, charts[0].id).archived_at is None
        for chart in charts[1:]:
            assert db.session.get(Chart, chart.id).archived_at is not None
        assert _pointers_into([c.id for c in charts[1:]]) == []

    def test_back_references_kept(self, store, chain):
        charts, actions = chain
        archive_chart(store, charts[1].id, now=WHEN)
        for chart, action in zip(charts[1:], actions):
            assert db.session.get(Chart, chart.id).parent_action_id == action.id

    def test_parent_action_flag_cleared(self, store, chain):
        charts, actions = chain
        archive_chart(store, charts[1].id, now=WHEN)
        assert db.session.get(Action, actions[0].id).has_sub_chart is False

    def test_already_archived_keeps_timestamp(self, store, make_chart, make_child):
        root = make_chart("R")
        _, child = make_child(root, "C")
        earlier = datetime(2025, 12, 1, tzinfo=timezone.utc)
        child.archive(earlier)
        db.session.commit()

        archive_chart(store, root.id, now=WHEN)
        stamped = db.session.get(Chart, child.id).archived_at
        assert stamped.replace(tzinfo=timezone.utc) == earlier

    def test_listed_as_archived_root(self, store, chain):
        charts, _ = chain
        archive_chart(store, charts[0].id, now=WHEN)
        listed = list_archived_charts(store, charts[0].workspace_id)
        assert [c["id"] for c in listed] == [charts[0].id]

    def test_unknown_chart(self, store):
        with pytest.raises(NotFoundError):
            archive_chart(store, "missing")


class TestRestore:
    def test_round_trip_restores_hierarchy(self, store, chain):
        charts, actions = chain
        before = {c.id: d for d, c in enumerate(charts, start=1)}

        archive_chart(store, charts[0].id, now=WHEN)
        result = restore_chart(store, charts[0].id)

        assert set(result["restored"]) == set(before)
        assert sorted(result["relinked_actions"]) == sorted(a.id for a in actions)
        index = HierarchyIndex.load(store, charts[0].workspace_id)
        for chart_id, depth in before.items():
            assert db.session.get(Chart, chart_id).archived_at is None
            assert index.depth(chart_id) == depth
        for chart, action in zip(charts[1:], actions):
            restored = db.session.get(Action, action.id)
            assert restored.child_chart_id == chart.id
            assert restored.has_sub_chart is True

    def test_restore_inner_subtree(self, store, chain):
        charts, actions = chain
        archive_chart(store, charts[2].id, now=WHEN)
        restore_chart(store, charts[2].id)
        assert descendants(store, charts[0].id) == {c.id for c in charts[1:]}

    def test_missing_parent_action_comes_back_as_root(self, store, make_chart, make_child):
        root = make_chart("R")
        action, child = make_child(root, "C")
        _, grandchild = make_child(child, "G")
        archive_chart(store, child.id, now=WHEN)
        db.session.delete(db.session.get(Action, action.id))
        db.session.commit()

        result = restore_chart(store, child.id)

        assert result["missing_parent_actions"] == [child.id]
        assert db.session.get(Chart, child.id).archived_at is None
        assert db.session.get(Chart, child.id).parent_action_id is None
        assert db.session.get(Chart, grandchild.id).archived_at is None
        index = HierarchyIndex.load(store, root.workspace_id)
        assert index.depth(child.id) == 1
        assert index.depth(grandchild.id) == 2

    def test_retelescoped_parent_keeps_new_child(self, store, make_chart, make_child):
        root = make_chart("R")
        action, child = make_child(root, "C")
        action_id, child_id = action.id, child.id
        archive_chart(store, child_id, now=WHEN)
        replacement, created = telescope_action(store, action_id)
        assert created is True

        result = restore_chart(store, child_id)

        assert result["conflicting_parent_actions"] == [action_id]
        assert result["relinked_actions"] == []
        assert db.session.get(Action, action_id).child_chart_id == replacement.id
        assert db.session.get(Chart, replacement.id).parent_action_id == action_id
        restored = db.session.get(Chart, child_id)
        assert restored.archived_at is None
        assert restored.parent_action_id is None


# ═════════════════════════════════════════════════════════════════════════════
# Delete
# ═════════════════════════════════════════════════════════════════════════════


class TestDelete:
    def test_sever_leaves_no_dangling_pointer(self, store, chain):
        charts, actions = chain
        result = delete_chart(store, charts[1].id, mode="sever")

        assert result["mode"] == "sever"
        assert result["deleted"] == [charts[1].id]
        assert db.session.get(Chart, charts[1].id) is None
        assert _pointers_into([c.id for c in charts[1:]]) == []

    def test_sever_orphans_become_roots(self, store, chain):
        charts, _ = chain
        result = delete_chart(store, charts[1].id, mode=DeleteMode.SEVER)

        survivors = charts[2:]
        assert set(result["orphaned"]) == {c.id for c in survivors}
        index = HierarchyIndex.load(store, charts[0].workspace_id)
        for chart in survivors:
            assert db.session.get(Chart, chart.id).parent_action_id is None
            assert index.depth(chart.id) == 1

    def test_cascade_deletes_subtree(self, store, chain, make_action):
        charts, _ = chain
        extra_id = make_action(charts[3], "inner work").id
        result = delete_chart(store, charts[1].id, mode="cascade")

        assert set(result["deleted"]) == {c.id for c in charts[1:]}
        for chart in charts[1:]:
            assert db.session.get(Chart, chart.id) is None
        assert db.session.execute(select(Action.id).where(Action.id == extra_id)).first() is None
        assert db.session.get(Chart, charts[0].id) is not None
        assert _pointers_into([c.id for c in charts[1:]]) == []

    def test_default_mode_from_config(self, store, chain):
        charts, _ = chain
        assert delete_chart(store, charts[4].id)["mode"] == "sever"

    def test_legacy_pointer_severed(self, store, make_chart, make_action):
        root = make_chart("R")
        child = make_chart("C")
        legacy = make_action(root, sub_chart_id=child.id)
        delete_chart(store, child.id)
        assert db.session.get(Action, legacy.id).sub_chart_id is None

    def test_legacy_match_keeps_flag_for_live_child(self, store, make_chart, make_child):
        root = make_chart("R")
        action, live = make_child(root, "Live")
        stale = make_chart("Stale")
        action.sub_chart_id = stale.id
        db.session.commit()

        delete_chart(store, stale.id)

        kept = db.session.get(Action, action.id)
        assert kept.sub_chart_id is None
        assert kept.child_chart_id == live.id
        assert kept.has_sub_chart is True

    def test_invalid_mode(self, store, make_chart):
        chart = make_chart()
        with pytest.raises(ValidationError):
            delete_chart(store, chart.id, mode="shred")
        assert db.session.get(Chart, chart.id) is not None


class TestRollback:
    def test_archive_failure_rolls_back(self, store, chain, monkeypatch):
        charts, actions = chain

        def _boom(self, kind, record_id, **fields):
            raise StoreUnavailableError("write refused")

        monkeypatch.setattr(RecordStore, "update", _boom)

        with pytest.raises(CascadeError) as exc_info:
            archive_chart(store, charts[0].id, now=WHEN)

        assert exc_info.value.operation == "archive"
        assert isinstance(exc_info.value.cause, StoreUnavailableError)
        for chart in charts:
            assert db.session.get(Chart, chart.id).archived_at is None
        for chart, action in zip(charts[1:], actions):
            assert db.session.get(Action, action.id).child_chart_id == chart.id

    def test_delete_failure_rolls_back(self, store, chain, monkeypatch):
        charts, _ = chain

        def _boom(self, kind, record_id):
            raise StoreUnavailableError("delete refused")

        monkeypatch.setattr(RecordStore, "delete", _boom)

        with pytest.raises(CascadeError):
            delete_chart(store, charts[1].id, mode="cascade")
        assert descendants(store, charts[0].id) == {c.id for c in charts[1:]}


# ═════════════════════════════════════════════════════════════════════════════
# Create / Telescope / Status
# ═════════════════════════════════════════════════════════════════════════════


class TestTelescope:
    def test_creates_linked_child(self, store, make_chart, make_action):
        root = make_chart("R")
        action = make_action(root, "Ship v2", assignee="ann@x.io")

        child, created = telescope_action(store, action.id)

        assert created is True
        assert child.title == "Ship v2"
        assert child.parent_action_id == action.id
        assert child.workspace_id == root.workspace_id
        linked = db.session.get(Action, action.id)
        assert linked.child_chart_id == child.id
        assert linked.has_sub_chart is True
        assert Vision.query.filter_by(chart_id=child.id).count() == 1

    def test_idempotent(self, store, make_chart, make_action):
        action = make_action(make_chart("R"))
        first, _ = telescope_action(store, action.id)
        second, created = telescope_action(store, action.id)
        assert created is False
        assert second.id == first.id
        assert Chart.query.count() == 2

    def test_child_owned_by_other_action(self, store, make_chart, make_action, make_child):
        root = make_chart("R")
        _, child = make_child(root, "C")
        stray = make_action(root, "stray", child_chart_id=child.id)
        with pytest.raises(InconsistentStructureError):
            telescope_action(store, stray.id)

    def test_dangling_pointer_telescopes_again(self, store, make_chart, make_action):
        action = make_action(make_chart("R"), child_chart_id="gone")
        child, created = telescope_action(store, action.id)
        assert created is True
        assert db.session.get(Action, action.id).child_chart_id == child.id


class TestCreateChart:
    def test_title_required(self, store):
        with pytest.raises(ValidationError):
            create_chart(store, {"title": "  "})

    def test_invalid_due_date(self, store):
        with pytest.raises(ValidationError):
            create_chart(store, {"title": "Plan", "due_date": "next tuesday"})

    def test_creates_root(self, store):
        chart = create_chart(store, {"title": "Plan", "workspace_id": "ws-1", "due_date": "2026-06-01"})
        assert chart.parent_action_id is None
        assert db.session.get(Chart, chart.id).workspace_id == "ws-1"


class TestStatusSync:
    def test_completed_chart_marks_parent_done(self, store, make_chart, make_child):
        root = make_chart("R")
        action, child = make_child(root, "C")
        result = update_chart_status(store, child.id, "completed")
        assert result["parent_action"]["status"] == "done"
        assert db.session.get(Action, action.id).is_completed is True

    def test_reopened_chart_marks_parent_in_progress(self, store, make_chart, make_child):
        root = make_chart("R")
        action, child = make_child(root, "C")
        update_chart_status(store, child.id, "completed")
        update_chart_status(store, child.id, "active")
        reopened = db.session.get(Action, action.id)
        assert reopened.status == "in_progress"
        assert reopened.is_completed is False

    def test_root_chart_has_no_parent_action(self, store, make_chart):
        result = update_chart_status(store, make_chart().id, "completed")
        assert result["parent_action"] is None

    def test_invalid_chart_status(self, store, make_chart):
        with pytest.raises(ValidationError):
            update_chart_status(store, make_chart().id, "archived")

    def test_action_status_writes_canonical_value(self, store, make_chart, make_action):
        action = make_action(make_chart())
        update_action_status(store, action.id, "canceled")
        assert db.session.get(Action, action.id).status == "cancelled"
        update_action_status(store, action.id, "Done")
        done = db.session.get(Action, action.id)
        assert done.status == "done"
        assert done.is_completed is True

    def test_action_status_rejects_unknown(self, store, make_chart, make_action):
        action = make_action(make_chart())
        with pytest.raises(ValidationError):
            update_action_status(store, action.id, "blocked")
