"""
Tension Hub
Charts blueprint — chart hierarchy, cascades, telescoping and dependencies.

Endpoints summary:
    CHARTS   /api/v1/charts                              GET (hierarchy), POST
             /api/v1/charts/archived                     GET
             /api/v1/charts/summaries?ids=a,b            GET
             /api/v1/charts/<id>                         GET, DELETE (?mode=sever|cascade)
             /api/v1/charts/<id>/depth                   GET
             /api/v1/charts/<id>/descendants             GET
             /api/v1/charts/<id>/breadcrumbs             GET
             /api/v1/charts/<id>/parent                  GET
             /api/v1/charts/<id>/progress                GET
             /api/v1/charts/<id>/archive                 POST
             /api/v1/charts/<id>/restore                 POST
             /api/v1/charts/<id>/status                  PATCH

    ACTIONS  /api/v1/actions/<id>/telescope              POST
             /api/v1/actions/<id>/incomplete-descendants GET
             /api/v1/actions/<id>/status                 PATCH
             /api/v1/actions/<id>/dependencies           GET, POST
             /api/v1/dependencies/<id>                   DELETE
"""

import logging

from flask import Blueprint, jsonify, request

from tension_hub.blueprints import get_store, workspace_arg
from tension_hub.core.permissions import can_create_chart, can_edit_content, can_view, require_role
from tension_hub.models.chart import Chart
from tension_hub.services import aggregation, dependency_graph, hierarchy_mutator, hierarchy_resolver
from tension_hub.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

charts_bp = Blueprint("charts", __name__, url_prefix="/api/v1")
register_error_handlers(charts_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  CHARTS
# ═══════════════════════════════════════════════════════════════════════════


@charts_bp.route("/charts", methods=["GET"])
@require_role(can_view)
def list_charts():
    """Project groups (masters + depth layers) and recent charts."""
    return jsonify(hierarchy_resolver.charts_hierarchy(get_store(), workspace_arg()))


@charts_bp.route("/charts", methods=["POST"])
@require_role(can_create_chart)
def create_chart():
    data = request.get_json(silent=True) or {}
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    chart = hierarchy_mutator.create_chart(get_store(), data)
    return jsonify(chart.to_dict()), 201


@charts_bp.route("/charts/archived", methods=["GET"])
@require_role(can_view)
def list_archived():
    items = hierarchy_mutator.list_archived_charts(get_store(), workspace_arg())
    return jsonify({"items": items, "total": len(items)})


@charts_bp.route("/charts/summaries", methods=["GET"])
@require_role(can_view)
def chart_summaries():
    ids = [i for i in request.args.get("ids", "").split(",") if i.strip()]
    if not ids:
        return api_error(E.VALIDATION_REQUIRED, "ids query parameter is required")
    summaries = aggregation.chart_summaries(get_store(), [i.strip() for i in ids])
    return jsonify({cid: s.to_dict() for cid, s in summaries.items()})


@charts_bp.route("/charts/<chart_id>", methods=["GET"])
@require_role(can_view)
def get_chart(chart_id):
    chart = get_store().get(Chart, chart_id)
    return jsonify(chart.to_dict())


@charts_bp.route("/charts/<chart_id>", methods=["DELETE"])
@require_role(can_edit_content)
def delete_chart(chart_id):
    result = hierarchy_mutator.delete_chart(get_store(), chart_id, mode=request.args.get("mode"))
    return jsonify(result)


@charts_bp.route("/charts/<chart_id>/depth", methods=["GET"])
@require_role(can_view)
def chart_depth(chart_id):
    store = get_store()
    chart = store.get(Chart, chart_id)
    index = hierarchy_resolver.HierarchyIndex.load(store, chart.workspace_id)
    return jsonify({
        "chart_id": chart_id,
        "depth": hierarchy_resolver.depth(store, chart_id, index),
        "root_id": hierarchy_resolver.root_chart_id(store, chart_id, index),
    })


@charts_bp.route("/charts/<chart_id>/descendants", methods=["GET"])
@require_role(can_view)
def chart_descendants(chart_id):
    store = get_store()
    store.get(Chart, chart_id)
    ids = sorted(hierarchy_resolver.descendants(store, chart_id))
    return jsonify({"chart_id": chart_id, "descendants": ids, "total": len(ids)})


@charts_bp.route("/charts/<chart_id>/breadcrumbs", methods=["GET"])
@require_role(can_view)
def chart_breadcrumbs(chart_id):
    return jsonify(hierarchy_resolver.breadcrumbs(get_store(), chart_id))


@charts_bp.route("/charts/<chart_id>/parent", methods=["GET"])
@require_role(can_view)
def chart_parent(chart_id):
    return jsonify(hierarchy_resolver.parent_info(get_store(), chart_id))


@charts_bp.route("/charts/<chart_id>/progress", methods=["GET"])
@require_role(can_view)
def chart_progress(chart_id):
    store = get_store()
    store.get(Chart, chart_id)
    return jsonify(aggregation.child_chart_progress(store, chart_id))


@charts_bp.route("/charts/<chart_id>/archive", methods=["POST"])
@require_role(can_edit_content)
def archive_chart(chart_id):
    return jsonify(hierarchy_mutator.archive_chart(get_store(), chart_id))


@charts_bp.route("/charts/<chart_id>/restore", methods=["POST"])
@require_role(can_edit_content)
def restore_chart(chart_id):
    return jsonify(hierarchy_mutator.restore_chart(get_store(), chart_id))


@charts_bp.route("/charts/<chart_id>/status", methods=["PATCH"])
@require_role(can_edit_content)
def update_chart_status(chart_id):
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    return jsonify(hierarchy_mutator.update_chart_status(get_store(), chart_id, data["status"]))


# ═══════════════════════════════════════════════════════════════════════════
#  ACTIONS
# ═══════════════════════════════════════════════════════════════════════════


@charts_bp.route("/actions/<action_id>/telescope", methods=["POST"])
@require_role(can_edit_content)
def telescope_action(action_id):
    chart, created = hierarchy_mutator.telescope_action(get_store(), action_id)
    return jsonify({"chart": chart.to_dict(), "created": created}), 201 if created else 200


@charts_bp.route("/actions/<action_id>/incomplete-descendants", methods=["GET"])
@require_role(can_view)
def incomplete_descendants(action_id):
    return jsonify(hierarchy_resolver.incomplete_descendant_actions(get_store(), action_id))


@charts_bp.route("/actions/<action_id>/status", methods=["PATCH"])
@require_role(can_edit_content)
def update_action_status(action_id):
    data = request.get_json(silent=True) or {}
    action = hierarchy_mutator.update_action_status(get_store(), action_id, data.get("status"))
    return jsonify(action.to_dict())


@charts_bp.route("/actions/<action_id>/dependencies", methods=["GET"])
@require_role(can_view)
def list_dependencies(action_id):
    return jsonify(dependency_graph.list_dependencies(get_store(), action_id))


@charts_bp.route("/actions/<action_id>/dependencies", methods=["POST"])
@require_role(can_edit_content)
def add_dependency(action_id):
    """Body: {"blocked_action_id": ...}; ``action_id`` is the blocker."""
    data = request.get_json(silent=True) or {}
    blocked_id = data.get("blocked_action_id")
    if not blocked_id:
        return api_error(E.VALIDATION_REQUIRED, "blocked_action_id is required")
    dep = dependency_graph.add_dependency(get_store(), action_id, blocked_id)
    return jsonify(dep.to_dict()), 201


@charts_bp.route("/dependencies/<dependency_id>", methods=["DELETE"])
@require_role(can_edit_content)
def remove_dependency(dependency_id):
    dependency_graph.remove_dependency(get_store(), dependency_id)
    return jsonify({"message": "Dependency removed", "id": dependency_id})
