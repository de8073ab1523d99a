"""
Tension Hub
Dashboard blueprint — workspace analytics.

Endpoints:
    GET /api/v1/workspaces/<wid>/dashboard                     every view
    GET /api/v1/workspaces/<wid>/dashboard/<view>              one view
    GET /api/v1/dashboard                                      every view, all workspaces

Query params (all optional):
    chart_id   restrict to a chart and its descendants ("all" = no restriction)
    period     all | this_month | last_month | this_quarter | last_quarter | this_year | custom
    from, to   custom period bounds (ISO dates)
"""

import logging

from flask import Blueprint, jsonify, request

from tension_hub.blueprints import get_store
from tension_hub.core.permissions import can_view, require_role
from tension_hub.services.dashboard_service import DashboardBuilder
from tension_hub.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1")
register_error_handlers(dashboard_bp)


def _builder(workspace_id):
    return DashboardBuilder(
        get_store(),
        workspace_id,
        chart_id=request.args.get("chart_id"),
        period=request.args.get("period"),
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
    )


@dashboard_bp.route("/workspaces/<workspace_id>/dashboard", methods=["GET"])
@require_role(can_view)
def workspace_dashboard(workspace_id):
    return jsonify(_builder(workspace_id).build())


@dashboard_bp.route("/workspaces/<workspace_id>/dashboard/<view>", methods=["GET"])
@require_role(can_view)
def workspace_dashboard_view(workspace_id, view):
    if view not in DashboardBuilder.view_names():
        return api_error(
            E.NOT_FOUND, f"Unknown dashboard view: {view}",
            details={"views": DashboardBuilder.view_names()},
        )
    return jsonify({view: _builder(workspace_id).compute(view)})


@dashboard_bp.route("/dashboard", methods=["GET"])
@require_role(can_view)
def personal_dashboard():
    return jsonify(_builder(None).build())
