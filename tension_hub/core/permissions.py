"""
Workspace role checks.

The caller's role is an input resolved upstream (by the auth/session
provider) and handed over in the ``X-Workspace-Role`` header. This module
only answers "may this role do X"; it is not a policy engine.

Usage:
    @charts_bp.route("/charts", methods=["POST"])
    @require_role(can_create_chart)
    def create_chart():
        ...

When no role header is present, the decorators pass through so that an
outer auth layer stays in charge of access.
"""

import functools
import logging

from flask import request

from tension_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ROLE_HEADER = "X-Workspace-Role"

WORKSPACE_ROLES = ("owner", "consultant", "editor", "viewer")


def can_create_chart(role: str) -> bool:
    return role in ("owner", "consultant")


def can_edit_content(role: str) -> bool:
    """Visions, realities, tensions, actions, archive/restore/delete of charts."""
    return role in ("owner", "consultant", "editor")


def can_view(role: str) -> bool:
    return role in WORKSPACE_ROLES


def require_role(check):
    """
    Decorator: reject the request with 403 unless ``check(role)`` holds.

    Args:
        check: One of the ``can_*`` predicates above.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            role = request.headers.get(ROLE_HEADER)
            if role is None:
                return f(*args, **kwargs)

            role = role.strip().lower()
            if not check(role):
                logger.warning(
                    "Role '%s' denied: %s on %s", role, check.__name__, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required": check.__name__})

            return f(*args, **kwargs)
        return decorated
    return decorator
