"""Standardised API error responses.

Usage
-----
    from tension_hub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Chart not found")
    return api_error(E.CASCADE_FAILED, str(exc), details={"chart_id": exc.chart_id})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    INCONSISTENT_STRUCTURE = "ERR_INCONSISTENT_STRUCTURE"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500 / 503
    CASCADE_FAILED = "ERR_CASCADE_FAILED"
    STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.INCONSISTENT_STRUCTURE: 409,
    E.FORBIDDEN: 403,
    E.CASCADE_FAILED: 500,
    E.STORE_UNAVAILABLE: 503,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp) -> None:
    """Attach the engine exception → JSON mapping to a blueprint."""
    import logging

    from flask import request

    from tension_hub.core.exceptions import (
        CascadeError,
        ConflictError,
        InconsistentStructureError,
        NotFoundError,
        StoreUnavailableError,
        ValidationError,
    )

    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(InconsistentStructureError)
    def _handle_inconsistent(error: InconsistentStructureError):
        return api_error(E.INCONSISTENT_STRUCTURE, str(error), details={"chart_id": error.chart_id})

    @bp.errorhandler(CascadeError)
    def _handle_cascade(error: CascadeError):
        logger.error("Cascade failure endpoint=%s: %s", request.endpoint, error)
        return api_error(
            E.CASCADE_FAILED, str(error),
            details={"operation": error.operation, "chart_id": error.chart_id},
        )

    @bp.errorhandler(StoreUnavailableError)
    def _handle_store(error: StoreUnavailableError):
        logger.error("Record store unavailable endpoint=%s: %s", request.endpoint, error)
        return api_error(E.STORE_UNAVAILABLE, "Record store unavailable")
