"""
Tension Hub
Blueprint registry.
"""

from flask import request

from tension_hub.services.record_store import RecordStore


def get_store() -> RecordStore:
    """Record store bound to the request's session."""
    return RecordStore()


def workspace_arg():
    """``workspace_id`` from the query string, else from the JSON body."""
    value = request.args.get("workspace_id")
    if value is None:
        value = (request.get_json(silent=True) or {}).get("workspace_id")
    return value or None
