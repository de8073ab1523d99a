"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and map them to consistent HTTP status codes.

Usage:
    from tension_hub.core.exceptions import NotFoundError, CascadeError

    raise NotFoundError(resource="Chart", resource_id=chart_id)
    raise CascadeError("archive", chart_id, cause=exc)
"""


class NotFoundError(Exception):
    """Raised when a referenced chart/action/tension does not exist.

    Read paths (hierarchy, aggregation) catch this and return an empty
    result, since stale forward edges may point at deleted records.
    Mutations let it propagate (HTTP 404).

    Args:
        resource: Human-readable model name (e.g. "Chart", "Action").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value. Maps to HTTP 409."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class InconsistentStructureError(Exception):
    """Raised when chart/action back-references disagree.

    Walkers log and fall back to a bounded default instead of raising this;
    it is only raised by operations that cannot proceed without a valid
    link (e.g. telescoping an action whose child chart belongs to another
    action). Maps to HTTP 409.
    """

    def __init__(self, message: str, chart_id: str | None = None) -> None:
        self.chart_id = chart_id
        super().__init__(message)


class CascadeError(Exception):
    """Raised when an archive/restore/delete cascade could not be applied.

    The cascade's transaction is rolled back before this is raised, so no
    subset of the subtree is left half-updated.

    Args:
        operation: "archive" | "restore" | "delete".
        chart_id: Target chart of the cascade.
        cause: The underlying store error.
    """

    def __init__(self, operation: str, chart_id: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.chart_id = chart_id
        self.cause = cause
        msg = f"{operation} cascade failed for chart id={chart_id}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class StoreUnavailableError(Exception):
    """Raised when the record store fails a read or write. Not retried here."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)
