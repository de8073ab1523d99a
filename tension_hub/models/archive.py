"""
Archive Mixin — chart archiving.

Adds an ``archived_at`` timestamp column. Archived records stay in the
table so a later restore can re-link them; only an explicit delete
removes them.

Usage:
    class Chart(ArchivableMixin, db.Model):
        ...

    chart.archive()
    chart.unarchive()
"""

from datetime import datetime, timezone

from tension_hub.models import db


class ArchivableMixin:
    """Mixin that adds archive/restore support to any SQLAlchemy model."""

    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def archive(self, when: datetime | None = None):
        """Mark this record as archived."""
        self.archived_at = when or datetime.now(timezone.utc)

    def unarchive(self):
        """Clear the archive marker."""
        self.archived_at = None
