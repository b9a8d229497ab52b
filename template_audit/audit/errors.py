"""Exceptions raised by explicit (user-invoked) audit operations.

Recording never raises; these only surface from queries and restore.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for audit engine errors."""


class EntryNotFoundError(AuditError):
    """No entry with this id exists for the tenant.

    Raised identically for a missing id and for an id owned by another
    tenant, so callers cannot discover other tenants' entries.
    """

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Audit log {entry_id} not found")
        self.entry_id = entry_id


class NothingToRestoreError(AuditError):
    """The entry carries no snapshot that could be re-applied."""

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Audit log {entry_id} has no state to restore")
        self.entry_id = entry_id
