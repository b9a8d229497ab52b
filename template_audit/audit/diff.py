"""Field-level diff between two template snapshots.

Pure and deterministic: fields are compared in a fixed canonical order, so
the same pair of snapshots always yields the same list. Labels are compared
as sets. Provider bookkeeping timestamps (created_at, updated_at,
draft_updated_at) change on every write and are not diffed.
"""

from __future__ import annotations

import json
from typing import Any

from template_audit.models.enums import ChangeType
from template_audit.schemas.audit import ChangeRecord
from template_audit.schemas.snapshot import TemplateSnapshot

DIFFED_FIELDS: tuple[str, ...] = (
    "slug",
    "name",
    "labels",
    "html_content",
    "subject",
    "from_email",
    "from_name",
    "plain_text",
    "published_name",
    "published_html_content",
    "published_subject",
    "published_from_email",
    "published_from_name",
    "published_plain_text",
    "published_at",
)

_PREVIEW_CHARS = 100


def diff(before: TemplateSnapshot, after: TemplateSnapshot) -> list[ChangeRecord]:
    """Return the fields whose values differ, in canonical order."""
    changes: list[ChangeRecord] = []
    for field in DIFFED_FIELDS:
        old = getattr(before, field)
        new = getattr(after, field)
        if old == new:
            continue
        if isinstance(old, frozenset):
            old, new = sorted(old), sorted(new)
        changes.append(ChangeRecord(
            field=field,
            old_value=old,
            new_value=new,
            change_type=ChangeType.MODIFIED,
        ))
    return changes


def summarize(changes: list[ChangeRecord]) -> str:
    """One-line description, e.g. "Changed: subject, labels"."""
    if not changes:
        return "No changes"
    return "Changed: " + ", ".join(c.field for c in changes)


def format_change(change: ChangeRecord) -> str:
    """Human-readable line for a single change; long strings are truncated."""
    if change.change_type is ChangeType.ADDED:
        return f"Added {change.field}: {json.dumps(change.new_value)}"
    if change.change_type is ChangeType.REMOVED:
        return f"Removed {change.field}: {json.dumps(change.old_value)}"
    return f"Changed {change.field}: {_preview(change.old_value)} → {_preview(change.new_value)}"


def _preview(value: Any) -> str:
    if isinstance(value, str) and len(value) > _PREVIEW_CHARS:
        return value[:_PREVIEW_CHARS] + "..."
    return json.dumps(value)
