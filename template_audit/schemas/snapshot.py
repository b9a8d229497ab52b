"""TemplateSnapshot — immutable copy of a template's full state at one instant.

Snapshots are compared by value only. Labels have set semantics: two
snapshots whose labels differ only in order are equal. Serialization to the
provider's field names happens here and nowhere else.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator

# Snapshot field → email provider payload key
_PROVIDER_KEYS: dict[str, str] = {
    "slug": "slug",
    "name": "name",
    "labels": "labels",
    "html_content": "code",
    "subject": "subject",
    "from_email": "from_email",
    "from_name": "from_name",
    "plain_text": "text",
    "published_name": "publish_name",
    "published_html_content": "publish_code",
    "published_subject": "publish_subject",
    "published_from_email": "publish_from_email",
    "published_from_name": "publish_from_name",
    "published_plain_text": "publish_text",
    "published_at": "published_at",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "draft_updated_at": "draft_updated_at",
}

# Draft fields a create/update call can set on the provider
_WRITABLE_FIELDS = ("html_content", "subject", "from_email", "from_name", "plain_text")


class TemplateSnapshot(BaseModel):
    """Full, immutable state of one email template."""

    model_config = ConfigDict(frozen=True)

    slug: str = ""
    name: str
    labels: frozenset[str] = frozenset()

    # Draft content
    html_content: str = ""
    subject: str = ""
    from_email: str = ""
    from_name: str = ""
    plain_text: str = ""

    # Published content
    published_name: str = ""
    published_html_content: str = ""
    published_subject: str = ""
    published_from_email: str = ""
    published_from_name: str = ""
    published_plain_text: str = ""
    published_at: str | None = None

    # Provider bookkeeping timestamps, kept verbatim
    created_at: str | None = None
    updated_at: str | None = None
    draft_updated_at: str | None = None

    @field_validator(
        "slug",
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
        mode="before",
    )
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        """The provider sends null for unset text fields."""
        return "" if v is None else v

    @field_validator("labels", mode="before")
    @classmethod
    def none_to_no_labels(cls, v: Any) -> Any:
        return () if v is None else v

    @field_serializer("labels")
    def serialize_labels(self, labels: frozenset[str]) -> list[str]:
        """Stable order so stored JSON is deterministic."""
        return sorted(labels)

    @classmethod
    def from_provider(cls, payload: Mapping[str, Any]) -> TemplateSnapshot:
        """Build a snapshot from the email provider's template payload."""
        return cls.model_validate(
            {field: payload.get(key) for field, key in _PROVIDER_KEYS.items() if key in payload}
        )

    def to_provider_fields(self) -> dict[str, Any]:
        """Draft fields in the provider's naming, ready for create/update."""
        fields: dict[str, Any] = {_PROVIDER_KEYS[f]: getattr(self, f) for f in _WRITABLE_FIELDS}
        fields["labels"] = sorted(self.labels)
        return fields
