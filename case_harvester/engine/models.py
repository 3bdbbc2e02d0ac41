"""Value objects flowing through the harvest pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from ..config import ItemKind

MODE_DETAIL = "detail"
MODE_LIST = "list"


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One related record to fetch."""

    kind: ItemKind
    source_locator: str
    date_hint: str = ""


@dataclass(frozen=True, slots=True)
class ResourceHandle:
    """Identity of one ephemeral worker resource (a browser page)."""

    id: str
    created_at: datetime

    @classmethod
    def new(cls) -> "ResourceHandle":
        return cls(id=uuid.uuid4().hex, created_at=datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class InjectionPayload:
    """What the injected extraction logic is told about its item."""

    kind: ItemKind
    source_locator: str
    message_kind: str
    mode: str = MODE_DETAIL

    def as_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind.value,
            "locator": self.source_locator,
            "messageKind": self.message_kind,
            "mode": self.mode,
        }


@dataclass(frozen=True, slots=True)
class RawMessage:
    """Completion message as reported by a worker resource."""

    kind: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawMessage":
        data = dict(payload)
        # Older extraction scripts tag their results with ``type``
        kind = data.pop("kind", None) or data.pop("type", None)
        if not kind:
            raise ValueError("completion message carries no kind")
        return cls(kind=str(kind), fields=data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass(frozen=True, slots=True)
class ResultRecord:
    """Normalised, kind-tagged outcome for one work item."""

    kind: ItemKind
    title: str
    author: str
    body_content: str
    source_locator: str
    visibility: bool | None = None
    recipients: str | None = None
    occurred_at: datetime | None = None
    error_message: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error_message is not None

    def as_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "author": self.author,
            "body_content": self.body_content,
            "visibility": self.visibility,
            "recipients": self.recipients,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "source_locator": self.source_locator,
            "error_message": self.error_message,
        }


AggregatedResultMap = Dict[str, ResultRecord]


@dataclass(slots=True)
class Timeline:
    """Merged records: sortable ones in order, the rest kept aside."""

    ordered: list[ResultRecord] = field(default_factory=list)
    unparsed: list[ResultRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ordered) + len(self.unparsed)

    @property
    def errors(self) -> list[ResultRecord]:
        return [record for record in (*self.ordered, *self.unparsed) if record.is_error]


__all__ = [
    "AggregatedResultMap",
    "InjectionPayload",
    "MODE_DETAIL",
    "MODE_LIST",
    "RawMessage",
    "ResourceHandle",
    "ResultRecord",
    "Timeline",
    "WorkItem",
]
