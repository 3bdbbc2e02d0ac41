"""Turn raw completion messages into kind-tagged result records."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import structlog

from ..config import ItemKind
from .errors import ExtractionError
from .models import RawMessage, ResultRecord, WorkItem

_DAY_FIRST = re.compile(r"(\d{2})/(\d{2})/(\d{4})\s+(\d{2}):(\d{2})")
_FALLBACK_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%d.%m.%Y %H:%M",
)

ERROR_TITLE = "[Error processing item]"
ERROR_AUTHOR = "System"

logger = structlog.get_logger("case_harvester.normalizer")


def parse_date_hint(text: str | None) -> datetime | None:
    """Parse the listing's date text; ``DD/MM/YYYY HH:MM`` is read as UTC."""

    if not text:
        return None
    value = text.strip()
    if not value:
        return None

    match = _DAY_FIRST.search(value)
    if match:
        day, month, year, hour, minute = (int(part) for part in match.groups())
        if year > 1970 and 1 <= month <= 12 and 1 <= day <= 31 and hour < 24 and minute < 60:
            try:
                return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
            except ValueError:
                logger.warning("date_parts_invalid", value=value)

    normalised = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalised)
    except ValueError:
        for fmt in _FALLBACK_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
            except ValueError:
                continue
            break
        else:
            logger.warning("date_unparsed", value=value)
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _text(raw: RawMessage, key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _occurred_at(item: WorkItem, raw: RawMessage | None = None) -> datetime | None:
    occurred = parse_date_hint(item.date_hint)
    if occurred is None and raw is not None:
        occurred = parse_date_hint(_text(raw, "createdDateText"))
    return occurred


def normalize(item: WorkItem, raw: RawMessage) -> ResultRecord:
    """Map raw scraped fields onto a :class:`ResultRecord` for ``item``."""

    failure = raw.get("error")
    if failure:
        raise ExtractionError(str(failure), locator=item.source_locator)

    occurred_at = _occurred_at(item, raw)
    if item.kind is ItemKind.NOTE:
        visibility = raw.get("isPublic")
        return ResultRecord(
            kind=item.kind,
            title=_text(raw, "title") or "Note",
            author=_text(raw, "author") or "Unknown Author",
            body_content=_text(raw, "description") or "[No Content]",
            visibility=bool(visibility) if visibility is not None else None,
            occurred_at=occurred_at,
            source_locator=item.source_locator,
        )
    if item.kind is ItemKind.EMAIL:
        return ResultRecord(
            kind=item.kind,
            title=_text(raw, "subject") or "Email Subject Not Found",
            author=_text(raw, "from") or "Unknown Sender",
            body_content=_text(raw, "bodyHTML") or "[Email Body Not Found]",
            recipients=_text(raw, "to") or "Unknown Recipient(s)",
            occurred_at=occurred_at,
            source_locator=item.source_locator,
        )
    raise ExtractionError(f"Unsupported item kind: {item.kind}", locator=item.source_locator)


def error_record(item: WorkItem, error: BaseException | str) -> ResultRecord:
    """Placeholder record marking ``item`` as failed."""

    message = str(error)
    if not message and isinstance(error, BaseException):
        message = type(error).__name__
    return ResultRecord(
        kind=item.kind,
        title=ERROR_TITLE,
        author=ERROR_AUTHOR,
        body_content=message,
        occurred_at=_occurred_at(item),
        source_locator=item.source_locator,
        error_message=message,
    )


__all__ = ["ERROR_AUTHOR", "ERROR_TITLE", "error_record", "normalize", "parse_date_hint"]
