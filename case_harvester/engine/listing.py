"""Sources of work items: static manifests or a listing view in the browser."""

from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable

import structlog

from ..config import HarvestSettings, ItemKind
from .correlator import ResponseCorrelator
from .errors import HarvestError, ListProviderError
from .models import MODE_LIST, InjectionPayload, WorkItem
from .resources import WorkerResourceManager


@runtime_checkable
class ListProvider(Protocol):
    async def list_items(self) -> list[WorkItem]:
        ...


class StaticListProvider:
    """Items known up front."""

    def __init__(self, items: Iterable[WorkItem]) -> None:
        self._items = list(items)

    async def list_items(self) -> list[WorkItem]:
        return list(self._items)


class BrowserListProvider:
    """Enumerate items by injecting a list script into the listing view.

    The script reports one ``list-result`` message whose ``items`` field is a
    list of ``{"url": ..., "date": ...}`` objects. Older scripts send the list
    under ``data`` with ``dateStr`` dates; both shapes are read.
    """

    def __init__(
        self,
        resources: WorkerResourceManager,
        correlator: ResponseCorrelator,
        kind: ItemKind,
        listing_url: str,
        settings: HarvestSettings,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.resources = resources
        self.correlator = correlator
        self.kind = kind
        self.listing_url = listing_url
        self.settings = settings
        self.logger = logger or structlog.get_logger("case_harvester.listing")

    async def list_items(self) -> list[WorkItem]:
        message_kind = self.settings.kind_settings(self.kind).list_message_kind
        listing = WorkItem(kind=self.kind, source_locator=self.listing_url)
        try:
            async with self.resources.session(listing) as handle:
                await self.resources.await_ready(handle, self.settings.ready_timeout)
                waiter = self.correlator.register(handle.id, message_kind, self.settings.list_timeout)
                try:
                    await self.resources.inject(
                        handle,
                        InjectionPayload(self.kind, self.listing_url, message_kind, mode=MODE_LIST),
                    )
                    raw = await waiter
                finally:
                    self.correlator.discard(handle.id, message_kind)
        except HarvestError as exc:
            raise ListProviderError(
                f"Could not enumerate {self.kind.value} items: {exc}", locator=self.listing_url
            ) from exc

        if raw.get("error"):
            raise ListProviderError(str(raw.get("error")), locator=self.listing_url)
        entries = raw.get("items")
        if entries is None:
            entries = raw.get("data")
        if not isinstance(entries, list):
            raise ListProviderError(
                "list result carries no items array", locator=self.listing_url
            )
        items = [item for item in (self._to_item(entry) for entry in entries) if item is not None]
        self.logger.info(
            "listing_enumerated", kind=self.kind.value, url=self.listing_url, items=len(items)
        )
        return items

    def _to_item(self, entry: Any) -> WorkItem | None:
        if not isinstance(entry, dict) or not entry.get("url"):
            self.logger.warning("listing_entry_skipped", entry=repr(entry)[:200])
            return None
        return WorkItem(
            kind=self.kind,
            source_locator=str(entry["url"]),
            date_hint=str(entry.get("date") or entry.get("dateStr") or ""),
        )


__all__ = ["BrowserListProvider", "ListProvider", "StaticListProvider"]
