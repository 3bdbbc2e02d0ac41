"""Collect exactly one result record per work item."""

from __future__ import annotations

from threading import Lock
from typing import Iterable

from .errors import DuplicateResultError
from .models import AggregatedResultMap, ResultRecord, WorkItem


class ResultAggregator:
    """Mapping from source locator to result, written once per key.

    Pipelines sharing one event loop never interleave inside ``add``; the lock
    keeps the map consistent when a caller feeds it from worker threads too.
    """

    def __init__(self) -> None:
        self._results: AggregatedResultMap = {}
        self._lock = Lock()

    def add(self, record: ResultRecord) -> None:
        with self._lock:
            if record.source_locator in self._results:
                raise DuplicateResultError(
                    f"Result already recorded for {record.source_locator}"
                )
            self._results[record.source_locator] = record

    def get(self, locator: str) -> ResultRecord | None:
        with self._lock:
            return self._results.get(locator)

    def missing(self, items: Iterable[WorkItem]) -> list[WorkItem]:
        with self._lock:
            return [item for item in items if item.source_locator not in self._results]

    def snapshot(self) -> AggregatedResultMap:
        with self._lock:
            return dict(self._results)

    def __contains__(self, locator: object) -> bool:
        with self._lock:
            return locator in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


__all__ = ["ResultAggregator"]
