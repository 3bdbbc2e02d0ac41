from __future__ import annotations

import pytest

from case_harvester.config import ItemKind
from case_harvester.engine import DuplicateResultError, ResultAggregator, WorkItem, error_record


def test_aggregator_writes_each_key_once() -> None:
    item = WorkItem(ItemKind.NOTE, "https://crm.example.com/note/1")
    aggregator = ResultAggregator()
    aggregator.add(error_record(item, "first"))
    with pytest.raises(DuplicateResultError):
        aggregator.add(error_record(item, "second"))
    assert len(aggregator) == 1
    assert aggregator.get(item.source_locator).error_message == "first"


def test_aggregator_reports_missing_and_copies_snapshot() -> None:
    items = [
        WorkItem(ItemKind.EMAIL, f"https://crm.example.com/email/{index}") for index in range(3)
    ]
    aggregator = ResultAggregator()
    aggregator.add(error_record(items[1], "failed"))
    assert aggregator.missing(items) == [items[0], items[2]]
    assert items[1].source_locator in aggregator

    snapshot = aggregator.snapshot()
    snapshot.clear()
    assert len(aggregator) == 1
