"""Bounded-concurrency pool running the single-item pipeline."""

from __future__ import annotations

import asyncio
from typing import Callable, Iterable, Mapping

import structlog

from ..config import HarvestSettings, ItemKind
from .aggregator import ResultAggregator
from .correlator import ResponseCorrelator
from .errors import HarvestError
from .models import AggregatedResultMap, InjectionPayload, ResultRecord, WorkItem
from .normalizer import error_record, normalize
from .resources import WorkerResourceManager

ResultCallback = Callable[[ResultRecord], None]

CANCELLED_MESSAGE = "Cancelled before the item could be processed"
INTERRUPTED_MESSAGE = "Cancelled while processing"


class BoundedWorkerPool:
    """Drain a queue of work items with at most N pipelines in flight."""

    def __init__(
        self,
        resources: WorkerResourceManager,
        correlator: ResponseCorrelator,
        settings: HarvestSettings,
        logger: structlog.BoundLogger | None = None,
        on_result: ResultCallback | None = None,
        batch_loggers: Mapping[ItemKind, structlog.BoundLogger] | None = None,
    ) -> None:
        self.resources = resources
        self.correlator = correlator
        self.settings = settings
        self.logger = logger or structlog.get_logger("case_harvester.pool")
        self.on_result = on_result
        self.batch_loggers = dict(batch_loggers or {})

    async def run(
        self,
        items: Iterable[WorkItem],
        concurrency_limit: int | None = None,
        aggregator: ResultAggregator | None = None,
    ) -> AggregatedResultMap:
        limit = self.settings.concurrency_limit if concurrency_limit is None else concurrency_limit
        if limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if aggregator is None:
            aggregator = ResultAggregator()
        batch = self._unique(items)
        if not batch:
            return aggregator.snapshot()

        queue: asyncio.Queue[WorkItem] = asyncio.Queue()
        for item in batch:
            queue.put_nowait(item)
        total = len(batch)
        runner_count = min(limit, total)
        self.logger.info("pool_started", items=total, runners=runner_count)

        started: set[str] = set()
        runners = [
            asyncio.create_task(
                self._runner(queue, aggregator, total, started), name=f"pool-runner-{index}"
            )
            for index in range(runner_count)
        ]
        try:
            await asyncio.gather(*runners)
        except asyncio.CancelledError:
            for runner in runners:
                runner.cancel()
            await asyncio.gather(*runners, return_exceptions=True)
            self._fail_remaining(batch, aggregator, started)
            raise
        self.logger.info("pool_finished", items=total, results=len(aggregator))
        return aggregator.snapshot()

    async def _runner(
        self,
        queue: asyncio.Queue[WorkItem],
        aggregator: ResultAggregator,
        total: int,
        started: set[str],
    ) -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            index = total - queue.qsize()
            started.add(item.source_locator)
            record = await self.process_item(item, index=index, total=total)
            aggregator.add(record)
            self._notify(record)

    async def process_item(
        self, item: WorkItem, *, index: int | None = None, total: int | None = None
    ) -> ResultRecord:
        """Run one item end to end; every failure becomes an error record."""

        log = self.batch_loggers.get(item.kind, self.logger).bind(
            kind=item.kind.value, url=item.source_locator
        )
        log.info("item_started", index=index, total=total)
        message_kind = self.settings.message_kind(item.kind)
        try:
            async with self.resources.session(item) as handle:
                await self.resources.await_ready(handle, self.settings.ready_timeout)
                waiter = self.correlator.register(
                    handle.id, message_kind, self.settings.correlation_timeout
                )
                try:
                    await self.resources.inject(
                        handle, InjectionPayload(item.kind, item.source_locator, message_kind)
                    )
                    raw = await waiter
                finally:
                    self.correlator.discard(handle.id, message_kind)
            record = normalize(item, raw)
        except HarvestError as exc:
            log.warning("item_failed", error=str(exc), error_type=type(exc).__name__)
            return error_record(item, exc)
        except Exception as exc:  # noqa: BLE001
            log.error("item_crashed", error=str(exc), exc_info=True)
            return error_record(item, exc)
        log.info("item_collected", title=record.title)
        return record

    def _notify(self, record: ResultRecord) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("result_callback_failed", error=str(exc))

    def _unique(self, items: Iterable[WorkItem]) -> list[WorkItem]:
        seen: set[str] = set()
        batch: list[WorkItem] = []
        for item in items:
            if item.source_locator in seen:
                self.logger.warning("duplicate_item_skipped", url=item.source_locator)
                continue
            seen.add(item.source_locator)
            batch.append(item)
        return batch

    def _fail_remaining(
        self, batch: list[WorkItem], aggregator: ResultAggregator, started: set[str]
    ) -> None:
        remaining = aggregator.missing(batch)
        if remaining:
            self.logger.error("pool_cancelled", unfinished=len(remaining))
        for item in remaining:
            message = INTERRUPTED_MESSAGE if item.source_locator in started else CANCELLED_MESSAGE
            aggregator.add(error_record(item, message))


__all__ = ["BoundedWorkerPool", "CANCELLED_MESSAGE", "INTERRUPTED_MESSAGE", "ResultCallback"]
