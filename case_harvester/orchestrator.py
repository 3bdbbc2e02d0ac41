"""Pipeline coordinator wiring list providers, worker pools and the report."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping

import structlog

from .browser import PlaywrightResourceManager
from .config import HarvestManifest, HarvestSettings, ItemKind
from .engine import (
    AggregatedResultMap,
    BoundedWorkerPool,
    BrowserListProvider,
    ListProvider,
    ListProviderError,
    ResponseCorrelator,
    ResultRecord,
    StaticListProvider,
    Timeline,
    WorkerResourceManager,
    WorkItem,
)
from .logging_conf import batch_logger
from .report import ReportAssembler
from .ui import ProgressReporter

ResourceFactory = Callable[[HarvestSettings, ResponseCorrelator], WorkerResourceManager]


@dataclass(slots=True)
class AdmissionPolicy:
    """Run sibling batches side by side only while the total stays small."""

    threshold: int = 5

    def __post_init__(self) -> None:
        if self.threshold < 0:
            raise ValueError("AdmissionPolicy threshold must be >= 0")

    def run_concurrently(self, total_items: int) -> bool:
        return total_items <= self.threshold


@dataclass(slots=True)
class HarvestResult:
    timeline: Timeline
    batches: dict[ItemKind, AggregatedResultMap] = field(default_factory=dict)
    concurrent: bool = False
    report_path: Path | None = None

    def summary(self) -> dict[str, int]:
        return {
            "items": sum(len(results) for results in self.batches.values()),
            "ordered": len(self.timeline.ordered),
            "unparsed": len(self.timeline.unparsed),
            "errors": len(self.timeline.errors),
        }


def merge_timeline(*maps: AggregatedResultMap) -> Timeline:
    """Merge result maps; records without a timestamp are kept aside."""

    ordered: list[ResultRecord] = []
    unparsed: list[ResultRecord] = []
    for results in maps:
        for record in results.values():
            if record.occurred_at is None:
                unparsed.append(record)
            else:
                ordered.append(record)
    ordered.sort(key=lambda record: record.occurred_at)
    return Timeline(ordered=ordered, unparsed=unparsed)


class PipelineCoordinator:
    """Enumerate every batch, run the pools, merge and hand off the result."""

    def __init__(
        self,
        pool: BoundedWorkerPool,
        policy: AdmissionPolicy,
        report: ReportAssembler | None = None,
        progress: ProgressReporter | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.pool = pool
        self.policy = policy
        self.report = report
        self.progress = progress
        self.logger = logger or structlog.get_logger("case_harvester.coordinator")

    async def collect(self, providers: Mapping[ItemKind, ListProvider]) -> HarvestResult:
        batches = await self.enumerate(providers)
        total = sum(len(items) for items in batches.values())
        concurrent = self.policy.run_concurrently(total)
        self.logger.info(
            "batches_enumerated",
            total=total,
            concurrent=concurrent,
            threshold=self.policy.threshold,
            **{kind.value: len(items) for kind, items in batches.items()},
        )

        if self.progress is not None:
            self.progress.start(total)
        try:
            results = await self.run_batches(batches, concurrent=concurrent)
        finally:
            if self.progress is not None:
                self.progress.close()

        timeline = merge_timeline(*results.values())
        report_path = None
        if self.report is not None:
            report_path = self.report.assemble(timeline)
            self.logger.info("report_written", path=str(report_path) if report_path else None)
        self.logger.info(
            "harvest_finished",
            ordered=len(timeline.ordered),
            unparsed=len(timeline.unparsed),
            errors=len(timeline.errors),
        )
        return HarvestResult(
            timeline=timeline,
            batches=results,
            concurrent=concurrent,
            report_path=report_path,
        )

    async def enumerate(
        self, providers: Mapping[ItemKind, ListProvider]
    ) -> dict[ItemKind, list[WorkItem]]:
        """List every batch before any pool starts; a failure here is fatal."""

        batches: dict[ItemKind, list[WorkItem]] = {}
        for kind, provider in providers.items():
            try:
                batches[kind] = list(await provider.list_items())
            except ListProviderError:
                self.logger.error("listing_failed", kind=kind.value, exc_info=True)
                raise
            except Exception as exc:
                self.logger.error("listing_failed", kind=kind.value, exc_info=True)
                raise ListProviderError(
                    f"Could not enumerate {kind.value} items: {exc}"
                ) from exc
        return batches

    async def run_batches(
        self, batches: Mapping[ItemKind, list[WorkItem]], *, concurrent: bool
    ) -> dict[ItemKind, AggregatedResultMap]:
        kinds = list(batches)
        if concurrent:
            outcomes = await asyncio.gather(*(self.pool.run(batches[kind]) for kind in kinds))
            return dict(zip(kinds, outcomes))
        results: dict[ItemKind, AggregatedResultMap] = {}
        for kind in kinds:
            results[kind] = await self.pool.run(batches[kind])
        return results


def build_providers(
    manifest: HarvestManifest,
    resources: WorkerResourceManager,
    correlator: ResponseCorrelator,
    settings: HarvestSettings,
) -> dict[ItemKind, ListProvider]:
    providers: dict[ItemKind, ListProvider] = {}
    for kind, batch in manifest.batches.items():
        if batch.items is not None:
            providers[kind] = StaticListProvider(
                WorkItem(kind=kind, source_locator=entry.url, date_hint=entry.date)
                for entry in batch.items
            )
        else:
            providers[kind] = BrowserListProvider(
                resources,
                correlator,
                kind,
                batch.listing,
                settings,
                logger=batch_logger(kind.value),
            )
    return providers


async def run_manifest(
    manifest: HarvestManifest,
    settings: HarvestSettings,
    *,
    report: ReportAssembler | None = None,
    progress: ProgressReporter | None = None,
    resources_factory: ResourceFactory | None = None,
) -> HarvestResult:
    """Collect everything ``manifest`` names with a fresh correlator and browser."""

    factory = resources_factory or PlaywrightResourceManager
    logger = structlog.get_logger("case_harvester.coordinator")
    if manifest.record:
        logger = logger.bind(record=manifest.record)
    async with ResponseCorrelator() as correlator:
        async with factory(settings, correlator) as resources:
            pool = BoundedWorkerPool(
                resources,
                correlator,
                settings,
                on_result=progress.record if progress is not None else None,
                batch_loggers={kind: batch_logger(kind.value) for kind in manifest.batches},
            )
            coordinator = PipelineCoordinator(
                pool,
                AdmissionPolicy(settings.concurrent_threshold),
                report=report,
                progress=progress,
                logger=logger,
            )
            providers = build_providers(manifest, resources, correlator, settings)
            return await coordinator.collect(providers)


__all__ = [
    "AdmissionPolicy",
    "HarvestResult",
    "PipelineCoordinator",
    "build_providers",
    "merge_timeline",
    "run_manifest",
]
