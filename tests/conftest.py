"""Shared fixtures: settings, temporary home and an in-memory resource manager."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from case_harvester.config import ConfigLocator, ConfigRepository, HarvestSettings, ItemKind
from case_harvester.engine import (
    InjectionPayload,
    ResourceHandle,
    ResponseCorrelator,
    WorkerResourceManager,
    WorkItem,
)


@dataclass
class Behaviour:
    """How the fake surface for one locator acts."""

    fields: dict[str, Any] | None = None
    reply_delay: float = 0.01
    ready_delay: float = 0.0
    silent: bool = False
    never_ready: bool = False
    create_error: bool = False
    inject_error: bool = False
    destroy_error: bool = False
    replies: int = 1


@dataclass
class Counters:
    created: list[str] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    injected: list[dict[str, str]] = field(default_factory=list)
    active: int = 0
    max_active: int = 0


def default_fields(payload: InjectionPayload) -> dict[str, Any]:
    if payload.kind is ItemKind.NOTE:
        return {
            "title": f"Note for {payload.source_locator}",
            "author": "Alice Martin",
            "description": "Customer called back.",
            "isPublic": True,
        }
    return {
        "subject": f"Re: {payload.source_locator}",
        "from": "bob@example.com",
        "to": "support@example.com",
        "bodyHTML": "<p>Thanks</p>",
    }


class FakeResourceManager(WorkerResourceManager):
    """Worker surfaces that answer through the correlator's inbound channel."""

    def __init__(
        self,
        settings: HarvestSettings,
        correlator: ResponseCorrelator,
        behaviours: dict[str, Behaviour] | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.correlator = correlator
        self.behaviours = behaviours or {}
        self.counters = Counters()
        self.started = False
        self.closed = False
        self._locators: dict[str, str] = {}

    def behaviour(self, locator: str) -> Behaviour:
        return self.behaviours.get(locator, Behaviour())

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        await super().close()
        self.closed = True

    async def _create(self, handle: ResourceHandle, item: WorkItem) -> None:
        behaviour = self.behaviour(item.source_locator)
        await asyncio.sleep(0)
        if behaviour.create_error:
            raise RuntimeError("tab could not be opened")
        self._locators[handle.id] = item.source_locator
        self.counters.created.append(handle.id)
        self.counters.active += 1
        self.counters.max_active = max(self.counters.max_active, self.counters.active)
        if not behaviour.never_ready:
            asyncio.get_running_loop().call_later(
                behaviour.ready_delay, self.signal_ready, handle.id
            )

    async def _inject(self, handle: ResourceHandle, payload: InjectionPayload) -> None:
        behaviour = self.behaviour(payload.source_locator)
        if behaviour.inject_error:
            raise RuntimeError("script tag rejected")
        self.counters.injected.append(payload.as_dict())
        if behaviour.silent:
            return
        fields = behaviour.fields if behaviour.fields is not None else default_fields(payload)
        message = {"kind": payload.message_kind, **fields}
        loop = asyncio.get_running_loop()
        for _ in range(behaviour.replies):
            loop.call_later(behaviour.reply_delay, self.correlator.post, handle.id, message)

    async def _destroy(self, handle: ResourceHandle) -> None:
        locator = self._locators.pop(handle.id, "")
        self.counters.released.append(handle.id)
        self.counters.active -= 1
        if self.behaviour(locator).destroy_error:
            raise RuntimeError("tab already gone")


@pytest.fixture(autouse=True)
def harvester_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("CASE_HARVESTER_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def fast_settings() -> HarvestSettings:
    return HarvestSettings(
        concurrency_limit=4,
        ready_timeout=0.5,
        correlation_timeout=0.3,
        list_timeout=0.5,
    )


@pytest.fixture
def make_items() -> Callable[..., list[WorkItem]]:
    def _builder(count: int, kind: ItemKind = ItemKind.NOTE, prefix: str = "note") -> list[WorkItem]:
        return [
            WorkItem(
                kind=kind,
                source_locator=f"https://crm.example.com/{prefix}/{index}",
                date_hint=f"{index + 1:02d}/03/2024 09:{index:02d}",
            )
            for index in range(count)
        ]

    return _builder


@pytest.fixture
def behaviour() -> type[Behaviour]:
    return Behaviour


@pytest.fixture
def fake_resources() -> Callable[..., FakeResourceManager]:
    def _factory(
        settings: HarvestSettings,
        correlator: ResponseCorrelator,
        behaviours: dict[str, Behaviour] | None = None,
    ) -> FakeResourceManager:
        return FakeResourceManager(settings, correlator, behaviours)

    return _factory


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator(project_root=tmp_path)
    yield ConfigRepository(locator)
