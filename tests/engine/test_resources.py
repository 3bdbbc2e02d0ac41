from __future__ import annotations

import asyncio

import pytest

from case_harvester.config import ItemKind
from case_harvester.engine import (
    CreateFailed,
    InjectFailed,
    InjectionPayload,
    LoadTimeout,
    ResponseCorrelator,
    WorkItem,
)

ITEM = WorkItem(ItemKind.NOTE, "https://crm.example.com/note/1", "01/03/2024 09:00")
PAYLOAD = InjectionPayload(ItemKind.NOTE, ITEM.source_locator, "note-result")


def test_session_releases_once_when_body_raises(fast_settings, fake_resources) -> None:
    async def scenario():
        resources = fake_resources(fast_settings, ResponseCorrelator())
        with pytest.raises(KeyError):
            async with resources.session(ITEM) as handle:
                assert resources.owns(handle.id)
                raise KeyError("boom")
        return resources, handle

    resources, handle = asyncio.run(scenario())
    assert resources.counters.released == [handle.id]
    assert resources.owned_ids == frozenset()


def test_await_ready_returns_after_signal(fast_settings, fake_resources, behaviour) -> None:
    async def scenario():
        resources = fake_resources(
            fast_settings,
            ResponseCorrelator(),
            {ITEM.source_locator: behaviour(ready_delay=0.02)},
        )
        async with resources.session(ITEM) as handle:
            await resources.await_ready(handle, timeout=1.0)
        return resources

    resources = asyncio.run(scenario())
    assert len(resources.counters.released) == 1


def test_await_ready_timeout_is_typed_and_still_released(
    fast_settings, fake_resources, behaviour
) -> None:
    async def scenario():
        resources = fake_resources(
            fast_settings,
            ResponseCorrelator(),
            {ITEM.source_locator: behaviour(never_ready=True)},
        )
        with pytest.raises(LoadTimeout) as excinfo:
            async with resources.session(ITEM) as handle:
                await resources.await_ready(handle, timeout=0.02)
        return resources, handle, excinfo.value

    resources, handle, error = asyncio.run(scenario())
    assert error.resource_id == handle.id
    assert resources.counters.released == [handle.id]


def test_create_failure_is_wrapped_and_nothing_is_owned(
    fast_settings, fake_resources, behaviour
) -> None:
    async def scenario():
        resources = fake_resources(
            fast_settings,
            ResponseCorrelator(),
            {ITEM.source_locator: behaviour(create_error=True)},
        )
        with pytest.raises(CreateFailed) as excinfo:
            await resources.acquire(ITEM)
        return resources, excinfo.value

    resources, error = asyncio.run(scenario())
    assert error.locator == ITEM.source_locator
    assert "tab could not be opened" in str(error)
    assert resources.owned_ids == frozenset()
    assert resources.counters.released == []


def test_inject_failure_is_wrapped(fast_settings, fake_resources, behaviour) -> None:
    async def scenario():
        resources = fake_resources(
            fast_settings,
            ResponseCorrelator(),
            {ITEM.source_locator: behaviour(inject_error=True)},
        )
        async with resources.session(ITEM) as handle:
            with pytest.raises(InjectFailed) as excinfo:
                await resources.inject(handle, PAYLOAD)
        return resources, excinfo.value

    resources, error = asyncio.run(scenario())
    assert "script tag rejected" in str(error)
    assert len(resources.counters.released) == 1


def test_release_failure_is_logged_not_raised(fast_settings, fake_resources, behaviour) -> None:
    async def scenario():
        resources = fake_resources(
            fast_settings,
            ResponseCorrelator(),
            {ITEM.source_locator: behaviour(destroy_error=True)},
        )
        handle = await resources.acquire(ITEM)
        await resources.release(handle)
        # Second release of the same handle is a no-op
        await resources.release(handle)
        return resources

    resources = asyncio.run(scenario())
    assert len(resources.counters.released) == 1
    assert resources.owned_ids == frozenset()


def test_signal_ready_for_unknown_resource(fast_settings, fake_resources) -> None:
    resources = fake_resources(fast_settings, ResponseCorrelator())
    assert resources.signal_ready("missing") is False


def test_close_releases_leftover_resources(fast_settings, fake_resources, make_items) -> None:
    async def scenario():
        resources = fake_resources(fast_settings, ResponseCorrelator())
        async with resources:
            for item in make_items(3):
                await resources.acquire(item)
            assert len(resources.owned_ids) == 3
        return resources

    resources = asyncio.run(scenario())
    assert resources.started and resources.closed
    assert len(resources.counters.released) == 3
    assert resources.owned_ids == frozenset()
