from __future__ import annotations

import asyncio

import pytest

from case_harvester.engine import CorrelationTimeout, RawMessage, ResponseCorrelator


def test_delivery_resolves_waiter_exactly_once() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        waiter = correlator.register("tab-1", "note-result", timeout=1.0)
        first = correlator.deliver("tab-1", RawMessage("note-result", {"title": "first"}))
        second = correlator.deliver("tab-1", RawMessage("note-result", {"title": "second"}))
        message = await waiter
        return correlator, first, second, message

    correlator, first, second, message = asyncio.run(scenario())
    assert first is True
    assert second is False
    assert message.get("title") == "first"
    assert correlator.pending_count == 0
    assert correlator.delivered == 1
    assert correlator.dropped == 1


def test_timeout_first_then_late_message_is_dropped() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        waiter = correlator.register("tab-1", "note-result", timeout=0.01)
        with pytest.raises(CorrelationTimeout) as excinfo:
            await waiter
        late = correlator.deliver("tab-1", RawMessage("note-result", {"title": "late"}))
        return correlator, late, excinfo.value

    correlator, late, error = asyncio.run(scenario())
    assert late is False
    assert error.resource_id == "tab-1"
    assert "note-result" in str(error)
    assert correlator.expired == 1
    assert correlator.delivered == 0
    assert correlator.pending_count == 0


def test_message_first_then_deadline_passes_without_effect() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        waiter = correlator.register("tab-1", "email-result", timeout=0.02)
        assert correlator.deliver("tab-1", RawMessage("email-result", {"subject": "hi"}))
        await asyncio.sleep(0.05)
        return correlator, waiter

    correlator, waiter = asyncio.run(scenario())
    assert waiter.done()
    assert waiter.result().get("subject") == "hi"
    assert correlator.expired == 0


def test_same_tick_race_resolves_once() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        loop = asyncio.get_running_loop()
        waiter = correlator.register("tab-1", "note-result", timeout=0)
        loop.call_soon(correlator.deliver, "tab-1", RawMessage("note-result"))
        try:
            outcome = await waiter
        except CorrelationTimeout as exc:
            outcome = exc
        await asyncio.sleep(0.01)
        return correlator, outcome

    correlator, outcome = asyncio.run(scenario())
    assert correlator.delivered + correlator.expired == 1
    if isinstance(outcome, CorrelationTimeout):
        assert correlator.dropped == 1
    else:
        assert outcome.kind == "note-result"
    assert correlator.pending_count == 0


def test_register_rejects_duplicate_pending_pair() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        correlator.register("tab-1", "note-result", timeout=1.0)
        with pytest.raises(ValueError):
            correlator.register("tab-1", "note-result", timeout=1.0)
        # A different kind for the same resource is a separate correlation
        correlator.register("tab-1", "list-result", timeout=1.0)
        count = correlator.pending_count
        correlator.discard("tab-1")
        return count

    assert asyncio.run(scenario()) == 2


def test_mismatched_kind_or_unknown_resource_is_dropped() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        waiter = correlator.register("tab-1", "note-result", timeout=1.0)
        wrong_kind = correlator.deliver("tab-1", RawMessage("email-result"))
        wrong_tab = correlator.deliver("tab-2", RawMessage("note-result"))
        foreign = correlator.deliver(None, RawMessage("note-result"))
        still_pending = correlator.is_pending("tab-1", "note-result")
        correlator.discard("tab-1")
        return wrong_kind, wrong_tab, foreign, still_pending, waiter

    wrong_kind, wrong_tab, foreign, still_pending, waiter = asyncio.run(scenario())
    assert (wrong_kind, wrong_tab, foreign) == (False, False, False)
    assert still_pending
    assert waiter.cancelled()


def test_discard_cancels_waiter_and_ignores_later_messages() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        waiter = correlator.register("tab-1", "note-result", timeout=0.02)
        removed = correlator.discard("tab-1", "note-result")
        await asyncio.sleep(0.05)
        late = correlator.deliver("tab-1", RawMessage("note-result"))
        return correlator, removed, late, waiter

    correlator, removed, late, waiter = asyncio.run(scenario())
    assert removed == 1
    assert late is False
    assert waiter.cancelled()
    assert correlator.expired == 0


def test_dispatcher_routes_posted_payloads() -> None:
    async def scenario():
        async with ResponseCorrelator() as correlator:
            waiter = correlator.register("tab-1", "note-result", timeout=1.0)
            # Older scripts tag results with ``type``
            correlator.post("tab-1", {"type": "note-result", "title": "Callback"})
            correlator.post("tab-1", {"title": "no kind at all"})
            message = await waiter
            await correlator.drain()
            return correlator, message

    correlator, message = asyncio.run(scenario())
    assert message.kind == "note-result"
    assert message.get("title") == "Callback"
    assert correlator.dropped == 1


def test_post_and_run_require_started_dispatcher() -> None:
    correlator = ResponseCorrelator()
    with pytest.raises(RuntimeError):
        correlator.post("tab-1", {"kind": "note-result"})
    with pytest.raises(RuntimeError):
        asyncio.run(correlator.run())


def test_stop_drops_outstanding_registrations() -> None:
    async def scenario():
        correlator = ResponseCorrelator()
        await correlator.start()
        waiter = correlator.register("tab-1", "note-result", timeout=5.0)
        await correlator.stop()
        return correlator, waiter

    correlator, waiter = asyncio.run(scenario())
    assert correlator.pending_count == 0
    assert waiter.cancelled()
