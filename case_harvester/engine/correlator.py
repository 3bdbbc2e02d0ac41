"""Match asynchronous completion messages to the pipeline waiting for them.

All inbound messages arrive through one channel (:meth:`ResponseCorrelator.post`)
and are consumed by a single dispatcher task. Waiters are keyed by
``(resource_id, message_kind)``. ``register``, ``deliver`` and the deadline
callback never suspend, so on the event loop whichever of "message arrived"
and "deadline passed" runs first wins, and the other finds nothing left to
resolve.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Any, Mapping

import structlog

from .errors import CorrelationTimeout
from .models import RawMessage

_Key = tuple[str, str]


@dataclass(slots=True)
class PendingCorrelation:
    resource_id: str
    message_kind: str
    deadline: float
    future: asyncio.Future = field(repr=False)
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)


class ResponseCorrelator:
    """Registry of single-fulfilment waiters with deadlines."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("case_harvester.correlator")
        self._pending: dict[_Key, PendingCorrelation] = {}
        self._inbox: asyncio.Queue[tuple[str | None, Any]] | None = None
        self._dispatcher: asyncio.Task | None = None
        self.delivered = 0
        self.dropped = 0
        self.expired = 0

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, resource_id: str, message_kind: str) -> bool:
        return (resource_id, message_kind) in self._pending

    def register(self, resource_id: str, message_kind: str, timeout: float) -> asyncio.Future:
        """Create the waiter for one expected completion message."""

        key = (resource_id, message_kind)
        if key in self._pending:
            raise ValueError(f"correlation already pending for {resource_id}/{message_kind}")
        loop = asyncio.get_running_loop()
        pending = PendingCorrelation(
            resource_id=resource_id,
            message_kind=message_kind,
            deadline=loop.time() + timeout,
            future=loop.create_future(),
        )
        pending.timer = loop.call_later(timeout, self._expire, key, pending)
        self._pending[key] = pending
        self.logger.debug(
            "correlation_registered",
            resource_id=resource_id,
            message_kind=message_kind,
            timeout=timeout,
        )
        return pending.future

    def deliver(self, resource_id: str | None, message: RawMessage) -> bool:
        """Resolve the matching waiter; return whether one consumed the message."""

        pending = self._pending.pop((resource_id, message.kind), None) if resource_id else None
        if pending is None or pending.future.done():
            # Late duplicate, post-timeout straggler, or a page we do not own
            self.dropped += 1
            self.logger.debug(
                "message_dropped", resource_id=resource_id, message_kind=message.kind
            )
            return False
        if pending.timer is not None:
            pending.timer.cancel()
        pending.future.set_result(message)
        self.delivered += 1
        return True

    def discard(self, resource_id: str, message_kind: str | None = None) -> int:
        """Drop registrations of ``resource_id`` without resolving them."""

        keys = [
            key
            for key in self._pending
            if key[0] == resource_id and (message_kind is None or key[1] == message_kind)
        ]
        for key in keys:
            pending = self._pending.pop(key)
            if pending.timer is not None:
                pending.timer.cancel()
            if not pending.future.done():
                pending.future.cancel()
        return len(keys)

    def _expire(self, key: _Key, pending: PendingCorrelation) -> None:
        if self._pending.get(key) is not pending:
            return
        del self._pending[key]
        if pending.future.done():
            return
        self.expired += 1
        self.logger.warning(
            "correlation_timeout",
            resource_id=pending.resource_id,
            message_kind=pending.message_kind,
        )
        pending.future.set_exception(
            CorrelationTimeout(
                f"Timeout waiting for {pending.message_kind} from resource {pending.resource_id}",
                resource_id=pending.resource_id,
            )
        )

    # ------------------------------------------------------------------
    # Inbound channel
    # ------------------------------------------------------------------
    def post(self, resource_id: str | None, payload: RawMessage | Mapping[str, Any]) -> None:
        """Queue one inbound message for the dispatcher."""

        if self._inbox is None:
            raise RuntimeError("ResponseCorrelator.start must be called before post")
        self._inbox.put_nowait((resource_id, payload))

    async def run(self) -> None:
        if self._inbox is None:
            raise RuntimeError("ResponseCorrelator.start must be called before run")
        while True:
            resource_id, payload = await self._inbox.get()
            try:
                message = (
                    payload if isinstance(payload, RawMessage) else RawMessage.from_payload(payload)
                )
            except (TypeError, ValueError) as exc:
                self.dropped += 1
                self.logger.warning("malformed_message", resource_id=resource_id, error=str(exc))
                continue
            finally:
                self._inbox.task_done()
            self.deliver(resource_id, message)

    async def start(self) -> None:
        if self._dispatcher is not None:
            return
        self._inbox = asyncio.Queue()
        self._dispatcher = asyncio.create_task(self.run(), name="correlator-dispatch")

    async def drain(self) -> None:
        """Wait until every posted message has been dispatched."""

        if self._inbox is not None:
            await self._inbox.join()

    async def stop(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatcher
            self._dispatcher = None
        self._inbox = None
        for resource_id, _kind in list(self._pending):
            self.discard(resource_id)

    async def __aenter__(self) -> "ResponseCorrelator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


__all__ = ["PendingCorrelation", "ResponseCorrelator"]
