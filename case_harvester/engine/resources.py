"""Lifecycle of the ephemeral worker resources, one per in-flight item."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

from .errors import CreateFailed, HarvestError, InjectFailed, LoadTimeout
from .models import InjectionPayload, ResourceHandle, WorkItem


class WorkerResourceManager(ABC):
    """create -> ready-wait -> inject -> release, release guaranteed by ``session``.

    Subclasses provide the concrete surface through ``_create``, ``_inject``
    and ``_destroy``; readiness is pushed in via :meth:`signal_ready`.
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("case_harvester.resources")
        self._owned: dict[str, ResourceHandle] = {}
        self._ready: dict[str, asyncio.Event] = {}

    @property
    def owned_ids(self) -> frozenset[str]:
        """Ids of live resources created by this manager."""

        return frozenset(self._owned)

    def owns(self, resource_id: str | None) -> bool:
        return resource_id is not None and resource_id in self._owned

    # ------------------------------------------------------------------
    async def acquire(self, item: WorkItem) -> ResourceHandle:
        handle = ResourceHandle.new()
        # Track before creating: readiness may be signalled while _create runs
        self._owned[handle.id] = handle
        self._ready[handle.id] = asyncio.Event()
        try:
            await self._create(handle, item)
        except CreateFailed:
            self._forget(handle.id)
            raise
        except asyncio.CancelledError:
            self._forget(handle.id)
            raise
        except Exception as exc:  # noqa: BLE001
            self._forget(handle.id)
            raise CreateFailed(
                f"Failed to create worker resource for {item.source_locator}: {exc}",
                resource_id=handle.id,
                locator=item.source_locator,
            ) from exc
        self.logger.debug("resource_acquired", resource_id=handle.id, url=item.source_locator)
        return handle

    def signal_ready(self, resource_id: str) -> bool:
        event = self._ready.get(resource_id)
        if event is None:
            return False
        event.set()
        return True

    async def await_ready(self, handle: ResourceHandle, timeout: float) -> None:
        event = self._ready.get(handle.id)
        if event is None:
            raise LoadTimeout(f"Resource {handle.id} is not live", resource_id=handle.id)
        try:
            await asyncio.wait_for(event.wait(), timeout)
        except asyncio.TimeoutError as exc:
            raise LoadTimeout(
                f"Timeout waiting for resource {handle.id} to load", resource_id=handle.id
            ) from exc

    async def inject(self, handle: ResourceHandle, payload: InjectionPayload) -> None:
        if handle.id not in self._owned:
            raise InjectFailed(f"Resource {handle.id} is not live", resource_id=handle.id)
        try:
            await self._inject(handle, payload)
        except InjectFailed:
            raise
        except HarvestError as exc:
            raise InjectFailed(str(exc), resource_id=handle.id) from exc
        except Exception as exc:  # noqa: BLE001
            raise InjectFailed(
                f"Injection into resource {handle.id} failed: {exc}",
                resource_id=handle.id,
                locator=payload.source_locator,
            ) from exc

    async def release(self, handle: ResourceHandle) -> None:
        """Destroy the resource; failures are logged, never raised."""

        if handle.id not in self._owned:
            self.logger.warning("resource_release_unknown", resource_id=handle.id)
            return
        self._forget(handle.id)
        try:
            await self._destroy(handle)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("resource_release_failed", resource_id=handle.id, error=str(exc))
        else:
            self.logger.debug("resource_released", resource_id=handle.id)

    @asynccontextmanager
    async def session(self, item: WorkItem) -> AsyncIterator[ResourceHandle]:
        """Scoped acquisition: exactly one release per acquired handle."""

        handle = await self.acquire(item)
        try:
            yield handle
        finally:
            await self.release(handle)

    def _forget(self, resource_id: str) -> None:
        self._owned.pop(resource_id, None)
        self._ready.pop(resource_id, None)

    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Prepare the environment resources are created in."""

    async def close(self) -> None:
        """Release every resource still owned by this manager."""

        for handle in list(self._owned.values()):
            await self.release(handle)

    async def __aenter__(self) -> "WorkerResourceManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    @abstractmethod
    async def _create(self, handle: ResourceHandle, item: WorkItem) -> None:
        """Open the surface for ``item`` and start loading it."""

    @abstractmethod
    async def _inject(self, handle: ResourceHandle, payload: InjectionPayload) -> None:
        """Deliver the payload and extraction logic into the surface."""

    @abstractmethod
    async def _destroy(self, handle: ResourceHandle) -> None:
        """Close the surface."""


__all__ = ["WorkerResourceManager"]
