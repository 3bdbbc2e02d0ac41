"""Worker resources backed by pages of an authenticated Playwright browser."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from ..config import HarvestSettings
from ..engine.correlator import ResponseCorrelator
from ..engine.errors import CreateFailed, InjectFailed
from ..engine.models import MODE_LIST, InjectionPayload, ResourceHandle, WorkItem
from ..engine.resources import WorkerResourceManager

_SET_ITEM_JS = "payload => { window.__harvestItem = payload; }"


class PlaywrightResourceManager(WorkerResourceManager):
    """One background page per work item, all reporting through one binding.

    Attaches to a running browser over CDP when ``browser.cdp_url`` is set so
    the pages share the user's authenticated session; otherwise launches a
    persistent profile or a fresh browser.
    """

    def __init__(
        self,
        settings: HarvestSettings,
        correlator: ResponseCorrelator,
        logger: structlog.BoundLogger | None = None,
        script_root: Path | None = None,
    ) -> None:
        super().__init__(logger or structlog.get_logger("case_harvester.browser"))
        self.settings = settings
        self.correlator = correlator
        self.script_root = script_root
        self._playwright = None
        self._browser = None
        self._context = None
        self._attached = False
        self._pages: dict[str, Any] = {}
        self._page_owner: dict[Any, str] = {}

    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._context is not None:
            return
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "Browser collection requires installing the 'playwright' package."
            ) from exc

        browser_settings = self.settings.browser
        self._playwright = await async_playwright().start()
        chromium = self._playwright.chromium
        if browser_settings.cdp_url:
            self._browser = await chromium.connect_over_cdp(browser_settings.cdp_url)
            self._attached = True
            contexts = self._browser.contexts
            self._context = contexts[0] if contexts else await self._browser.new_context()
        elif browser_settings.user_data_dir:
            self._context = await chromium.launch_persistent_context(
                str(browser_settings.user_data_dir), headless=browser_settings.headless
            )
        else:
            self._browser = await chromium.launch(headless=browser_settings.headless)
            self._context = await self._browser.new_context()

        await self._context.expose_binding(browser_settings.binding_name, self._on_report)
        self.logger.info(
            "browser_started",
            attached=self._attached,
            binding=browser_settings.binding_name,
        )

    async def close(self) -> None:
        await super().close()
        if self._context is not None and not self._attached:
            await self._context.close()
        self._context = None
        if self._browser is not None:
            # Disconnects when attached over CDP; the user's browser stays open
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    # ------------------------------------------------------------------
    def _on_report(self, source: dict, payload: Any) -> None:
        page = source.get("page") if isinstance(source, dict) else None
        resource_id = self._page_owner.get(page) if page is not None else None
        if not self.owns(resource_id):
            self.logger.debug("foreign_report_ignored")
            resource_id = None
        if not isinstance(payload, dict):
            self.logger.warning("report_not_an_object", resource_id=resource_id)
            return
        self.correlator.post(resource_id, payload)

    def _script_for(self, payload: InjectionPayload) -> Path:
        kind_settings = self.settings.kind_settings(payload.kind)
        script = kind_settings.list_script if payload.mode == MODE_LIST else kind_settings.script
        if script is None:
            raise InjectFailed(
                f"No {payload.mode} script configured for {payload.kind.value} items",
                locator=payload.source_locator,
            )
        if not script.is_absolute() and self.script_root is not None:
            script = self.script_root / script
        return script

    # ------------------------------------------------------------------
    async def _create(self, handle: ResourceHandle, item: WorkItem) -> None:
        if self._context is None:
            raise CreateFailed("Browser is not started", resource_id=handle.id)
        page = await self._context.new_page()
        self._pages[handle.id] = page
        self._page_owner[page] = handle.id
        page.once("load", lambda _page: self.signal_ready(handle.id))
        try:
            await page.goto(
                item.source_locator,
                wait_until="commit",
                timeout=self.settings.browser.navigation_timeout,
            )
        except asyncio.CancelledError:
            # Cancelled mid-navigation: the page is not yet owned by any session
            await self._close_partial(handle)
            raise
        except Exception as exc:  # noqa: BLE001
            await self._close_partial(handle)
            raise CreateFailed(
                f"Navigation to {item.source_locator} failed: {exc}",
                resource_id=handle.id,
                locator=item.source_locator,
            ) from exc

    async def _inject(self, handle: ResourceHandle, payload: InjectionPayload) -> None:
        page = self._pages.get(handle.id)
        if page is None:
            raise InjectFailed(f"No page for resource {handle.id}", resource_id=handle.id)
        script = self._script_for(payload)
        await page.evaluate(_SET_ITEM_JS, payload.as_dict())
        await page.add_script_tag(path=str(script))

    async def _destroy(self, handle: ResourceHandle) -> None:
        page = self._pages.pop(handle.id, None)
        if page is None:
            return
        self._page_owner.pop(page, None)
        await page.close()

    async def _close_partial(self, handle: ResourceHandle) -> None:
        try:
            await self._destroy(handle)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("page_close_failed", resource_id=handle.id, error=str(exc))


__all__ = ["PlaywrightResourceManager"]
