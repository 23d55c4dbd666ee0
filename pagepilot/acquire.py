from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from .constants import GATEWAY_NAME
from .gateway import GatewayDispatcher
from .models import RenderOptions
from .page import PageHandle
from .scripts import HARNESS_RUNTIME_SCRIPT
from .state import OrchestrationContext

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

logger = logging.getLogger(__name__)


class PageAcquirer:
    """
    Obtains the page a test renders into.

    Contexts are reused across sequential tests unless the test records video
    (video must be enabled when the context is created) or the test needs a
    different headless mode than the running browser.
    """

    def __init__(self, ctx: OrchestrationContext) -> None:
        self._ctx = ctx

    async def acquire(self, options: RenderOptions, *, headless: bool) -> PageHandle:
        ctx = self._ctx
        pages = ctx.open_pages()
        page = pages[0] if pages else None
        wants_video = bool(options.video_dir)
        switching_headlessness = (
            ctx.browser_context is not None
            and ctx.browser_headless is not None
            and ctx.browser_headless != headless
        )

        if page is None or wants_video or switching_headlessness:
            page = await self._new_page(
                options,
                headless=headless,
                new_context=wants_video or switching_headlessness,
            )

        handle = ctx.handle_for(page)
        await self.install_gateway(handle)
        return handle

    async def install_gateway(self, handle: PageHandle) -> bool:
        """Expose the gateway on the page once; returns False if it already was."""
        if handle.gateway_installed:
            return False
        handle.gateway_installed = True
        await handle.page.add_init_script(HARNESS_RUNTIME_SCRIPT)
        await handle.page.expose_function(GATEWAY_NAME, GatewayDispatcher(self._ctx, handle))
        return True

    async def _new_page(self, options: RenderOptions, *, headless: bool, new_context: bool) -> Page:
        ctx = self._ctx
        if ctx.browser is not None and ctx.browser_headless != headless:
            await self.close_browser()
        if ctx.browser is None:
            await self._launch(options, headless=headless)

        if new_context or ctx.browser_context is None:
            await self.close_context()
            ctx.browser_context = await self._new_context(options)

        pages = ctx.browser_context.pages
        return pages[0] if pages else await ctx.browser_context.new_page()

    async def _launch(self, options: RenderOptions, *, headless: bool) -> None:
        ctx = self._ctx
        if ctx.playwright is None:
            ctx.playwright = await async_playwright().start()
        browser_type = getattr(ctx.playwright, options.browser)
        if options.browser_server:
            logger.debug(f"Connecting to browser server {options.browser_server}")
            ctx.browser = await browser_type.connect(options.browser_server)
        else:
            ctx.browser = await browser_type.launch(headless=headless, **options.launch_options)
        ctx.browser_headless = headless

    async def _new_context(self, options: RenderOptions) -> BrowserContext:
        ctx = self._ctx
        assert ctx.browser is not None
        kwargs = dict(options.context_options)
        if options.video_dir:
            kwargs["record_video_dir"] = options.video_dir
        context = await ctx.browser.new_context(**kwargs)
        ctx.context_records_video = bool(options.video_dir)
        if options.default_timeout is not None:
            context.set_default_timeout(options.default_timeout)
        if options.default_navigation_timeout is not None:
            context.set_default_navigation_timeout(options.default_navigation_timeout)
        context.on("page", ctx.handle_for)
        return context

    async def close_context(self) -> None:
        ctx = self._ctx
        context = ctx.browser_context
        if context is None:
            return
        ctx.browser_context = None
        ctx.context_records_video = False
        for page in list(context.pages):
            ctx.forget_page(page)
        try:
            await context.close()
        except Exception as e:
            logger.warning(f"Error closing browser context: {e}")

    async def close_browser(self) -> None:
        ctx = self._ctx
        await self.close_context()
        browser, ctx.browser = ctx.browser, None
        ctx.browser_headless = None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")

    async def stop(self) -> None:
        await self.close_browser()
        playwright, self._ctx.playwright = self._ctx.playwright, None
        if playwright is not None:
            await playwright.stop()
