from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page


def make_pause(page: Page, *, is_debugging: bool) -> Callable[[], Awaitable[None]]:
    """Pause in the Playwright inspector when debugging; a no-op otherwise."""

    async def pause() -> None:
        if is_debugging:
            await page.pause()

    return pause
