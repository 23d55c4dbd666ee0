from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from .deferred import Deferred
from .hooks import LifecycleHooks

if TYPE_CHECKING:
    from playwright.async_api import Page


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


def same_origin(a: str, b: str) -> bool:
    return origin_of(a) == origin_of(b)


@dataclass(eq=False)
class PageHandle:
    """
    Orchestrator-side state attached to one browser tab.

    Attributes:
        page: The Playwright page
        page_index: Tab index assigned when the page was created
        gateway_installed: Whether the message gateway was exposed on this page
        hooks: Lifecycle hooks for the test currently using the page
        pending_bridge: The single in-flight bridge call, if any
        readiness: Resolved when the page-side harness reports READY
        target_url: URL the current navigation is driving towards
        console_messages: Console message counts keyed by serialized (type, args)
    """

    page: Page
    page_index: int = 0
    gateway_installed: bool = False
    console_attached: bool = False
    hooks: LifecycleHooks = field(default_factory=LifecycleHooks)
    pending_bridge: Deferred[Any] | None = None
    readiness: Deferred[None] = field(default_factory=Deferred)
    target_url: str | None = None
    video_dir: str | None = None
    failure_screenshot_dir: str | None = None
    console_messages: Counter[str] = field(default_factory=Counter)
    ignore_console_messages: list[str] = field(default_factory=list)

    def reset_readiness(self) -> Deferred[None]:
        self.readiness = Deferred()
        return self.readiness

    def reset_for_test(self) -> None:
        self.hooks.clear()
        self.pending_bridge = None
        self.console_messages.clear()
        self.ignore_console_messages = []
