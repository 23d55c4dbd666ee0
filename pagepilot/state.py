"""
Per-run orchestration state.

One `OrchestrationContext` is created per test run and passed by reference to
every component. Fields scoped to a single test are reset in `reset_for_test`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import Counter
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .models import ArtifactRecord, RenderOptions
from .page import PageHandle

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class OrchestrationContext:
    options: RenderOptions = field(default_factory=RenderOptions)
    bootstrap_dir: str = field(default_factory=os.getcwd)
    artifacts_json: str | None = None

    active_test: str | None = None
    test_path: str | None = None
    retry_map: dict[str, int] = field(default_factory=dict)
    debugging: set[str] = field(default_factory=set)
    passed_tests: set[str] = field(default_factory=set)
    artifacts: list[ArtifactRecord] = field(default_factory=list)
    pending_expects: Counter[str] = field(default_factory=Counter)

    bridge: Callable[..., Awaitable[Any]] | None = None
    pause: Callable[[], Awaitable[None]] | None = None
    pause_at_every_step: bool = False

    playwright: Playwright | None = None
    browser: Browser | None = None
    browser_headless: bool | None = None
    browser_context: BrowserContext | None = None
    context_records_video: bool = False
    page_handles: dict[Page, PageHandle] = field(default_factory=dict)
    next_index: int = 0

    _background: set[asyncio.Task[Any]] = field(default_factory=set, init=False, repr=False)

    # ---- test boundaries ----

    def begin_test(self, name: str, path: str | None = None) -> None:
        self.retry_map[name] = self.retry_map[name] + 1 if name in self.retry_map else 0
        self.active_test = name
        self.test_path = path
        self.pending_expects.clear()

    @property
    def retry_attempt(self) -> int:
        if self.active_test is None:
            return 0
        return self.retry_map.get(self.active_test, 0)

    @property
    def is_debugging(self) -> bool:
        return (self.active_test or "") in self.debugging

    def mark_passed(self, name: str | None = None) -> None:
        name = name if name is not None else self.active_test
        if name is not None:
            self.passed_tests.add(name)

    def has_passed(self, name: str | None) -> bool:
        return (name or "") in self.passed_tests

    def reset_for_test(self) -> None:
        for handle in self.page_handles.values():
            handle.reset_for_test()
        self.bridge = None
        self.pause = None
        self.pending_expects.clear()
        self.active_test = None
        self.test_path = None

    # ---- pages ----

    def handle_for(self, page: Page) -> PageHandle:
        handle = self.page_handles.get(page)
        if handle is None:
            handle = PageHandle(page=page, page_index=self.next_index)
            self.next_index += 1
            self.page_handles[page] = handle
            page.on("close", self.forget_page)
        return handle

    def forget_page(self, page: Page) -> None:
        self.page_handles.pop(page, None)

    def open_pages(self) -> list[Page]:
        if self.browser_context is None:
            return []
        return list(self.browser_context.pages)

    @property
    def current_handle(self) -> PageHandle | None:
        pages = self.open_pages()
        if not pages:
            return None
        return self.handle_for(pages[0])

    # ---- background work ----

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain_background(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ---- artifacts ----

    def record_artifact(self, record: ArtifactRecord) -> ArtifactRecord:
        self.artifacts.append(record)
        return record

    def confirm_artifacts(self) -> list[ArtifactRecord]:
        for record in self.artifacts:
            if not record.confirmed and Path(record.path).exists():
                record.confirmed = True
        return self.artifacts

    def write_artifacts_json(self, path: str | None = None) -> Path | None:
        path = path or self.artifacts_json
        if not path:
            return None
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = out.with_suffix(out.suffix + ".tmp")
        tmp_path.write_text(json.dumps([a.model_dump() for a in self.artifacts], indent=2))
        tmp_path.replace(out)
        logger.debug(f"Wrote {len(self.artifacts)} artifact records to {out}")
        return out
