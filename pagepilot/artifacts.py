"""
Best-effort diagnostics captured when a test finishes.

Each capture policy is an `after_test` hook that swallows its own errors, so a
failing screenshot, video or trace never fails the test.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections import Counter
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .constants import IGNORE_CONSOLE_MESSAGES
from .models import ArtifactKind, ArtifactRecord
from .page import PageHandle
from .state import OrchestrationContext

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage, Video

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^a-z0-9_]", re.IGNORECASE)
_UNSAFE_FILE = re.compile(r"[^a-z0-9_]")


@lru_cache(maxsize=32)
def _ignore_patterns(extra: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in (*IGNORE_CONSOLE_MESSAGES, *extra))


def sanitize_test_name(name: str | None) -> str:
    return _UNSAFE_NAME.sub("_", name or "")


def sanitize_test_file(test_path: str | None, root: str | None = None) -> str:
    """Test file relative to `root` (default: cwd) with every non `[a-z0-9_]` char replaced."""
    if not test_path:
        return ""
    relative = os.path.relpath(test_path, root or os.getcwd())
    return _UNSAFE_FILE.sub("_", relative)


def screenshot_path(fail_dir: str, test_name: str | None, index: int = 0) -> str:
    suffix = f"_{index}" if index else ""
    return f"{fail_dir}/{test_name}{suffix}.png"


def video_path(
    video_dir: str,
    test_file: str,
    test_name: str,
    attempt: int,
    tab_index: int | None = None,
) -> str:
    suffix = f"_tab{tab_index}" if tab_index is not None else ""
    return f"{video_dir}/{test_file}_{test_name}-attempt-{attempt}{suffix}.webm"


def trace_path(traces_dir: str, test_file: str, test_name: str, attempt: int) -> str:
    return f"{traces_dir}/{test_file}_{test_name}-attempt-{attempt}.zip"


class ConsoleSummary:
    """
    Counts console messages per serialized `(type, args-or-text)` key.

    Messages matching the built-in noise list or the extra patterns are dropped.
    """

    def __init__(self, counts: Counter[str], ignore: Iterable[str] = ()) -> None:
        self.counts = counts
        self._ignore = _ignore_patterns(tuple(ignore))

    def is_ignored(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._ignore)

    def add(self, msg_type: str, text: str, args: list[Any] | None = None) -> str | None:
        if self.is_ignored(text):
            return None
        params = [f"{msg_type}:"]
        if args:
            params.extend(json.dumps(a) for a in args)
        else:
            params.append(text)
        key = json.dumps(params)
        self.counts[key] += 1
        return key

    async def record(self, msg: ConsoleMessage) -> None:
        text = msg.text
        if self.is_ignored(text):
            return
        try:
            args = [await a.json_value() for a in msg.args]
            self.add(msg.type, text, args)
        except Exception:
            self.add(msg.type, text)

    def lines(self) -> list[str]:
        lines = []
        for key, count in self.counts.items():
            message = " ".join(json.loads(key))
            lines.append((f"({count}X) " if count > 1 else "") + message)
        return lines


def attach_console_listener(handle: PageHandle) -> bool:
    """Count console messages into `handle.console_messages`; once per page."""
    if handle.console_attached:
        return False
    handle.console_attached = True

    async def on_console(msg: ConsoleMessage) -> None:
        summary = ConsoleSummary(handle.console_messages, handle.ignore_console_messages)
        await summary.record(msg)

    handle.page.on("console", on_console)
    return True


class ArtifactRecorder:
    """Registers the diagnostic capture hooks for one test on one page handle."""

    def __init__(
        self,
        ctx: OrchestrationContext,
        handle: PageHandle,
        *,
        test_name: str | None,
        test_path: str | None,
        attempt: int,
        traces_dir: str | None = None,
        root: str | None = None,
    ) -> None:
        self._ctx = ctx
        self._handle = handle
        self.test_name = test_name
        self.attempt = attempt
        self.traces_dir = traces_dir
        self.safe_name = sanitize_test_name(test_name)
        self.safe_file = sanitize_test_file(test_path, root)

    def register(self) -> None:
        hooks = self._handle.hooks
        attach_console_listener(self._handle)
        hooks.add("after_test", self.log_console_summary)
        if self._handle.failure_screenshot_dir:
            hooks.add("after_test", self.capture_failure_screenshots)
        if self._handle.video_dir:
            hooks.add("after_test", self.save_videos)

    def _record(self, kind: ArtifactKind, path: str) -> ArtifactRecord:
        return self._ctx.record_artifact(
            ArtifactRecord(test=self.test_name or "<unknown>", kind=kind, path=path)
        )

    # ---- screenshots ----

    async def capture_failure_screenshots(self) -> int:
        """Screenshot every open page of a failed test; returns the number written."""
        if self._ctx.has_passed(self.test_name):
            return 0
        fail_dir = self._handle.failure_screenshot_dir
        if not fail_dir:
            return 0
        written = 0
        for index, page in enumerate(self._ctx.open_pages()):
            path = screenshot_path(fail_dir, self.test_name, index)
            self._record("screenshot", path)
            try:
                await page.screenshot(path=path)
                written += 1
            except Exception as e:
                logger.warning(f"Failed to capture failure screenshot {path}: {e}")
        return written

    # ---- video ----

    async def save_videos(self) -> list[str]:
        """
        Schedule a save of every open page's recording.

        Playwright only finishes writing a video when its page closes, so the
        saves run in the background and complete during context teardown.
        """
        video_dir = self._handle.video_dir
        if not video_dir:
            return []
        try:
            Path(video_dir).mkdir(parents=True, exist_ok=True)
        except Exception as e:
            logger.warning(f"Cannot create video dir {video_dir}: {e}")
            return []

        pages = self._ctx.open_pages()
        multiple = len(pages) > 1
        paths = []
        for page in pages:
            index = self._ctx.handle_for(page).page_index
            path = video_path(
                video_dir,
                self.safe_file,
                self.safe_name,
                self.attempt,
                index if multiple else None,
            )
            self._record("video", path)
            paths.append(path)
            video = page.video
            if video is not None:
                self._ctx.spawn(self._save_video(video, path))
        return paths

    @staticmethod
    async def _save_video(video: Video, path: str) -> None:
        try:
            await video.save_as(path)
        except Exception as e:
            logger.warning(f"Failed to save video {path}: {e}")

    # ---- traces ----

    async def start_trace(self) -> bool:
        if not self.traces_dir or self._ctx.browser_context is None:
            return False
        try:
            await self._ctx.browser_context.tracing.start(
                screenshots=True,
                snapshots=True,
                sources=True,
                title=self.test_name,
            )
        except Exception as e:
            logger.warning(f"Failed to start trace for {self.test_name!r}: {e}")
            return False
        self._handle.hooks.add("after_test", self.stop_trace)
        return True

    async def stop_trace(self) -> str | None:
        if not self.traces_dir or self._ctx.browser_context is None:
            return None
        path = trace_path(self.traces_dir, self.safe_file, self.safe_name, self.attempt)
        self._record("trace", path)
        try:
            await self._ctx.browser_context.tracing.stop(path=path)
        except Exception as e:
            logger.debug(f"Failed to stop trace {path}: {e}")
        return path

    # ---- console ----

    def log_console_summary(self) -> list[str]:
        lines = ConsoleSummary(self._handle.console_messages).lines()
        for line in lines:
            logger.info(f"console: {line}")
        return lines

    # ---- failure hint ----

    def register_failure_hint(self, debug_url: str, *, is_debugging: bool) -> None:
        def hint() -> None:
            if self._ctx.has_passed(self.test_name) or is_debugging:
                return
            url = debug_url.replace("host.docker.internal", "localhost")
            logger.info(f"'{self.test_name}' Failed. Go to {url} to debug this test")

        self._handle.hooks.add("after_test", hint)
