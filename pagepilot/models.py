"""
Pydantic models for PagePilot - render configuration and gateway payloads.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ArtifactKind = Literal["screenshot", "video", "trace"]


class RenderOptions(BaseModel):
    """
    Configuration for a single render.

    Every field is optional so partial option sets (session defaults, per-test
    overrides, the PAGEPILOT_OPTIONS env var) can be layered with
    `config.resolve_options`.
    """

    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    url: Optional[str] = None  # Base URL of the running app
    browser_server: Optional[str] = None  # ws endpoint to connect to instead of launching
    sub_path: Optional[str] = None
    headless: Optional[bool] = None

    artifacts_dir: Optional[str] = None  # CI shorthand, see `expanded()`
    video_dir: Optional[str] = None
    record_traces: Optional[str] = None
    failure_screenshots_dir: Optional[str] = None

    ignore_console_messages: list[str] = Field(default_factory=list)

    default_timeout: Optional[int] = Field(None, ge=0)
    initial_navigation_timeout: Optional[int] = Field(None, ge=0)
    default_navigation_timeout: Optional[int] = Field(None, ge=0)

    # Only run these tests (full names), headed and pausing at every step.
    debug_tests: Optional[list[str]] = None

    launch_options: dict[str, Any] = Field(default_factory=dict)
    context_options: dict[str, Any] = Field(default_factory=dict)

    def expanded(self) -> RenderOptions:
        """Fill the artifact directories from `artifacts_dir` where they are unset."""
        if not self.artifacts_dir:
            return self
        base = self.artifacts_dir.rstrip("/")
        return self.model_copy(
            update={
                "failure_screenshots_dir": self.failure_screenshots_dir
                or f"{base}/failure_screenshots",
                "video_dir": self.video_dir or f"{base}/videos",
                "record_traces": self.record_traces or f"{base}/traces",
            }
        )

    @property
    def navigation_timeout_override(self) -> Optional[int]:
        if self.initial_navigation_timeout is not None:
            return self.initial_navigation_timeout
        return self.default_navigation_timeout


class RenderInfo(BaseModel):
    """GET_INFO response handed to the page-side harness."""

    testName: Optional[str]
    testPath: str
    retryAttempt: int


class ArtifactRecord(BaseModel):
    """A scheduled diagnostic file; `confirmed` once it is seen on disk."""

    test: str
    kind: ArtifactKind
    path: str
    confirmed: bool = False
