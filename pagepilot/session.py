from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from .acquire import PageAcquirer
from .environment import OrchestratorEnvironment
from .expects import TrackedAssertions
from .expects import expect as tracked_expect
from .hooks import LifecycleHooks
from .models import ArtifactRecord, RenderOptions
from .render import render
from .state import OrchestrationContext

logger = logging.getLogger(__name__)


class TestSession:
    """
    Drives the per-test lifecycle for one run.

    Usage:
        async with TestSession(options=RenderOptions(url="http://localhost:3000")) as session:
            async with session.running("renders the header", __file__):
                env = await session.render()
                assert await env.bridge.invoke({"id": 1}) == "ok"
    """

    __test__ = False

    def __init__(
        self,
        ctx: OrchestrationContext | None = None,
        *,
        options: RenderOptions | None = None,
        bootstrap_dir: str | None = None,
        artifacts_json: str | None = None,
    ) -> None:
        if ctx is None:
            ctx = OrchestrationContext(options=options or RenderOptions())
        elif options is not None:
            ctx.options = options
        if bootstrap_dir is not None:
            ctx.bootstrap_dir = bootstrap_dir
        if artifacts_json is not None:
            ctx.artifacts_json = artifacts_json
        if ctx.options.debug_tests:
            ctx.debugging.update(ctx.options.debug_tests)
            ctx.pause_at_every_step = True
        self.ctx = ctx
        self.acquirer = PageAcquirer(ctx)

    def should_run(self, test_name: str) -> bool:
        debug_tests = self.ctx.options.debug_tests
        return not debug_tests or test_name in debug_tests

    def begin_test(self, name: str, path: str | None = None) -> None:
        self.ctx.begin_test(name, path)

    async def render(
        self,
        options: RenderOptions | Mapping[str, Any] | None = None,
        *,
        hooks: LifecycleHooks | None = None,
    ) -> OrchestratorEnvironment:
        return await render(self.ctx, options, hooks=hooks, acquirer=self.acquirer)

    def expect(self, actual: Any, message: str | None = None) -> TrackedAssertions:
        return tracked_expect(self.ctx, actual, message)

    async def end_test(self, passed: bool) -> None:
        """
        Finish the active test: run `after_test` hooks, then tear down.

        Every hook runs even if an earlier one raised. A context that recorded
        video is closed last so the recordings are flushed; the first hook
        error is re-raised afterwards.
        """
        ctx = self.ctx
        if passed:
            ctx.mark_passed()

        errors: list[BaseException] = []
        for handle in list(ctx.page_handles.values()):
            errors.extend(await handle.hooks.run_collecting("after_test"))

        try:
            if ctx.context_records_video:
                await self.acquirer.close_context()
            await ctx.drain_background()
        finally:
            ctx.reset_for_test()

        if errors:
            raise errors[0]

    @asynccontextmanager
    async def running(self, name: str, path: str | None = None) -> AsyncIterator[TestSession]:
        self.begin_test(name, path)
        passed = False
        try:
            yield self
            passed = True
        finally:
            await self.end_test(passed)

    async def shutdown(self) -> list[ArtifactRecord]:
        await self.acquirer.stop()
        await self.ctx.drain_background()
        self.ctx.confirm_artifacts()
        self.ctx.write_artifacts_json()
        return self.ctx.artifacts

    async def __aenter__(self) -> TestSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
