from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .acquire import PageAcquirer
from .artifacts import ArtifactRecorder
from .bridge import BridgeChannel
from .config import resolve_headless, resolve_options, resolve_url
from .environment import OrchestratorEnvironment
from .expects import check_pending_expects
from .gateway import relative_test_path
from .hooks import LifecycleHooks
from .models import RenderOptions
from .navigation import NavigationController
from .pause import make_pause
from .scripts import DEBUG_URL_SCRIPT
from .state import OrchestrationContext

logger = logging.getLogger(__name__)


async def render(
    ctx: OrchestrationContext,
    options: RenderOptions | Mapping[str, Any] | None = None,
    *,
    hooks: LifecycleHooks | None = None,
    acquirer: PageAcquirer | None = None,
    environ: Mapping[str, str] | None = None,
) -> OrchestratorEnvironment:
    """
    Open the app under test for the active test and wait until it is ready.

    Steps:
    1. Resolve options and acquire (or reuse) a page with the gateway installed
    2. Start tracing, run `before_navigate` hooks, register artifact hooks
    3. Navigate with retries until the page reports READY
    4. Annotate the URL with `test_name`/`test_path` for manual reproduction

    Returns:
        OrchestratorEnvironment with the page, its bridge and a pause function
    """
    options = resolve_options(ctx.options, options, environ=environ)
    if options.debug_tests:
        ctx.debugging.update(options.debug_tests)
    ctx.pause_at_every_step = bool(options.debug_tests)
    is_debugging = ctx.is_debugging
    headless = resolve_headless(options, is_debugging=is_debugging)
    url = resolve_url(options, environ)

    acquirer = acquirer or PageAcquirer(ctx)
    handle = await acquirer.acquire(options, headless=headless)
    page = handle.page
    handle.video_dir = options.video_dir
    handle.failure_screenshot_dir = options.failure_screenshots_dir
    handle.ignore_console_messages = list(options.ignore_console_messages)
    if hooks is not None:
        handle.hooks.extend(hooks)

    test_name = ctx.active_test
    recorder = ArtifactRecorder(
        ctx,
        handle,
        test_name=test_name,
        test_path=ctx.test_path,
        attempt=ctx.retry_attempt,
        traces_dir=options.record_traces,
    )
    await recorder.start_trace()

    pause = ctx.pause = make_pause(page, is_debugging=is_debugging)
    await handle.hooks.run("before_navigate", page)

    recorder.register()
    handle.hooks.add("after_test", lambda: check_pending_expects(ctx))

    handle.reset_readiness()
    navigator = NavigationController(
        handle,
        test_name=test_name,
        timeout_override_ms=options.navigation_timeout_override,
    )
    await navigator.goto(url)

    debug_url = await page.evaluate(
        DEBUG_URL_SCRIPT,
        {
            "testName": test_name or "",
            "testPath": relative_test_path(ctx.test_path, ctx.bootstrap_dir),
        },
    )
    if is_debugging:
        logger.info(f"Go to {debug_url} to debug this test")
    else:
        logger.debug(f"Debug URL for {test_name!r}: {debug_url}")
    recorder.register_failure_hint(debug_url, is_debugging=is_debugging)

    bridge = BridgeChannel(handle)
    ctx.bridge = bridge.invoke
    return OrchestratorEnvironment(
        page=page, handle=handle, bridge=bridge, pause=pause, debug_url=debug_url
    )
