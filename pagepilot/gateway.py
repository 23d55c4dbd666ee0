from __future__ import annotations

import json
import logging
import os
from typing import Any

from .bridge import BridgeChannel
from .models import RenderInfo
from .page import PageHandle, same_origin
from .state import OrchestrationContext

logger = logging.getLogger(__name__)


def relative_test_path(test_path: str | None, bootstrap_dir: str) -> str:
    """
    Test file path without extension, relative to `bootstrap_dir`.

    Always uses forward slashes and starts with a dot, e.g. `./tests/test_app`.
    """
    if not test_path:
        return ""
    stem, _ext = os.path.splitext(test_path)
    relative = os.path.relpath(stem, bootstrap_dir).replace(os.sep, "/").replace("\\", "/")
    if not relative.startswith("."):
        relative = f"./{relative}"
    return relative


class GatewayDispatcher:
    """
    Handles messages the driven page posts through the exposed gateway function.

    Recognized types are READY, GET_INFO and BRIDGE; anything else is logged.
    """

    def __init__(self, ctx: OrchestrationContext, handle: PageHandle) -> None:
        self._ctx = ctx
        self._handle = handle

    async def __call__(self, type: str, *args: Any) -> Any:
        if type == "READY":
            self._on_ready()
            return None
        if type == "GET_INFO":
            return await self._on_get_info()
        if type == "BRIDGE":
            BridgeChannel.deliver(self._handle, args[0] if args else None)
            return None
        logger.info(
            "unhandled gateway call %s", json.dumps({"type": type, "args": list(args)}, default=str)
        )
        return None

    def _on_ready(self) -> None:
        target = self._handle.target_url
        live = self._handle.page.url
        if target is not None and not same_origin(live, target):
            logger.debug(f"Ignoring READY from {live!r} while navigating to {target!r}")
            return
        self._handle.readiness.resolve()

    def info(self) -> RenderInfo:
        ctx = self._ctx
        return RenderInfo(
            testName=ctx.active_test,
            testPath=relative_test_path(ctx.test_path, ctx.bootstrap_dir),
            retryAttempt=ctx.retry_attempt,
        )

    async def _on_get_info(self) -> dict[str, Any]:
        info = self.info()
        await self._handle.hooks.run("before_render", self._handle.page, info)
        return info.model_dump()
