"""
Request/response bridge between the orchestrator and the driven page.

The orchestrator side (`BridgeChannel`) evaluates `INVOKE_BRIDGE_SCRIPT`, which
runs the page's parked callback and posts a single BRIDGE message back through
the gateway. The gateway hands that reply to `BridgeChannel.deliver`, which
settles the one pending call. `DrivenPageBridge` is the same page-side protocol
for harnesses that run in-process instead of inside a browser.
"""

from __future__ import annotations

import inspect
import logging
import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .constants import GATEWAY_NAME
from .deferred import Deferred
from .errors import BridgeBusyError, BridgeExecutionError
from .page import PageHandle
from .scripts import INVOKE_BRIDGE_SCRIPT

logger = logging.getLogger(__name__)

Gateway = Callable[..., Awaitable[Any] | Any]


def serialize_error(error: BaseException) -> dict[str, Any]:
    return {
        "name": type(error).__name__,
        "message": str(error),
        "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }


class BridgeChannel:
    """Orchestrator-side bridge for one page; at most one call in flight."""

    def __init__(self, handle: PageHandle, *, gateway_name: str = GATEWAY_NAME) -> None:
        self._handle = handle
        self._gateway_name = gateway_name

    @property
    def busy(self) -> bool:
        pending = self._handle.pending_bridge
        return pending is not None and not pending.settled

    async def invoke(self, args: Any = None, callback: str | None = None) -> Any:
        """
        Run a callback inside the page and return its result.

        Args:
            args: JSON-serializable value passed to the callback
            callback: Optional JS function source. When omitted, the callback the
                      page parked with `__pagepilot__.bridge(...)` is used.

        Raises:
            BridgeBusyError: another bridge call on this page has not settled yet
            BridgeExecutionError: the callback threw inside the page
        """
        if self.busy:
            raise BridgeBusyError("A bridge call is already pending on this page")

        pending: Deferred[Any] = Deferred()
        self._handle.pending_bridge = pending
        try:
            await self._handle.page.evaluate(
                INVOKE_BRIDGE_SCRIPT,
                {"passed": args, "callback": callback, "gateway": self._gateway_name},
            )
            return await pending
        finally:
            if self._handle.pending_bridge is pending:
                self._handle.pending_bridge = None

    __call__ = invoke

    @staticmethod
    def deliver(handle: PageHandle, reply: Any) -> bool:
        """Settle the pending call on `handle` with a `{result}` or `{error}` reply."""
        pending = handle.pending_bridge
        if pending is None or pending.settled:
            logger.warning("BRIDGE reply received with no pending bridge call; ignoring")
            return False
        if isinstance(reply, dict) and "result" in reply:
            return pending.resolve(reply["result"])
        error = reply.get("error") if isinstance(reply, dict) else reply
        return pending.reject(BridgeExecutionError(error))


@dataclass
class _ParkedCall:
    callback: Callable[[Any], Any]
    defer: Deferred[Any]


class DrivenPageBridge:
    """
    Page-side half of the bridge.

    `request` parks a callback in a single slot (not a queue). When no gateway
    is connected the call is parked behind the manual `bridged(value)` entry
    point instead.
    """

    def __init__(self, gateway: Gateway | None = None) -> None:
        self.gateway = gateway
        self.bridged: Callable[[Any], Any] | None = None
        self._parked: _ParkedCall | None = None

    @property
    def has_pending(self) -> bool:
        return self._parked is not None or self.bridged is not None

    def request(self, args: Any, callback: Callable[[Any], Any] | None = None) -> Deferred[Any]:
        if callback is None:
            callback, args = args, None
        if self.has_pending:
            raise BridgeBusyError("A bridge call is already pending on this page")

        defer: Deferred[Any] = Deferred()
        if self.gateway is None:
            logger.info(
                "Test is waiting for a bridge call, you can manually invoke it with: "
                f"`bridged(...)`. Waiting by: {callback!r}"
            )

            def bridged(passed: Any) -> Any:
                self.bridged = None
                defer.resolve(passed)
                return callback(passed)

            self.bridged = bridged
        else:
            self._parked = _ParkedCall(callback=callback, defer=defer)
        return defer

    async def run_pending(
        self, passed: Any = None, callback: Callable[[Any], Any] | None = None
    ) -> None:
        """Execute a callback and post exactly one BRIDGE reply through the gateway."""
        defer: Deferred[Any] | None = None
        if callback is None:
            parked = self._parked
            if parked is None:
                missing = RuntimeError("No bridge call is pending on this page")
                await self._post({"error": serialize_error(missing)})
                return
            self._parked = None
            callback, defer = parked.callback, parked.defer

        try:
            result = callback(passed)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            await self._post({"error": serialize_error(e)})
            if defer is not None:
                defer.reject(e)
            return

        await self._post({"result": result})
        if defer is not None:
            defer.resolve(result)

    async def _post(self, reply: dict[str, Any]) -> None:
        if self.gateway is None:
            raise RuntimeError("Gateway is not installed on this page")
        outcome = self.gateway("BRIDGE", reply)
        if inspect.isawaitable(outcome):
            await outcome
