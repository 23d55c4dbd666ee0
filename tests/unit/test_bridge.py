from __future__ import annotations

import asyncio

import pytest

from pagepilot.bridge import BridgeChannel, DrivenPageBridge
from pagepilot.errors import BridgeBusyError, BridgeExecutionError
from pagepilot.gateway import GatewayDispatcher
from pagepilot.page import PageHandle
from pagepilot.scripts import INVOKE_BRIDGE_SCRIPT
from pagepilot.state import OrchestrationContext


class BridgePage:
    """Simulates the page side: evaluating the invoke script runs the parked callback."""

    def __init__(self, *, auto_reply: bool = True) -> None:
        self.url = "http://localhost:3000/"
        self.auto_reply = auto_reply
        self.page_side = DrivenPageBridge()
        self.evaluated: list[dict] = []

    async def evaluate(self, script: str, arg=None):
        assert script == INVOKE_BRIDGE_SCRIPT
        self.evaluated.append(arg)
        if self.auto_reply:
            asyncio.ensure_future(self.page_side.run_pending(arg["passed"]))
        return None


class CountingGateway:
    def __init__(self, inner: GatewayDispatcher) -> None:
        self.inner = inner
        self.calls: list[tuple] = []

    async def __call__(self, type: str, *args):
        self.calls.append((type, *args))
        return await self.inner(type, *args)


def wire(page: BridgePage) -> tuple[PageHandle, CountingGateway]:
    handle = PageHandle(page=page)  # type: ignore[arg-type]
    gateway = CountingGateway(GatewayDispatcher(OrchestrationContext(), handle))
    page.page_side.gateway = gateway
    return handle, gateway


@pytest.mark.asyncio
async def test_invoke_resolves_with_callback_result() -> None:
    page = BridgePage()
    handle, gateway = wire(page)
    page.page_side.request({"unused": True}, lambda passed: passed["x"] * 2)

    result = await BridgeChannel(handle).invoke({"x": 21})

    assert result == 42
    assert page.evaluated[0]["passed"] == {"x": 21}
    assert page.evaluated[0]["gateway"] == "__pagepilotApi__"
    assert gateway.calls == [("BRIDGE", {"result": 42})]
    assert handle.pending_bridge is None


@pytest.mark.asyncio
async def test_invoke_supports_async_callbacks() -> None:
    page = BridgePage()
    handle, _ = wire(page)

    async def callback(passed):
        await asyncio.sleep(0)
        return f"hello {passed}"

    page.page_side.request(callback)
    assert await BridgeChannel(handle)("page") == "hello page"


@pytest.mark.asyncio
async def test_invoke_rejects_with_remote_error_and_replies_once() -> None:
    page = BridgePage()
    handle, gateway = wire(page)

    def callback(passed):
        raise ValueError("boom")

    parked = page.page_side.request(callback)

    with pytest.raises(BridgeExecutionError) as exc_info:
        await BridgeChannel(handle).invoke()

    err = exc_info.value
    assert err.remote_name == "ValueError"
    assert err.remote_message == "boom"
    assert "ValueError: boom" in (err.remote_stack or "")
    assert [c[0] for c in gateway.calls] == ["BRIDGE"]
    with pytest.raises(ValueError):
        await parked


@pytest.mark.asyncio
async def test_invoke_does_not_settle_before_reply_arrives() -> None:
    page = BridgePage(auto_reply=False)
    handle, _ = wire(page)
    channel = BridgeChannel(handle)

    task = asyncio.ensure_future(channel.invoke({"n": 1}))
    for _ in range(5):
        await asyncio.sleep(0)
    assert not task.done()
    assert channel.busy

    BridgeChannel.deliver(handle, {"result": 5})
    assert await task == 5
    assert not channel.busy


@pytest.mark.asyncio
async def test_overlapping_invoke_is_a_caller_error() -> None:
    page = BridgePage(auto_reply=False)
    handle, _ = wire(page)
    channel = BridgeChannel(handle)

    first = asyncio.ensure_future(channel.invoke())
    await asyncio.sleep(0)
    with pytest.raises(BridgeBusyError):
        await channel.invoke()

    BridgeChannel.deliver(handle, {"result": None})
    assert await first is None


def test_deliver_without_pending_call_is_ignored() -> None:
    handle = PageHandle(page=BridgePage())  # type: ignore[arg-type]
    assert BridgeChannel.deliver(handle, {"result": 1}) is False


@pytest.mark.asyncio
async def test_error_reply_without_result_key_rejects() -> None:
    handle = PageHandle(page=BridgePage(auto_reply=False))  # type: ignore[arg-type]
    channel = BridgeChannel(handle)
    task = asyncio.ensure_future(channel.invoke())
    await asyncio.sleep(0)

    BridgeChannel.deliver(handle, {"error": {"name": "TypeError", "message": "x is undefined"}})

    with pytest.raises(BridgeExecutionError, match="TypeError: x is undefined"):
        await task


def test_page_side_slot_holds_a_single_request() -> None:
    page_side = DrivenPageBridge(gateway=lambda *args: None)
    page_side.request(lambda passed: passed)
    with pytest.raises(BridgeBusyError):
        page_side.request(lambda passed: passed)


@pytest.mark.asyncio
async def test_manual_bridged_fallback_without_gateway() -> None:
    page_side = DrivenPageBridge()
    seen: list = []
    defer = page_side.request(lambda passed: seen.append(passed) or "done")

    assert page_side.bridged is not None
    assert page_side.bridged(7) == "done"
    assert seen == [7]
    assert await defer == 7
    assert page_side.bridged is None
    assert page_side.has_pending is False


@pytest.mark.asyncio
async def test_run_pending_with_nothing_parked_replies_with_error() -> None:
    replies: list = []
    page_side = DrivenPageBridge(gateway=lambda type, payload: replies.append((type, payload)))

    await page_side.run_pending({"x": 1})

    assert len(replies) == 1
    assert replies[0][0] == "BRIDGE"
    assert "No bridge call is pending" in replies[0][1]["error"]["message"]
