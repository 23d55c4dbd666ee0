from __future__ import annotations

import asyncio
import logging

import pytest

from pagepilot.constants import BACKOFF_MS, DEFAULT_NAVIGATION_TIMEOUT_MS
from pagepilot.deferred import Deferred
from pagepilot.errors import NavigationHalted, NavigationTimeout, PageReadyTimeout
from pagepilot.gateway import GatewayDispatcher
from pagepilot.navigation import NavigationController, RetryState
from pagepilot.page import PageHandle
from pagepilot.scripts import LOCATION_HREF_SCRIPT
from pagepilot.state import OrchestrationContext

TARGET = "http://localhost:3000/app"


class GotoTimeoutError(Exception):
    pass


class MockPage:
    """
    Page whose `goto` never leaves about:blank until `reachable_from` (1-based).

    On a successful commit the page posts READY through the gateway, like the
    in-page harness does after rendering.
    """

    def __init__(
        self,
        *,
        reachable_from: int | None = 1,
        hang_goto: bool = False,
        send_ready: bool = True,
        network_idle: bool = False,
    ) -> None:
        self.url = "about:blank"
        self.reachable_from = reachable_from
        self.hang_goto = hang_goto
        self.send_ready = send_ready
        self.network_idle = network_idle
        self.goto_calls: list[dict] = []
        self.gateway: GatewayDispatcher | None = None

    async def goto(self, url: str, wait_until: str | None = None, timeout: int | None = None):
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.hang_goto:
            await asyncio.sleep(3600)
        attempt = len(self.goto_calls)
        if self.reachable_from is None or attempt < self.reachable_from:
            raise GotoTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.url = url
        if self.send_ready and self.gateway is not None:
            asyncio.ensure_future(self.gateway("READY"))

    async def evaluate(self, script: str, arg=None):
        assert script == LOCATION_HREF_SCRIPT
        return self.url

    async def wait_for_load_state(self, state: str | None = None) -> None:
        if not self.network_idle:
            await asyncio.sleep(3600)


def make_handle(page: MockPage) -> PageHandle:
    ctx = OrchestrationContext()
    handle = PageHandle(page=page)  # type: ignore[arg-type]
    page.gateway = GatewayDispatcher(ctx, handle)
    return handle


@pytest.mark.parametrize("attempt", range(5))
def test_timeout_follows_backoff_schedule_then_fallback(attempt: int) -> None:
    state = RetryState(attempts_left=5)
    expected = BACKOFF_MS[attempt] if attempt < len(BACKOFF_MS) else DEFAULT_NAVIGATION_TIMEOUT_MS
    assert state.timeout_for(attempt) == expected


def test_timeout_override_wins_over_schedule() -> None:
    state = RetryState(attempts_left=5, override_ms=12_000)
    assert [state.timeout_for(i) for i in range(5)] == [12_000] * 5


def test_retry_state_consume_counts_down() -> None:
    state = RetryState(attempts_left=2, budget=2)
    assert state.attempt == 0
    assert state.consume() is True
    assert state.attempt == 1
    assert state.consume() is False


@pytest.mark.asyncio
async def test_halted_twice_then_reachable_succeeds_on_third_attempt(caplog) -> None:
    caplog.set_level(logging.INFO, logger="pagepilot.navigation")
    page = MockPage(reachable_from=3)
    handle = make_handle(page)
    controller = NavigationController(handle, test_name="renders app")

    await controller.goto(TARGET)

    assert handle.readiness.settled
    assert [c["timeout"] for c in page.goto_calls] == [500, 750, 1000]
    assert all(c["wait_until"] == "commit" for c in page.goto_calls)
    messages = [r.getMessage() for r in caplog.records]
    assert sum("retrying" in m for m in messages) == 2
    assert sum("giving up" in m for m in messages) == 0
    assert 'on "renders app" retrying (attempts left: 4)...' in messages[0]


@pytest.mark.asyncio
async def test_all_attempts_halted_raises_navigation_timeout(caplog) -> None:
    caplog.set_level(logging.INFO, logger="pagepilot.navigation")
    page = MockPage(reachable_from=None)
    controller = NavigationController(make_handle(page), test_name="never loads")

    with pytest.raises(NavigationTimeout) as exc_info:
        await controller.goto(TARGET)

    assert isinstance(exc_info.value.__cause__, GotoTimeoutError)
    assert [c["timeout"] for c in page.goto_calls] == [500, 750, 1000, 2000, 5000]
    messages = [r.getMessage() for r in caplog.records]
    assert sum("retrying" in m for m in messages) == 4
    assert sum("giving up" in m for m in messages) == 1


@pytest.mark.asyncio
async def test_watchdog_detects_goto_that_never_registers() -> None:
    page = MockPage(hang_goto=True)
    controller = NavigationController(make_handle(page), schedule=(10,), attempts=1)

    with pytest.raises(NavigationTimeout) as exc_info:
        await controller.goto(TARGET)

    assert isinstance(exc_info.value.__cause__, NavigationHalted)


@pytest.mark.asyncio
async def test_network_idle_without_ready_is_a_stall() -> None:
    page = MockPage(send_ready=False, network_idle=True)
    controller = NavigationController(make_handle(page), schedule=(10, 20), attempts=2)

    with pytest.raises(NavigationTimeout) as exc_info:
        await controller.goto(TARGET)

    assert isinstance(exc_info.value.__cause__, PageReadyTimeout)
    assert len(page.goto_calls) == 2


class IdleThenReadyPage(MockPage):
    """Goes network idle and reports READY in the same tick, after the timeout."""

    def __init__(self) -> None:
        super().__init__(send_ready=False)
        self.idle = asyncio.Event()

    async def goto(self, url: str, wait_until: str | None = None, timeout: int | None = None):
        await super().goto(url, wait_until=wait_until, timeout=timeout)
        asyncio.get_running_loop().call_later(0.03, lambda: asyncio.ensure_future(self._settle()))

    async def _settle(self) -> None:
        self.idle.set()
        assert self.gateway is not None
        await self.gateway("READY")

    async def wait_for_load_state(self, state: str | None = None) -> None:
        await self.idle.wait()


@pytest.mark.asyncio
async def test_network_idle_alongside_ready_is_not_a_stall(caplog) -> None:
    caplog.set_level(logging.INFO, logger="pagepilot.navigation")
    page = IdleThenReadyPage()
    handle = make_handle(page)
    controller = NavigationController(handle, schedule=(10,))

    await controller.goto(TARGET)

    assert handle.readiness.settled
    assert len(page.goto_calls) == 1
    assert not [r for r in caplog.records if "page.goto error" in r.getMessage()]


@pytest.mark.asyncio
async def test_watchdog_from_superseded_attempt_is_ignored() -> None:
    page = MockPage()
    controller = NavigationController(make_handle(page))
    controller._attempt = 3
    outcome: Deferred[None] = Deferred()

    await controller._watchdog(TARGET, 1, 0, outcome)

    assert outcome.settled is False


@pytest.mark.asyncio
async def test_ready_from_another_origin_does_not_resolve_readiness() -> None:
    page = MockPage()
    handle = make_handle(page)
    handle.target_url = TARGET
    assert page.gateway is not None

    page.url = "http://elsewhere.test/"
    await page.gateway("READY")
    assert handle.readiness.settled is False

    page.url = "http://localhost:3000/app?x=1"
    await page.gateway("READY")
    assert handle.readiness.settled is True
