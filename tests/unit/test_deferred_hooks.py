from __future__ import annotations

import asyncio

import pytest

from pagepilot.deferred import Deferred
from pagepilot.hooks import LifecycleHooks


@pytest.mark.asyncio
async def test_deferred_resolves_once() -> None:
    d: Deferred[int] = Deferred()
    assert d.resolve(1) is True
    assert d.resolve(2) is False
    assert d.reject(RuntimeError("late")) is False
    assert d.settled is True
    assert await d == 1


@pytest.mark.asyncio
async def test_deferred_reject_raises_to_waiter() -> None:
    d: Deferred[int] = Deferred()
    d.reject(ValueError("nope"))
    with pytest.raises(ValueError, match="nope"):
        await d.wait()


@pytest.mark.asyncio
async def test_deferred_waiter_blocks_until_settled() -> None:
    d: Deferred[str] = Deferred()
    task = asyncio.ensure_future(d.wait())
    await asyncio.sleep(0)
    assert not task.done()
    d.resolve("ready")
    assert await task == "ready"


def test_deferred_can_be_created_outside_a_loop() -> None:
    d: Deferred[None] = Deferred()
    assert d.settled is False


@pytest.mark.asyncio
async def test_hooks_run_in_registration_order_with_sync_and_async() -> None:
    hooks = LifecycleHooks()
    calls: list[str] = []

    async def first(page) -> None:
        calls.append(f"first:{page}")

    def second(page) -> None:
        calls.append(f"second:{page}")

    hooks.add("before_navigate", first)
    hooks.before_navigate(second)
    await hooks.run("before_navigate", "p")
    assert calls == ["first:p", "second:p"]


@pytest.mark.asyncio
async def test_hooks_added_while_draining_also_run() -> None:
    hooks = LifecycleHooks()
    calls: list[str] = []

    def late() -> None:
        calls.append("late")

    def early() -> None:
        calls.append("early")
        hooks.add("after_test", late)

    hooks.add("after_test", early)
    await hooks.run("after_test")
    assert calls == ["early", "late"]


@pytest.mark.asyncio
async def test_run_collecting_keeps_going_after_errors() -> None:
    hooks = LifecycleHooks()
    calls: list[str] = []

    def broken() -> None:
        calls.append("broken")
        raise RuntimeError("hook failed")

    async def fine() -> None:
        calls.append("fine")

    hooks.after_test(broken)
    hooks.after_test(fine)
    errors = await hooks.run_collecting("after_test")
    assert calls == ["broken", "fine"]
    assert [str(e) for e in errors] == ["hook failed"]


@pytest.mark.asyncio
async def test_run_propagates_first_error() -> None:
    hooks = LifecycleHooks()
    hooks.before_render(lambda page, info: (_ for _ in ()).throw(KeyError("x")))
    with pytest.raises(KeyError):
        await hooks.run("before_render", None, None)


def test_clear_by_kind_and_all() -> None:
    hooks = LifecycleHooks()
    hooks.after_test(lambda: None)
    hooks.before_navigate(lambda page: None)
    assert len(hooks) == 2
    hooks.clear("after_test")
    assert hooks.get("after_test") == []
    assert len(hooks) == 1
    hooks.clear()
    assert len(hooks) == 0
