"""
Tracking for assertions that were started but never awaited.

Playwright's async assertions are coroutines; forgetting `await` silently
skips them. `expect(ctx, target)` wraps Playwright's `expect` so each assertion
call is counted until awaited, and `check_pending_expects` turns leftovers into
an `UnawaitedAssertionError` at the end of the test.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Generator
from typing import Any

from playwright.async_api import expect as playwright_expect

from .errors import UnawaitedAssertionError
from .state import OrchestrationContext


class TrackedCall:
    def __init__(
        self, ctx: OrchestrationContext, name: str, factory: Callable[[], Awaitable[Any]]
    ) -> None:
        self._ctx = ctx
        self._name = name
        self._factory = factory
        self._awaited = False
        ctx.pending_expects[name] += 1

    def __await__(self) -> Generator[Any, None, Any]:
        return self._run().__await__()

    async def _run(self) -> Any:
        if self._awaited:
            raise RuntimeError(f"{self._name}() was already awaited")
        self._awaited = True
        pending = self._ctx.pending_expects
        pending[self._name] -= 1
        if pending[self._name] <= 0:
            del pending[self._name]

        result = await self._factory()
        ctx = self._ctx
        if ctx.pause_at_every_step and ctx.is_debugging and ctx.pause is not None:
            await ctx.pause()
        return result


class TrackedAssertions:
    """Proxy over an assertions object whose methods return `TrackedCall`s."""

    def __init__(self, ctx: OrchestrationContext, assertions: Any) -> None:
        self._ctx = ctx
        self._assertions = assertions

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._assertions, name)
        if not callable(attr):
            return attr

        def call(*args: Any, **kwargs: Any) -> TrackedCall:
            return TrackedCall(self._ctx, name, lambda: attr(*args, **kwargs))

        return call


def expect(ctx: OrchestrationContext, actual: Any, message: str | None = None) -> TrackedAssertions:
    return TrackedAssertions(ctx, playwright_expect(actual, message))


def check_pending_expects(ctx: OrchestrationContext) -> None:
    pending = {name: count for name, count in ctx.pending_expects.items() if count > 0}
    ctx.pending_expects.clear()
    if pending:
        raise UnawaitedAssertionError(pending)
