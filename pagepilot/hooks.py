from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

logger = logging.getLogger(__name__)

HookKind = Literal["before_navigate", "before_render", "after_test"]
Hook = Callable[..., Awaitable[Any] | Any]

HOOK_KINDS: tuple[HookKind, ...] = ("before_navigate", "before_render", "after_test")


class LifecycleHooks:
    """
    Ordered callback lists per hook kind.

    Lists are append-only while a test runs. Draining is a fixed-point walk, so
    hooks registered by a running hook still execute in the same pass.
    """

    def __init__(self) -> None:
        self._hooks: dict[HookKind, list[Hook]] = {kind: [] for kind in HOOK_KINDS}

    def add(self, kind: HookKind, hook: Hook) -> None:
        self._hooks[kind].append(hook)

    def before_navigate(self, hook: Hook) -> Hook:
        self.add("before_navigate", hook)
        return hook

    def before_render(self, hook: Hook) -> Hook:
        self.add("before_render", hook)
        return hook

    def after_test(self, hook: Hook) -> Hook:
        self.add("after_test", hook)
        return hook

    def get(self, kind: HookKind) -> list[Hook]:
        return list(self._hooks[kind])

    def extend(self, other: LifecycleHooks) -> None:
        for kind in HOOK_KINDS:
            self._hooks[kind].extend(other._hooks[kind])

    async def run(self, kind: HookKind, *args: Any) -> None:
        """Run hooks of `kind` in registration order; the first error propagates."""
        hooks = self._hooks[kind]
        index = 0
        while index < len(hooks):
            result = hooks[index](*args)
            if inspect.isawaitable(result):
                await result
            index += 1

    async def run_collecting(self, kind: HookKind, *args: Any) -> list[BaseException]:
        """Run every hook of `kind` even if some raise; return the errors in order."""
        errors: list[BaseException] = []
        hooks = self._hooks[kind]
        index = 0
        while index < len(hooks):
            try:
                result = hooks[index](*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.debug(f"{kind} hook #{index} raised {type(e).__name__}: {e}")
                errors.append(e)
            index += 1
        return errors

    def clear(self, kind: HookKind | None = None) -> None:
        kinds = HOOK_KINDS if kind is None else (kind,)
        for k in kinds:
            self._hooks[k].clear()

    def __len__(self) -> int:
        return sum(len(hooks) for hooks in self._hooks.values())
