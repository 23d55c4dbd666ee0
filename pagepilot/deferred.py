from __future__ import annotations

import asyncio
from collections.abc import Generator
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class Deferred(Generic[T]):
    """
    One-shot future settled by a single producer and awaited by a consumer.

    Unlike `asyncio.Future` it can be created outside a running loop, and
    settling it twice is a no-op instead of an error: the first outcome wins.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._settled = False
        self._value: T | None = None
        self._error: BaseException | None = None

    @property
    def settled(self) -> bool:
        return self._settled

    def resolve(self, value: T | None = None) -> bool:
        if self._settled:
            return False
        self._settled = True
        self._value = value
        self._event.set()
        return True

    def reject(self, error: BaseException) -> bool:
        if self._settled:
            return False
        self._settled = True
        self._error = error
        self._event.set()
        return True

    async def wait(self) -> T:
        await self._event.wait()
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()
