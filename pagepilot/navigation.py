"""
Reliable navigation of the driven page to the test URL.

`page.goto` occasionally never registers, or the page stalls before the
harness reports READY. Each attempt races the commit+readiness path against a
watchdog that fires after the attempt's timeout; failed attempts are retried
with an increasing timeout until the attempt budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from .constants import BACKOFF_MS, DEFAULT_NAVIGATION_TIMEOUT_MS, GOTO_ATTEMPTS
from .deferred import Deferred
from .errors import NavigationHalted, NavigationTimeout, PageReadyTimeout
from .page import PageHandle, same_origin
from .scripts import LOCATION_HREF_SCRIPT

logger = logging.getLogger(__name__)


@dataclass
class RetryState:
    attempts_left: int
    schedule: tuple[int, ...] = BACKOFF_MS
    started_at: float = field(default_factory=time.monotonic)
    budget: int = GOTO_ATTEMPTS
    fallback_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    override_ms: int | None = None

    @property
    def attempt(self) -> int:
        """0-based index of the attempt about to run."""
        return self.budget - self.attempts_left

    def timeout_for(self, attempt: int) -> int:
        if self.override_ms is not None:
            return self.override_ms
        if attempt < len(self.schedule):
            return self.schedule[attempt]
        return self.fallback_ms

    def consume(self) -> bool:
        """Spend one attempt; True if another one remains."""
        self.attempts_left -= 1
        return self.attempts_left > 0

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class NavigationController:
    def __init__(
        self,
        handle: PageHandle,
        *,
        test_name: str | None = None,
        schedule: tuple[int, ...] = BACKOFF_MS,
        fallback_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        timeout_override_ms: int | None = None,
        attempts: int = GOTO_ATTEMPTS,
    ) -> None:
        self._handle = handle
        self._test_name = test_name
        self._schedule = tuple(schedule)
        self._fallback_ms = fallback_ms
        self._override_ms = timeout_override_ms
        self._attempts = attempts
        self._attempt = -1

    @property
    def attempt(self) -> int:
        return self._attempt

    def new_retry_state(self) -> RetryState:
        return RetryState(
            attempts_left=self._attempts,
            schedule=self._schedule,
            budget=self._attempts,
            fallback_ms=self._fallback_ms,
            override_ms=self._override_ms,
        )

    async def goto(self, url: str) -> None:
        """
        Navigate to `url` and wait for the page to report readiness.

        Raises:
            NavigationTimeout: every attempt failed
        """
        self._handle.target_url = url
        state = self.new_retry_state()
        while True:
            try:
                await self._run_attempt(url, state)
                return
            except Exception as error:
                should_retry = state.consume()
                plan = (
                    f"retrying (attempts left: {state.attempts_left})..."
                    if should_retry
                    else "giving up"
                )
                logger.info(
                    f'page.goto error: {type(error).__name__} on "{self._test_name}" {plan}'
                )
                if not should_retry:
                    raise NavigationTimeout(
                        f"Page at {url} was not ready after {state.budget} attempts "
                        f"({state.elapsed_ms}ms)"
                    ) from error

    async def _run_attempt(self, url: str, state: RetryState) -> None:
        attempt = state.attempt
        self._attempt = attempt
        timeout_ms = state.timeout_for(attempt)
        outcome: Deferred[None] = Deferred()

        watchdog = asyncio.ensure_future(self._watchdog(url, attempt, timeout_ms, outcome))
        commit = asyncio.ensure_future(self._commit(url, timeout_ms, outcome))
        try:
            await outcome
        finally:
            for task in (watchdog, commit):
                task.cancel()
            await asyncio.gather(watchdog, commit, return_exceptions=True)

    async def _commit(self, url: str, timeout_ms: int, outcome: Deferred[None]) -> None:
        page = self._handle.page
        try:
            try:
                await page.goto(url, wait_until="commit", timeout=timeout_ms)
            except Exception as error:
                if await self._halted(url):
                    outcome.reject(error)
                    return
            await self._handle.readiness
            outcome.resolve()
        except Exception as error:
            outcome.reject(error)

    async def _watchdog(
        self, url: str, attempt: int, timeout_ms: int, outcome: Deferred[None]
    ) -> None:
        await asyncio.sleep(timeout_ms / 1000)
        # Timers from superseded attempts are ignored.
        if self._attempt != attempt or outcome.settled:
            return
        if await self._halted(url):
            outcome.reject(NavigationHalted(f"Page did not leave for {url} in {timeout_ms}ms"))
            return
        try:
            await self._handle.page.wait_for_load_state("networkidle")
        except Exception:
            return
        if self._attempt == attempt and not self._handle.readiness.settled:
            outcome.reject(PageReadyTimeout("Page went network idle without reporting READY"))

    async def _live_url(self) -> str:
        page = self._handle.page
        try:
            return await page.evaluate(LOCATION_HREF_SCRIPT)
        except Exception:
            return page.url

    async def _halted(self, url: str) -> bool:
        return not same_origin(await self._live_url(), url)
