"""
Where test code is running.

`OrchestratorEnvironment` is what `render` returns on the test-runner side.
`DrivenPageEnvironment` is the page-side view for harnesses that run
in-process: there is no Playwright page to drive and pausing does nothing, but
the bridge and gateway messages behave as they do in a browser.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Optional, Union

from .bridge import BridgeChannel, DrivenPageBridge, Gateway
from .page import PageHandle

if TYPE_CHECKING:
    from playwright.async_api import Page


@dataclass
class OrchestratorEnvironment:
    page: Page
    handle: PageHandle
    bridge: BridgeChannel
    pause: Callable[[], Awaitable[None]]
    debug_url: Optional[str] = None
    kind: Literal["orchestrator"] = "orchestrator"


@dataclass
class DrivenPageEnvironment:
    gateway: Optional[Gateway] = None
    bridge: DrivenPageBridge = field(init=False)
    kind: Literal["driven_page"] = "driven_page"

    def __post_init__(self) -> None:
        self.bridge = DrivenPageBridge(self.gateway)

    @property
    def page(self) -> None:
        return None

    async def pause(self) -> None:
        return None

    async def _send(self, type: str, *args: Any) -> Any:
        if self.gateway is None:
            return None
        result = self.gateway(type, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def ready(self) -> None:
        await self._send("READY")

    async def info(self) -> Optional[dict[str, Any]]:
        return await self._send("GET_INFO")


Environment = Union[OrchestratorEnvironment, DrivenPageEnvironment]
