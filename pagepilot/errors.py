from __future__ import annotations

from typing import Any


class PagePilotError(RuntimeError):
    reason_code = "pagepilot_error"

    def __init__(self, message: str, *, reason_code: str | None = None) -> None:
        super().__init__(message)
        if reason_code is not None:
            self.reason_code = reason_code


class NavigationTimeout(PagePilotError):
    """Raised once every navigation attempt has failed."""

    reason_code = "navigation_timeout"


class NavigationHalted(PagePilotError):
    """The page never left its previous origin after `page.goto`."""

    reason_code = "navigation_halted"


class PageReadyTimeout(PagePilotError):
    """The page went network-idle without reporting readiness."""

    reason_code = "page_ready_timeout"


class BridgeBusyError(PagePilotError):
    reason_code = "bridge_busy"


class BridgeExecutionError(PagePilotError):
    """
    An error thrown by a bridged callback inside the driven page.

    The remote error is serialized by the page; `remote` keeps the raw payload.
    """

    reason_code = "bridge_error"

    def __init__(self, remote: Any) -> None:
        self.remote = remote
        if isinstance(remote, dict):
            self.remote_name = remote.get("name") or "Error"
            self.remote_message = remote.get("message") or ""
            self.remote_stack = remote.get("stack")
        else:
            self.remote_name = "Error"
            self.remote_message = "" if remote is None else str(remote)
            self.remote_stack = None
        super().__init__(f"{self.remote_name}: {self.remote_message}")


class UnawaitedAssertionError(PagePilotError):
    reason_code = "unawaited_assertion"

    def __init__(self, pending: dict[str, int]) -> None:
        self.pending = dict(pending)
        lines = [
            f"Expected {count} {name}() calls to be awaited, but they were not."
            for name, count in self.pending.items()
        ]
        super().__init__("\n".join(lines))
