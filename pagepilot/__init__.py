"""
PagePilot - render an app under test in a real browser and drive it from Python.
"""

from .bridge import BridgeChannel, DrivenPageBridge
from .deferred import Deferred
from .environment import DrivenPageEnvironment, Environment, OrchestratorEnvironment
from .errors import (
    BridgeBusyError,
    BridgeExecutionError,
    NavigationHalted,
    NavigationTimeout,
    PagePilotError,
    PageReadyTimeout,
    UnawaitedAssertionError,
)
from .hooks import LifecycleHooks
from .models import ArtifactRecord, RenderInfo, RenderOptions
from .render import render
from .session import TestSession
from .state import OrchestrationContext

__version__ = "0.1.0"

__all__ = [
    "ArtifactRecord",
    "BridgeBusyError",
    "BridgeChannel",
    "BridgeExecutionError",
    "Deferred",
    "DrivenPageBridge",
    "DrivenPageEnvironment",
    "Environment",
    "LifecycleHooks",
    "NavigationHalted",
    "NavigationTimeout",
    "OrchestrationContext",
    "OrchestratorEnvironment",
    "PagePilotError",
    "PageReadyTimeout",
    "RenderInfo",
    "RenderOptions",
    "TestSession",
    "UnawaitedAssertionError",
    "render",
]
