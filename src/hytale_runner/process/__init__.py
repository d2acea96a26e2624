"""Server process lifecycle: launch, stdio relay and shutdown."""

from __future__ import annotations

from hytale_runner.process.relay import ConsoleStreams, IoRelay
from hytale_runner.process.shutdown import ShutdownCoordinator, ShutdownState
from hytale_runner.process.supervisor import ProcessSupervisor, ServerProcess, build_launch_argv

__all__ = [
    "ConsoleStreams",
    "IoRelay",
    "ProcessSupervisor",
    "ServerProcess",
    "ShutdownCoordinator",
    "ShutdownState",
    "build_launch_argv",
]
