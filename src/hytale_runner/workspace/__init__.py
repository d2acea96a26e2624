"""Run directory staging."""

from __future__ import annotations

from hytale_runner.workspace.stager import RunWorkspace, WorkspaceStager

__all__ = ["RunWorkspace", "WorkspaceStager"]
