"""
Hytale dev runner（Python）。

说明：
- 为插件开发提供“一条命令起服”的本地闭环：下载/缓存 server jar → 布置 `run/` → 启动并托管子进程。
- 当前已包含：
  - 配置加载器（YAML overlay + pydantic 校验）
  - ArtifactResolver（URL 按 sha256 缓存 / 本地路径）
  - WorkspaceStager（`run/server.jar` + `run/plugins/`）
  - ProcessSupervisor + IoRelay + ShutdownCoordinator（子进程生命周期与 stdio 转发）
  - CLI（`hytale-runner run|resolve|cache-path`）
"""

from __future__ import annotations

from hytale_runner.runner import RunningServer, ServerRunner

__all__ = ["RunningServer", "ServerRunner", "__version__"]

__version__ = "0.3.0"
