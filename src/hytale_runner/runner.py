"""
ServerRunner：Resolver → Stager → Supervisor → IoRelay → ShutdownCoordinator 的编排入口。

说明：
- Resolver/Stager 为一次性的同步步骤，任一失败即终止本次调用（不重试、不启动进程）；
- 启动后的 pump 错误不影响整体结果；调用结果只由子进程 exit code 决定。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import httpx

from hytale_runner.artifacts.resolver import ArtifactResolver
from hytale_runner.config.loader import RunnerConfig
from hytale_runner.process.relay import ConsoleStreams, IoRelay
from hytale_runner.process.shutdown import ShutdownCoordinator
from hytale_runner.process.supervisor import ProcessSupervisor, ServerProcess
from hytale_runner.workspace.stager import RunWorkspace, WorkspaceStager

logger = logging.getLogger(__name__)

# 子进程退出后，等待输出 pump 排空剩余行的上限（秒）
_RELAY_DRAIN_TIMEOUT_SEC = 2.0


def exit_status_for(returncode: int) -> int:
    """将 Popen returncode 映射为本进程退出码（被信号 N 终止 → 128+N）。"""

    if returncode < 0:
        return 128 + (-returncode)
    return returncode


@dataclass
class RunningServer:
    """已启动的 server（进程 + 转发 + 关闭协调器）。"""

    workspace: RunWorkspace
    process: ServerProcess
    relay: IoRelay
    coordinator: ShutdownCoordinator

    def session_finished(self) -> bool:
        return self.coordinator.session_finished()

    def wait(self, timeout: Optional[float] = None) -> int:
        """等待子进程退出、排空输出并返回 exit code。"""

        code = self.coordinator.wait_for_exit(timeout=timeout)
        self.relay.join(timeout=_RELAY_DRAIN_TIMEOUT_SEC)
        return code


class ServerRunner:
    """
    本地 server 运行器。

    参数：
    - config：显式注入的 runner 配置
    - console：本进程标准流（默认 sys.stdin/stdout/stderr）
    - http_client：可选 httpx.Client（下载用；测试可注入 MockTransport）
    """

    def __init__(
        self,
        config: RunnerConfig,
        *,
        console: Optional[ConsoleStreams] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config
        self._console = console or ConsoleStreams()
        self.resolver = ArtifactResolver(config, http_client=http_client)
        self.stager = WorkspaceStager(config)
        self.supervisor = ProcessSupervisor(config)

    @property
    def config(self) -> RunnerConfig:
        return self._config

    def default_plugin_artifact(self) -> Optional[Path]:
        if self._config.plugin_artifact is None:
            return None
        return self._config.resolve_path(self._config.plugin_artifact)

    def prepare(self, plugin_artifact: Optional[Path] = None) -> RunWorkspace:
        """解析 server jar 并布置 run 目录（失败时不会创建 run 目录）。"""

        server_jar = self.resolver.resolve()
        plugin = plugin_artifact if plugin_artifact is not None else self.default_plugin_artifact()
        return self.stager.stage(server_jar, plugin)

    def start(self, workspace: RunWorkspace, extra_args: Sequence[str] = ()) -> RunningServer:
        """启动子进程并挂上三路转发与关闭协调器。"""

        process = self.supervisor.launch(workspace, extra_args)
        relay = IoRelay(process, self._console)
        relay.start()
        coordinator = ShutdownCoordinator(process)
        return RunningServer(workspace=workspace, process=process, relay=relay, coordinator=coordinator)

    def run(
        self,
        plugin_artifact: Optional[Path] = None,
        extra_args: Sequence[str] = (),
        *,
        handle_signals: bool = True,
    ) -> int:
        """
        完整流程：prepare → start → 等待退出。

        返回：
        - 子进程 exit code（被信号终止时为负数，见 `exit_status_for`）

        异常：
        - RunnerError 子类：启动前的任一步骤失败
        """

        workspace = self.prepare(plugin_artifact)
        logger.info("Starting Hytale server...")
        logger.info("Press Ctrl+C to stop the server")
        server = self.start(workspace, extra_args)
        if handle_signals:
            server.coordinator.install_signal_handlers()
        try:
            code = server.wait()
        finally:
            if handle_signals:
                server.coordinator.restore_signal_handlers()
        logger.debug("Server exited with code %d", code)
        return code
