"""
ProcessSupervisor：在 run 目录中启动 server 子进程。

说明：
- argv 顺序固定：`java [jvm_args] [debug flag] [extra_args] -jar <binary> [server_args]`；
  可选 flag 必须位于 `-jar` 之前，否则会被当作 server 自身参数；
- stdin/stdout/stderr 均为管道（UTF-8 文本、行缓冲），由 `IoRelay` 负责转发；
- 启动失败只抛 `SpawnFailedError`，run 目录保留以便排查。
"""

from __future__ import annotations

import logging
import subprocess
from typing import IO, Optional, Sequence

from hytale_runner.config.loader import RunnerConfig
from hytale_runner.core.errors import SpawnFailedError
from hytale_runner.workspace.stager import RunWorkspace

logger = logging.getLogger(__name__)


def debug_agent_flag(port: int) -> str:
    """JDWP 远程调试监听参数（server 模式、不挂起）。"""

    return f"-agentlib:jdwp=transport=dt_socket,server=y,suspend=n,address={int(port)}"


def build_launch_argv(config: RunnerConfig, binary_name: str, extra_args: Sequence[str] = ()) -> list[str]:
    """
    组装启动 argv。

    参数：
    - config：runner 配置（java_executable/jvm_args/debug/server_args）
    - binary_name：run 目录内的 jar 文件名（相对 cwd）
    - extra_args：调用方追加的可选 flag（位于 `-jar` 之前）
    """

    launch = config.launch
    argv = [launch.java_executable, *launch.jvm_args]
    if launch.debug:
        argv.append(debug_agent_flag(launch.debug_port))
    argv.extend(str(a) for a in extra_args)
    argv.extend(["-jar", binary_name])
    argv.extend(launch.server_args)
    return argv


class ServerProcess:
    """
    单个 server 子进程句柄（每次调用恰好一个）。

    说明：
    - 持有子进程的三个流；转发线程只引用这些流，不控制进程生命周期；
    - `terminate()` 发送 SIGTERM（优雅终止），进程已退出时为 no-op。
    """

    def __init__(self, proc: subprocess.Popen, argv: Sequence[str]) -> None:
        self._proc = proc
        self.argv = list(argv)

    @property
    def pid(self) -> int:
        return int(self._proc.pid)

    @property
    def stdin(self) -> Optional[IO[str]]:
        return self._proc.stdin

    @property
    def stdout(self) -> Optional[IO[str]]:
        return self._proc.stdout

    @property
    def stderr(self) -> Optional[IO[str]]:
        return self._proc.stderr

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode

    def is_alive(self) -> bool:
        """非阻塞存活检查。"""

        return self._proc.poll() is None

    def terminate(self) -> bool:
        """
        请求优雅终止。

        返回：
        - True：已发送终止信号
        - False：进程已退出（no-op）
        """

        if not self.is_alive():
            return False
        try:
            self._proc.terminate()
        except ProcessLookupError:
            # poll 与 terminate 之间进程已退出
            return False
        return True

    def wait(self, timeout: Optional[float] = None) -> int:
        """阻塞等待退出并返回 exit code（被信号终止时为负的信号编号）。"""

        return int(self._proc.wait(timeout=timeout))


class ProcessSupervisor:
    """server 子进程启动器。"""

    def __init__(self, config: RunnerConfig) -> None:
        self._config = config

    def launch(self, workspace: RunWorkspace, extra_args: Sequence[str] = ()) -> ServerProcess:
        """
        在 workspace.root 下启动 server。

        异常：
        - SpawnFailedError：可执行文件不存在、无权限等
        """

        argv = build_launch_argv(self._config, workspace.server_binary.name, extra_args)
        if self._config.launch.debug:
            logger.info("Debug mode enabled. Connect debugger to port %d", self._config.launch.debug_port)
        logger.info("Starting server: %s (cwd=%s)", " ".join(argv), workspace.root)
        try:
            proc = subprocess.Popen(  # noqa: S603
                argv,
                cwd=str(workspace.root),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise SpawnFailedError(argv=argv, cause=e) from e
        return ServerProcess(proc, argv)
