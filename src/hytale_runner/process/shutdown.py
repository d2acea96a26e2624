"""
ShutdownCoordinator：server 子进程的关闭状态机。

状态：
- RUNNING：launch 成功后立即进入
- TERMINATING：收到 session-finished 通知且进程仍存活，已发送优雅终止
- EXITED：进程退出（自行退出/崩溃/被终止），已记录 exit code；之后的终止请求均为 no-op

已知限制：
- 这是协作式 hook：若本进程被非优雅地杀死（SIGKILL），子进程可能成为孤儿；
- `session_finished()` 只发送终止信号，不等待子进程真正退出；atexit 路径下本进程可能先于子进程结束。
"""

from __future__ import annotations

import atexit
import enum
import logging
import signal
import threading
from typing import Any, Dict, Optional

from hytale_runner.process.supervisor import ServerProcess

logger = logging.getLogger(__name__)


class ShutdownState(enum.Enum):
    RUNNING = "running"
    TERMINATING = "terminating"
    EXITED = "exited"


class ShutdownCoordinator:
    """观察 ServerProcess 并在会话结束时请求优雅终止。"""

    def __init__(self, process: ServerProcess) -> None:
        self._process = process
        self._lock = threading.RLock()
        self._state = ShutdownState.RUNNING
        self._exit_code: Optional[int] = None
        self._saved_handlers: Dict[int, Any] = {}
        self._atexit_registered = False

    @property
    def state(self) -> ShutdownState:
        with self._lock:
            return self._state

    @property
    def exit_code(self) -> Optional[int]:
        with self._lock:
            return self._exit_code

    def session_finished(self) -> bool:
        """
        会话结束通知（例如外层构建/测试会话结束、Ctrl+C）。

        返回：
        - True：本次调用触发了终止
        - False：已在终止中/已退出/进程已不存活（no-op）
        """

        with self._lock:
            if self._state is not ShutdownState.RUNNING:
                return False
            if not self._process.is_alive():
                return False
            self._state = ShutdownState.TERMINATING
        logger.info("Stopping server...")
        return self._process.terminate()

    def wait_for_exit(self, timeout: Optional[float] = None) -> int:
        """
        阻塞等待子进程退出，进入 EXITED 并返回 exit code。

        异常：
        - subprocess.TimeoutExpired：timeout 到期时子进程仍未退出（状态不变）
        """

        code = self._process.wait(timeout=timeout)
        with self._lock:
            self._state = ShutdownState.EXITED
            self._exit_code = code
        return code

    def install_signal_handlers(self) -> None:
        """
        将 SIGINT/SIGTERM 映射为 session_finished（仅主线程可调用）。

        说明：
        - 子进程通常与本进程同属前台进程组，也会直接收到终端的 SIGINT；
          这里的 handler 保证即使子进程忽略了 SIGINT，也会收到 SIGTERM。
        """

        if threading.current_thread() is not threading.main_thread():
            return
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._saved_handlers[signum] = signal.signal(signum, self._on_signal)
        if not self._atexit_registered:
            atexit.register(self.session_finished)
            self._atexit_registered = True

    def restore_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum, handler in self._saved_handlers.items():
            signal.signal(signum, handler)
        self._saved_handlers.clear()
        if self._atexit_registered:
            atexit.unregister(self.session_finished)
            self._atexit_registered = False

    def _on_signal(self, signum: int, frame: Any) -> None:  # noqa: ARG002
        logger.debug("Received signal %d", signum)
        self.session_finished()
