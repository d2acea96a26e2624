"""
IoRelay：子进程 stdio 与控制终端之间的三路并发转发。

三个 pump（各一个 daemon 线程）：
- child stdout → 本进程 stdout
- child stderr → 本进程 stderr
- 本进程 stdin → child stdin（逐行重新加换行并立即 flush，保证交互命令即时送达）

约束：
- 每个 pump 读到 EOF 或遇到 I/O 错误即静默结束，互不影响；
- 主流程不被任何 pump 阻塞（等待进程退出与三个 pump 并发进行）；
- stdout/stderr 各自内部有序，但两者之间的交错顺序不保证。
"""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass, field
from typing import IO, Optional

from hytale_runner.process.supervisor import ServerProcess

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsoleStreams:
    """本进程的标准流（测试可注入 StringIO）。"""

    stdin: IO[str] = field(default_factory=lambda: sys.stdin)
    stdout: IO[str] = field(default_factory=lambda: sys.stdout)
    stderr: IO[str] = field(default_factory=lambda: sys.stderr)


def pump_lines(source: Optional[IO[str]], sink: IO[str], *, name: str = "pump") -> int:
    """
    逐行复制 source → sink，直到 EOF 或 I/O 错误。

    返回：
    - 已转发的行数
    """

    if source is None:
        return 0
    count = 0
    try:
        for line in iter(source.readline, ""):
            sink.write(line)
            sink.flush()
            count += 1
    except (OSError, ValueError):
        # ValueError：流已被关闭（I/O operation on closed file）
        logger.debug("Relay %s stopped on I/O error", name, exc_info=True)
    return count


def forward_input(source: IO[str], sink: Optional[IO[str]]) -> int:
    """
    控制台输入 → child stdin。

    说明：
    - 每行去掉原有行尾后统一以 `\\n` 结尾，写入后立即 flush；
    - 控制台 EOF 时关闭 child stdin，让子进程也看到输入结束。
    """

    if sink is None:
        return 0
    count = 0
    try:
        for line in iter(source.readline, ""):
            sink.write(line.rstrip("\r\n") + "\n")
            sink.flush()
            count += 1
        sink.close()
    except (OSError, ValueError):
        logger.debug("Relay stdin stopped on I/O error", exc_info=True)
    return count


class IoRelay:
    """
    为一个 ServerProcess 启动三路转发线程。

    说明：
    - 线程均为 daemon：stdin pump 可能永远阻塞在控制台 readline 上，不应阻止本进程退出；
    - `join()` 只等待两个输出 pump（子进程退出后它们会读到 EOF）。
    """

    def __init__(self, process: ServerProcess, console: Optional[ConsoleStreams] = None) -> None:
        self._process = process
        self._console = console or ConsoleStreams()
        self._threads: list[threading.Thread] = []

    @property
    def threads(self) -> list[threading.Thread]:
        return list(self._threads)

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("relay already started")
        proc = self._process
        console = self._console
        self._threads = [
            threading.Thread(
                target=pump_lines,
                args=(proc.stdout, console.stdout),
                kwargs={"name": "stdout"},
                name="relay-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=pump_lines,
                args=(proc.stderr, console.stderr),
                kwargs={"name": "stderr"},
                name="relay-stderr",
                daemon=True,
            ),
            threading.Thread(
                target=forward_input,
                args=(console.stdin, proc.stdin),
                name="relay-stdin",
                daemon=True,
            ),
        ]
        for t in self._threads:
            t.start()

    def join(self, timeout: Optional[float] = None) -> None:
        """等待 stdout/stderr pump 结束（各自最多 timeout 秒）。"""

        for t in self._threads[:2]:
            t.join(timeout=timeout)
