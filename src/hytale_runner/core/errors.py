"""
runner 错误分类（异常类型）。

说明：
- 四类错误（下载失败 / 源不存在 / 复制失败 / 启动失败）对一次调用都是终止性的，不做自动重试；
- 每个错误都携带足够的上下文（URL 或路径），便于用户自行修正配置；
- CLI 把异常转换为 `RunnerIssue`（英文 `code/message/details`）输出。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Sequence


@dataclass(frozen=True)
class RunnerIssue:
    """结构化问题对象（可 JSON 序列化）。"""

    code: str
    message: str
    details: Dict[str, Any]


class RunnerError(Exception):
    """runner 结构化错误基类（英文 `code/message/details`）。"""

    def __init__(self, *, code: str, message: str, details: Dict[str, Any] | None = None) -> None:
        """创建 runner 错误。

        参数：
        - `code`：稳定错误码（英文大写下划线）
        - `message`：英文错误消息
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> RunnerIssue:
        """把异常转换为可序列化问题对象。"""

        return RunnerIssue(code=self.code, message=self.message, details=dict(self.details))


class DownloadFailedError(RunnerError):
    """远端 server jar 下载失败（网络/HTTP 状态/磁盘写入）。"""

    def __init__(self, *, url: str, cause: BaseException) -> None:
        super().__init__(
            code="DOWNLOAD_FAILED",
            message="Failed to download server jar; check that jar_url is correct.",
            details={"url": url, "reason": str(cause) or type(cause).__name__},
        )
        self.url = url
        self.cause = cause


class SourceNotFoundError(RunnerError):
    """本地 server jar 不存在。"""

    def __init__(self, *, path: Path) -> None:
        super().__init__(
            code="SOURCE_NOT_FOUND",
            message="Server jar not found; make sure jar_url points to a valid file.",
            details={"path": str(path)},
        )
        self.path = path


class CopyFailedError(RunnerError):
    """布置 run 目录时的不可恢复文件系统错误（权限、磁盘满等）。"""

    def __init__(self, *, path: Path, cause: BaseException) -> None:
        super().__init__(
            code="COPY_FAILED",
            message="Failed to stage file into the run directory.",
            details={"path": str(path), "reason": str(cause) or type(cause).__name__},
        )
        self.path = path
        self.cause = cause


class SpawnFailedError(RunnerError):
    """子进程启动失败（可执行文件不存在、无权限等）。"""

    def __init__(self, *, argv: Sequence[str], cause: BaseException) -> None:
        super().__init__(
            code="SPAWN_FAILED",
            message="Failed to start the server process.",
            details={"argv": [str(a) for a in argv], "reason": str(cause) or type(cause).__name__},
        )
        self.argv = list(argv)
        self.cause = cause
