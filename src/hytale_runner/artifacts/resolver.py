"""
ArtifactResolver：把 `jar_url` 解析为本地 server jar 路径。

约束：
- `http://` / `https://` 前缀视为远端：以 sha256(url) 作为 cache key，命中则直接复用（不联网、不校验内容）；
- 未命中时流式下载到 cache 目录下的临时文件，传输完整结束后再原子 rename 到 cache 路径；
  失败时清理临时文件，cache 中不会留下半成品；
- 其它值视为本地路径（相对 project_root），从不访问网络或 cache。

已知限制：
- cache 按 URL 而非内容寻址；同一 URL 的远端内容变化后，本地会一直使用旧文件（需手动删除 cache）。
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Literal, Optional

import httpx

from hytale_runner.config.loader import RunnerConfig
from hytale_runner.core.errors import DownloadFailedError, SourceNotFoundError

logger = logging.getLogger(__name__)

_REMOTE_PREFIXES = ("http://", "https://")


@dataclass(frozen=True)
class ArtifactSource:
    """server jar 来源（remote URL 或 local path；构造后不可变）。"""

    kind: Literal["remote", "local"]
    value: str

    @classmethod
    def parse(cls, raw: str) -> "ArtifactSource":
        """按前缀区分 remote/local。"""

        if raw.startswith(_REMOTE_PREFIXES):
            return cls(kind="remote", value=raw)
        return cls(kind="local", value=raw)

    @property
    def is_remote(self) -> bool:
        return self.kind == "remote"


def cache_key(url: str) -> str:
    """URL 字符串 UTF-8 字节的 sha256 hex（64 chars）。"""

    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def cache_path_for(*, cache_dir: Path, url: str, extension: str = ".jar") -> Path:
    """URL 对应的 cache 文件路径：`<cache_dir>/<sha256(url)><extension>`。"""

    return Path(cache_dir) / f"{cache_key(url)}{extension}"


class ArtifactResolver:
    """
    server jar 解析器。

    参数：
    - config：runner 配置（project_root / cache / download）
    - http_client：可选，注入 `httpx.Client`（测试可用 `httpx.MockTransport`）；为 None 时每次下载临时创建
    """

    def __init__(self, config: RunnerConfig, *, http_client: Optional[httpx.Client] = None) -> None:
        self._config = config
        self._http_client = http_client

    @property
    def cache_dir(self) -> Path:
        return self._config.cache_dir()

    def cache_path(self, url: str) -> Path:
        """返回 URL 对应的 cache 路径（不做任何 I/O）。"""

        return cache_path_for(cache_dir=self.cache_dir, url=url, extension=self._config.cache.extension)

    def resolve(self, source: Optional[str] = None) -> Path:
        """
        解析 server jar 并返回本地文件路径。

        参数：
        - source：来源串；为 None 时使用 `config.jar_url`

        异常：
        - DownloadFailedError：远端下载失败（不会留下 cache 文件）
        - SourceNotFoundError：本地路径不存在
        """

        parsed = ArtifactSource.parse(self._config.jar_url if source is None else source)
        if parsed.is_remote:
            return self._resolve_remote(parsed.value)
        return self._resolve_local(parsed.value)

    def _resolve_local(self, raw: str) -> Path:
        path = self._config.resolve_path(raw)
        if not path.exists():
            raise SourceNotFoundError(path=path)
        logger.info("Using local server jar: %s", path)
        return path

    def _resolve_remote(self, url: str) -> Path:
        cached = self.cache_path(url)
        if cached.is_file():
            logger.info("Using cached server jar: %s", cached)
            return cached

        logger.info("Downloading server jar from %s", url)
        try:
            # 并发调用可能同时创建目录；exist_ok 使其幂等
            cached.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadFailedError(url=url, cause=e) from e

        self._download_to(url=url, target=cached)
        logger.info("Server jar downloaded and cached: %s", cached)
        return cached

    def _download_to(self, *, url: str, target: Path) -> None:
        """
        流式下载到临时文件，完成后原子替换到 target。

        说明：
        - 临时文件与 target 同目录，保证 `os.replace` 为同文件系统 rename；
        - 多个进程并发下载同一 URL 时，各自写各自的临时文件，最后落盘者生效（内容等价）。
        """

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".tmp.{target.stem[:16]}.", suffix=".part", dir=str(target.parent))
        except OSError as e:
            raise DownloadFailedError(url=url, cause=e) from e
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                self._stream_into(url=url, out=out)
            os.replace(tmp_path, target)
        except (httpx.HTTPError, httpx.StreamError, httpx.InvalidURL, OSError) as e:
            raise DownloadFailedError(url=url, cause=e) from e
        finally:
            # replace 成功后 tmp 已不存在；失败时清理残留
            if tmp_path.exists():
                tmp_path.unlink()

    def _stream_into(self, *, url: str, out: IO[bytes]) -> None:
        dl = self._config.download
        if self._http_client is not None:
            self._copy_response(self._http_client, url=url, out=out)
            return
        with httpx.Client(timeout=httpx.Timeout(dl.timeout_sec), follow_redirects=dl.follow_redirects) as client:
            self._copy_response(client, url=url, out=out)

    def _copy_response(self, client: httpx.Client, *, url: str, out: IO[bytes]) -> None:
        with client.stream("GET", url) as resp:
            resp.raise_for_status()
            for chunk in resp.iter_bytes(chunk_size=self._config.download.chunk_size):
                out.write(chunk)
