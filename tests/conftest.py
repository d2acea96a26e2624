from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

from hytale_runner.config.loader import RunnerConfig, load_config_dicts


def write_fake_java(path: Path, body: str) -> Path:
    """
    写一个可执行的 POSIX shell 脚本，充当 `java`。

    说明：
    - 脚本会收到 `[flags...] -jar server.jar` 参数，可用 `$@` 检查；
    - 测试只依赖 /bin/sh，不要求本机安装 JDK。
    """

    path.write_text("#!/bin/sh\n" + body.strip() + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., RunnerConfig]:
    """构造以 tmp_path 为 project_root 的 RunnerConfig（可传入 overlay dict）。"""

    def _make(overlay: Dict[str, Any] | None = None) -> RunnerConfig:
        base: Dict[str, Any] = {"project_root": str(tmp_path)}
        return load_config_dicts([base, overlay or {}])

    return _make


@pytest.fixture
def fake_java(tmp_path: Path) -> Callable[[str], Path]:
    bin_dir = tmp_path / "fakebin"
    bin_dir.mkdir(exist_ok=True)

    def _make(body: str, name: str = "java") -> Path:
        return write_fake_java(bin_dir / name, body)

    return _make


class CountingTransport:
    """
    记录请求次数的 httpx.MockTransport 包装。

    说明：
    - handler 返回 httpx.Response；requests 保存全部请求 URL，便于断言“是否联网”。
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[str] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        return self._handler(request)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=self.transport)


def serve_bytes(content: bytes) -> CountingTransport:
    return CountingTransport(lambda request: httpx.Response(200, content=content))


def no_network() -> httpx.Client:
    """任何请求都会让测试失败的 client。"""

    def _fail(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected network access: {request.url}")

    return httpx.Client(transport=httpx.MockTransport(_fail))


def skip_unless_posix() -> None:
    if os.name != "posix":  # pragma: no cover
        pytest.skip("fake java scripts require a POSIX shell")
