"""
WorkspaceStager：把 server jar 与插件产物布置到 `run/` 目录。

布局：
- `run/server.jar`：每次启动覆盖
- `run/plugins/<插件文件名>`：每次启动覆盖

说明：
- 插件产物由外部构建提供（调用方保证已构建完成后传入路径）；缺失时只记录 warning，不阻断启动；
- 仅在不可恢复的文件系统错误（权限、磁盘满）时抛出 `CopyFailedError`。
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from hytale_runner.config.loader import RunnerConfig
from hytale_runner.core.errors import CopyFailedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunWorkspace:
    """一次调用独占的 run 目录。"""

    root: Path
    plugins_dir: Path
    server_binary: Path
    plugin_path: Optional[Path] = None
    warnings: list[str] = field(default_factory=list)


def _copy_file(src: Path, dst: Path) -> None:
    try:
        shutil.copyfile(src, dst)
    except OSError as e:
        raise CopyFailedError(path=dst, cause=e) from e


class WorkspaceStager:
    """run 目录布置器。"""

    def __init__(self, config: RunnerConfig) -> None:
        self._config = config

    def stage(self, server_binary: Path, plugin_artifact: Optional[Path] = None) -> RunWorkspace:
        """
        布置 run 目录（幂等：缺失目录创建，已有文件覆盖）。

        参数：
        - server_binary：已解析的 server jar 路径
        - plugin_artifact：插件产物路径（可选）

        返回：
        - RunWorkspace：包含 root/plugins_dir/server_binary/plugin_path/warnings
        """

        root = self._config.run_dir_path()
        plugins_dir = root / self._config.plugins_dir_name
        for d in (root, plugins_dir):
            try:
                d.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CopyFailedError(path=d, cause=e) from e

        target = root / self._config.server_binary_name
        _copy_file(Path(server_binary), target)

        warnings: list[str] = []
        plugin_path: Optional[Path] = None
        if plugin_artifact is None:
            warnings.append("plugin artifact not provided; starting bare server")
        elif not Path(plugin_artifact).is_file():
            warnings.append(f"plugin artifact not found: {plugin_artifact}")
        else:
            src = Path(plugin_artifact)
            plugin_path = plugins_dir / src.name
            _copy_file(src, plugin_path)
            logger.info("Plugin copied to: %s", plugin_path)

        for w in warnings:
            logger.warning("%s", w)

        return RunWorkspace(
            root=root,
            plugins_dir=plugins_dir,
            server_binary=target,
            plugin_path=plugin_path,
            warnings=warnings,
        )
