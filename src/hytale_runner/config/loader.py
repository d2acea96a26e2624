"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
- 配置对象在一次调用内构造一次，随后显式注入 resolver/stager/supervisor（不读取隐式全局状态）。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

SUPPORTED_CONFIG_VERSION = 1


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    - list：整体覆盖（不做去重/拼接）
    """

    for key, overlay_value in overlay.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(overlay_value, Mapping)
        ):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class RunnerCacheConfig(BaseModel):
    """
    server jar 下载缓存。

    说明：
    - 缓存目录为 `<project_root>/<root>/<dir_name>`；
    - 文件名为 `sha256(url) + extension`，按 URL（而非内容）寻址，永不自动失效。
    """

    model_config = ConfigDict(extra="forbid")

    root: str = Field(default="build")
    dir_name: str = Field(default="hytale-cache")
    extension: str = Field(default=".jar")

    @field_validator("extension")
    @classmethod
    def _validate_extension(cls, value: str) -> str:
        """扩展名必须以 `.` 开头。"""

        if not value.startswith("."):
            raise ValueError("cache.extension must start with '.'")
        return value


class RunnerDownloadConfig(BaseModel):
    """远端下载参数。"""

    model_config = ConfigDict(extra="forbid")

    timeout_sec: float = Field(default=60.0, gt=0)
    follow_redirects: bool = True
    chunk_size: int = Field(default=64 * 1024, ge=1)


class RunnerLaunchConfig(BaseModel):
    """
    子进程启动参数。

    说明：
    - argv 形如 `java [jvm_args] [debug flag] [extra] -jar server.jar [server_args]`；
    - 可选 flag 必须位于 `-jar <binary>` 之前（java 的参数语法）。
    """

    model_config = ConfigDict(extra="forbid")

    java_executable: str = Field(default="java", min_length=1)
    jvm_args: List[str] = Field(default_factory=list)
    server_args: List[str] = Field(default_factory=list)
    debug: bool = False
    debug_port: int = Field(default=5005, ge=1, le=65535)


class RunnerConfig(BaseModel):
    """runner 配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=SUPPORTED_CONFIG_VERSION, ge=1)
    jar_url: str = Field(default="libs/HytaleServer.jar", min_length=1)
    project_root: str = Field(default=".")
    plugin_artifact: Optional[str] = None
    run_dir: str = Field(default="run", min_length=1)
    plugins_dir_name: str = Field(default="plugins", min_length=1)
    server_binary_name: str = Field(default="server.jar", min_length=1)
    cache: RunnerCacheConfig = Field(default_factory=RunnerCacheConfig)
    download: RunnerDownloadConfig = Field(default_factory=RunnerDownloadConfig)
    launch: RunnerLaunchConfig = Field(default_factory=RunnerLaunchConfig)

    @field_validator("config_version")
    @classmethod
    def _validate_config_version(cls, value: int) -> int:
        if value != SUPPORTED_CONFIG_VERSION:
            raise ValueError(f"unsupported config_version: {value} (expected {SUPPORTED_CONFIG_VERSION})")
        return value

    def project_root_path(self) -> Path:
        """项目根目录（绝对路径）。"""

        return Path(self.project_root).expanduser().resolve()

    def resolve_path(self, raw: str) -> Path:
        """将相对路径解析到项目根目录下；绝对路径原样 resolve。"""

        p = Path(raw).expanduser()
        if p.is_absolute():
            return p.resolve()
        return (self.project_root_path() / p).resolve()

    def cache_dir(self) -> Path:
        """下载缓存目录。"""

        return self.resolve_path(self.cache.root) / self.cache.dir_name

    def run_dir_path(self) -> Path:
        """运行目录（子进程 cwd）。"""

        return self.resolve_path(self.run_dir)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise FileNotFoundError(f"配置文件不存在：{path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"配置文件 YAML 解析失败：{path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"配置文件根节点必须为 mapping(dict)：{path}")
    return data


def load_config_dicts(config_dicts: list[Dict[str, Any]]) -> RunnerConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `RunnerConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return RunnerConfig.model_validate(merged)


def load_config(config_paths: list[Path]) -> RunnerConfig:
    """
    加载并合并多个配置文件，返回校验后的 `RunnerConfig`。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    overlays: list[Dict[str, Any]] = []
    for path in config_paths:
        overlays.append(_load_yaml_file(Path(path)))
    return load_config_dicts(overlays)
