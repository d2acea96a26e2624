"""
Bootstrap Layer（配置发现/来源追踪）。

设计目标：
- runner 核心无隐式 I/O：resolver/stager/supervisor 只接收显式注入的 `RunnerConfig`
- 提供可选 bootstrap 入口：CLI 复用，统一 overlay 发现与优先级（cli > env > yaml > default）
"""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from hytale_runner.config.defaults import load_default_config_dict
from hytale_runner.config.loader import RunnerConfig, _load_yaml_file, load_config_dicts

ENV_CONFIG_PATHS = "HYTALE_RUNNER_CONFIG_PATHS"
ENV_JAR_URL = "HYTALE_RUNNER_JAR_URL"
ENV_DEBUG = "HYTALE_RUNNER_DEBUG"
ENV_PLUGIN = "HYTALE_RUNNER_PLUGIN"

_TRUTHY = {"1", "true", "yes", "on"}


def _get_env_nonempty(key: str, *, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    读取 env 并返回非空白字符串（否则视为未设置）。

    参数：
    - key：环境变量名
    """

    v = (os.environ if env is None else env).get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _split_paths(raw: str) -> list[str]:
    """将逗号/分号分隔的路径串切分为片段列表（去空白与空项，保序）。"""

    parts: list[str] = []
    for chunk in raw.replace(";", ",").split(","):
        s = chunk.strip()
        if s:
            parts.append(s)
    return parts


def discover_overlay_paths(*, project_root: Path, env: Optional[Mapping[str, str]] = None) -> list[Path]:
    """
    overlay 路径发现规则（固定，顺序稳定）：
    1) 默认 overlay：`<project_root>/config/runner.yaml`
    2) `HYTALE_RUNNER_CONFIG_PATHS`（逗号/分号分隔；相对路径相对 project_root）
    """

    root = Path(project_root).resolve()
    overlays: list[Path] = []

    default_overlay = (root / "config" / "runner.yaml").resolve()
    if default_overlay.exists():
        overlays.append(default_overlay)

    raw = _get_env_nonempty(ENV_CONFIG_PATHS, env=env) or ""
    for p in _split_paths(raw):
        pp = Path(p).expanduser()
        overlays.append(pp.resolve() if pp.is_absolute() else (root / pp).resolve())

    # 去重（按 canonical path；保序）
    seen: set[Path] = set()
    uniq: list[Path] = []
    for p in overlays:
        if p in seen:
            continue
        seen.add(p)
        uniq.append(p)
    return uniq


def _record_leaf_sources(value: Any, *, prefix: str, sources: Dict[str, str], label: str) -> None:
    """递归记录 mapping 的叶子字段来源（dotted path → label）。"""

    if isinstance(value, Mapping):
        for k, v in value.items():
            path = f"{prefix}.{k}" if prefix else str(k)
            _record_leaf_sources(v, prefix=path, sources=sources, label=label)
        return
    sources[prefix] = label


def _deep_merge_with_sources(
    base: Dict[str, Any],
    overlay: Mapping[str, Any],
    *,
    sources: Dict[str, str],
    label: str,
    prefix: str = "",
) -> None:
    """将 overlay 深度合并到 base，并同步写入叶子字段 sources。"""

    for key, overlay_value in overlay.items():
        k = str(key)
        path = f"{prefix}.{k}" if prefix else k

        if k in base and isinstance(base[k], dict) and isinstance(overlay_value, Mapping):
            _deep_merge_with_sources(base[k], overlay_value, sources=sources, label=label, prefix=path)
            continue

        base[k] = deepcopy(overlay_value)
        _record_leaf_sources(overlay_value, prefix=path, sources=sources, label=label)


@dataclass(frozen=True)
class ResolvedConfig:
    """bootstrap 解析后的有效配置（含来源追踪）。

    字段：
    - config：最终生效的 `RunnerConfig`
    - overlay_paths：参与合并的 overlay 文件路径列表
    - sources：叶子字段来源（例如 `jar_url` 来源于 env/cli/yaml）
    """

    config: RunnerConfig
    overlay_paths: list[Path] = field(default_factory=list)
    sources: Dict[str, str] = field(default_factory=dict)


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    """从环境变量提取覆盖项（仅已设置的非空值）。"""

    out: Dict[str, Any] = {}
    jar_url = _get_env_nonempty(ENV_JAR_URL, env=env)
    if jar_url is not None:
        out["jar_url"] = jar_url
    plugin = _get_env_nonempty(ENV_PLUGIN, env=env)
    if plugin is not None:
        out["plugin_artifact"] = plugin
    debug = _get_env_nonempty(ENV_DEBUG, env=env)
    if debug is not None:
        out["launch"] = {"debug": debug.lower() in _TRUTHY}
    return out


def resolve_effective_config(
    *,
    project_root: Path,
    config_paths: Optional[list[Path]] = None,
    cli_overrides: Optional[Mapping[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ResolvedConfig:
    """
    解析有效配置（cli > env > yaml > embedded default），并返回来源追踪。

    参数：
    - project_root：项目根目录（overlay 与相对路径的锚点）
    - config_paths：显式 overlay；为 None 时按 `discover_overlay_paths` 发现
    - cli_overrides：命令行覆盖项（与配置同结构的 mapping）
    - env：环境变量映射（默认 os.environ）
    """

    root = Path(project_root).resolve()
    effective_env: Mapping[str, str] = os.environ if env is None else env
    if config_paths is None:
        overlay_paths = discover_overlay_paths(project_root=root, env=effective_env)
    else:
        overlay_paths = [Path(p) if Path(p).is_absolute() else (root / p).resolve() for p in config_paths]

    entries: list[tuple[str, Dict[str, Any]]] = [("embedded_default", load_default_config_dict())]
    for p in overlay_paths:
        entries.append((f"overlay:{p}", _load_yaml_file(p)))
    env_overlay = _env_overrides(effective_env)
    if env_overlay:
        entries.append(("env", env_overlay))
    if cli_overrides:
        entries.append(("cli", dict(cli_overrides)))
    entries.append(("project_root", {"project_root": str(root)}))

    merged: Dict[str, Any] = {}
    sources: Dict[str, str] = {}
    for label, d in entries:
        _deep_merge_with_sources(merged, d, sources=sources, label=label)

    cfg = load_config_dicts([merged])
    return ResolvedConfig(config=cfg, overlay_paths=overlay_paths, sources=sources)
