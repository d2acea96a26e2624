"""
hytale-runner CLI（run/resolve/cache-path）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- `run` 的 stdout 由 server 输出占用；错误以 JSON 写到 stderr
- `resolve` / `cache-path` 的 stdout 输出机器可读 JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from pydantic import ValidationError

from hytale_runner.artifacts.resolver import ArtifactSource, cache_key
from hytale_runner.bootstrap import ResolvedConfig, resolve_effective_config
from hytale_runner.core.errors import RunnerError, RunnerIssue
from hytale_runner.runner import ServerRunner, exit_status_for

logger = logging.getLogger(__name__)

EXIT_CONFIG_INVALID = 2
EXIT_RUNNER_ERROR = 3


def _dump_json(obj: Dict[str, Any], *, pretty: bool, stream: Optional[TextIO] = None) -> None:
    """
    将 dict 输出为 JSON（末尾包含换行）。

    参数：
    - obj：待输出对象（必须可 JSON dumps）
    - pretty：是否启用 pretty-print（indent=2）
    - stream：输出流（默认 stdout）
    """

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    print(text, file=stream or sys.stdout)


def _issue_to_jsonable(issue: RunnerIssue) -> Dict[str, Any]:
    return {"code": issue.code, "message": issue.message, "details": dict(issue.details)}


def _report_issue(issue: RunnerIssue, *, pretty: bool) -> None:
    _dump_json({"issues": [_issue_to_jsonable(issue)]}, pretty=pretty, stream=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    """构建 CLI argparse parser。"""

    parser = argparse.ArgumentParser(
        prog="hytale-runner",
        description="Download, stage and run a local Hytale server with your plugin.",
    )
    root_sub = parser.add_subparsers(dest="command", required=True)

    def _add_common_flags(p: argparse.ArgumentParser) -> None:
        """为子命令添加公共 flags。"""

        p.add_argument("--project-root", default=".", help="Project root directory (default: .)")
        p.add_argument("--config", action="append", default=None, help="Overlay config YAML path (repeatable).")
        p.add_argument("--jar-url", default=None, help="Server jar URL (http/https) or path relative to project root.")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
        p.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")

    run = root_sub.add_parser("run", help="Resolve, stage and run the server")
    _add_common_flags(run)
    run.add_argument("--plugin", default=None, help="Plugin jar to copy into run/plugins/.")
    run.add_argument("--debug", action="store_true", default=None, help="Enable JDWP remote debugging.")
    run.add_argument("--debug-port", type=int, default=None, help="JDWP listen port (default: 5005).")
    run.add_argument("extra_args", nargs=argparse.REMAINDER, help="Extra JVM flags placed before -jar; use `--` first.")

    resolve = root_sub.add_parser("resolve", help="Resolve (and cache) the server jar only")
    _add_common_flags(resolve)

    cache_path = root_sub.add_parser("cache-path", help="Print the cache path a URL maps to (no network)")
    _add_common_flags(cache_path)

    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """把命令行参数转换为与配置同结构的覆盖项（仅显式给出的字段）。"""

    out: Dict[str, Any] = {}
    if args.jar_url:
        out["jar_url"] = str(args.jar_url)
    if getattr(args, "plugin", None):
        out["plugin_artifact"] = str(args.plugin)
    launch: Dict[str, Any] = {}
    if getattr(args, "debug", None):
        launch["debug"] = True
    if getattr(args, "debug_port", None) is not None:
        launch["debug_port"] = int(args.debug_port)
    if launch:
        out["launch"] = launch
    return out


def _load(args: argparse.Namespace) -> Optional[ResolvedConfig]:
    """加载有效配置；失败时输出 JSON issue 并返回 None。"""

    project_root = Path(str(args.project_root)).expanduser().resolve()
    config_paths: Optional[List[Path]] = None
    if args.config:
        config_paths = [Path(str(p)).expanduser() for p in args.config]
    try:
        return resolve_effective_config(
            project_root=project_root,
            config_paths=config_paths,
            cli_overrides=_cli_overrides(args),
        )
    except (OSError, ValueError, ValidationError) as exc:
        # pydantic.ValidationError 是 ValueError 子类；此处显式列出便于阅读
        _report_issue(
            RunnerIssue(
                code="CONFIG_INVALID",
                message="Runner configuration is invalid.",
                details={"project_root": str(project_root), "reason": str(exc)},
            ),
            pretty=bool(args.pretty),
        )
        return None


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="[%(levelname)s] %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _handle_run(args: argparse.Namespace) -> int:
    resolved = _load(args)
    if resolved is None:
        return EXIT_CONFIG_INVALID

    extra = list(args.extra_args or [])
    if extra and extra[0] == "--":
        extra = extra[1:]
    runner = ServerRunner(resolved.config)
    try:
        code = runner.run(extra_args=extra)
    except RunnerError as exc:
        logger.error("%s", exc)
        _report_issue(exc.to_issue(), pretty=bool(args.pretty))
        return EXIT_RUNNER_ERROR
    print(f"Server exited with code {code}")
    return exit_status_for(code)


def _handle_resolve(args: argparse.Namespace) -> int:
    resolved = _load(args)
    if resolved is None:
        return EXIT_CONFIG_INVALID

    cfg = resolved.config
    runner = ServerRunner(cfg)
    try:
        path = runner.resolver.resolve()
    except RunnerError as exc:
        _report_issue(exc.to_issue(), pretty=bool(args.pretty))
        return EXIT_RUNNER_ERROR

    source = ArtifactSource.parse(cfg.jar_url)
    _dump_json(
        {
            "source": source.value,
            "kind": source.kind,
            "path": str(path),
            "cache_key": cache_key(source.value) if source.is_remote else None,
            "sources": {k: v for k, v in resolved.sources.items() if k == "jar_url"},
        },
        pretty=bool(args.pretty),
    )
    return 0


def _handle_cache_path(args: argparse.Namespace) -> int:
    resolved = _load(args)
    if resolved is None:
        return EXIT_CONFIG_INVALID

    cfg = resolved.config
    source = ArtifactSource.parse(cfg.jar_url)
    if not source.is_remote:
        _report_issue(
            RunnerIssue(
                code="CACHE_NOT_APPLICABLE",
                message="Only http/https sources are cached.",
                details={"jar_url": cfg.jar_url},
            ),
            pretty=bool(args.pretty),
        )
        return EXIT_CONFIG_INVALID

    runner = ServerRunner(cfg)
    cached = runner.resolver.cache_path(source.value)
    _dump_json(
        {"url": source.value, "cache_key": cache_key(source.value), "path": str(cached), "cached": cached.is_file()},
        pretty=bool(args.pretty),
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 入口函数（用于 console_scripts 与测试）。

    参数：
    - argv：命令行参数列表（不含程序名）；为 None 时读取 sys.argv[1:]。

    返回：
    - int：exit code（不会直接 sys.exit，便于测试）。
    """

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        # argparse 的约定：`--help` → 0；参数错误 → 2
        code = getattr(exc, "code", 2)
        if code is None:
            return 2
        return int(code)

    _configure_logging(str(args.log_level))

    if args.command == "run":
        return _handle_run(args)
    if args.command == "resolve":
        return _handle_resolve(args)
    if args.command == "cache-path":
        return _handle_cache_path(args)

    _report_issue(
        RunnerIssue(code="CLI_COMMAND_INVALID", message="Unknown command.", details={"command": args.command}),
        pretty=bool(getattr(args, "pretty", False)),
    )
    return 2


def main_entry() -> None:  # pragma: no cover
    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
