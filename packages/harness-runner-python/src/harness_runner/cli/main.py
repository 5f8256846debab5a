"""
Harness Runner CLI（run / drop-privilege）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- stdout 输出机器可读 JSON；失败时也输出 JSON
- exit code：0=子进程以 0 退出；1=其它 run 结局（非 0 退出/信号/超时/spawn 失败）；
  2=参数/配置/准备阶段错误
"""

from __future__ import annotations

import argparse
import json
import os
import shutil
import sys
from contextlib import ExitStack
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

from harness_runner.config.loader import RunnerConfig, load_config
from harness_runner.core.diagnostics import DiagnosticSink
from harness_runner.core.errors import RunnerError, RunnerIssue
from harness_runner.core.privilege import drop_privilege
from harness_runner.core.runner import run_command
from harness_runner.core.settings import RunSettings


def _dump_json_to_stdout(obj: Dict[str, Any], *, pretty: bool) -> None:
    """
    将 dict 输出为 JSON 到 stdout（末尾包含换行）。

    参数：
    - obj：待输出对象（必须可 JSON dumps）
    - pretty：是否启用 pretty-print（indent=2）
    """

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2, default=str)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)
    print(text)


def _error_payload(issue: RunnerIssue) -> Dict[str, Any]:
    """把结构化问题包装为 CLI 错误输出。"""

    return {"ok": False, "error": asdict(issue)}


def _ensure_utf8_stdio() -> None:
    """best-effort 把 stdout/stderr reconfigure 为 UTF-8（`C` locale 下避免 UnicodeEncodeError）。"""

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if not callable(reconfigure):
            continue
        try:
            reconfigure(encoding="utf-8", errors="replace")
        except (OSError, ValueError):
            continue


def _build_parser() -> argparse.ArgumentParser:
    """构建 CLI argparse parser。"""

    parser = argparse.ArgumentParser(
        prog="harness-runner",
        description="Harness Runner CLI（run / drop-privilege）。",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run one program with timeout and stream redirection")
    run_p.add_argument("--config", action="append", default=[], help="Overlay config YAML path (repeatable).")
    run_p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    run_p.add_argument("--stdin", dest="stdin_path", default=None, help="Stdin source file (must exist).")
    run_p.add_argument("--stdout", dest="stdout_path", default=None, help="Stdout target file.")
    run_p.add_argument("--stderr", dest="stderr_path", default=None, help="Stderr target file.")
    run_p.add_argument("--append", action="store_true", default=None, help="Append to stdout/stderr files.")
    run_p.add_argument("--timeout-sec", type=int, default=None, help="Timeout in whole seconds (0 = unlimited).")
    run_p.add_argument("--env", action="append", default=[], help="KEY=VALUE for the child environment (repeatable).")
    run_p.add_argument("--inherit-env", action="store_true", help="Start from the current environment instead of an empty one.")
    run_p.add_argument("--cwd", default=None, help="Working directory of the child.")
    run_p.add_argument("--log-file", default=None, help="Diagnostic sink file (default: config or stderr).")
    run_p.add_argument("argv", nargs=argparse.REMAINDER, help="Program and arguments; use `--` before argv.")

    priv_p = sub.add_parser("drop-privilege", help="Remove a privilege from the current process token")
    priv_p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    priv_p.add_argument("name", help="Privilege name (e.g. SeCreateSymbolicLinkPrivilege).")

    return parser


def _child_envp(args: argparse.Namespace) -> List[str]:
    """组装子进程的替换环境（`--inherit-env` 时以当前环境为底）。"""

    envp: List[str] = []
    if args.inherit_env:
        envp.extend(f"{k}={v}" for k, v in os.environ.items())
    envp.extend(args.env)
    return envp


def _resolve_program(name: str) -> str:
    """不含路径分隔符的程序名按调用方 PATH 解析；解析不到则原样返回（由 spawn 报错）。"""

    if os.sep in name or (os.altsep and os.altsep in name):
        return name
    return shutil.which(name) or name


def _handle_run(args: argparse.Namespace) -> int:
    """执行 `run` 子命令。"""

    argv = list(args.argv)
    if argv and argv[0] == "--":
        argv = argv[1:]
    if not argv:
        _dump_json_to_stdout(
            _error_payload(RunnerIssue(code="CLI_ARGV_MISSING", message="Program argv is required.", details={})),
            pretty=args.pretty,
        )
        return 2

    try:
        config: RunnerConfig = load_config(args.config)
    except RunnerError as exc:
        _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=args.pretty)
        return 2

    log_path = args.log_file or config.diagnostics.log_path
    with ExitStack() as stack:
        if log_path:
            try:
                sink = stack.enter_context(DiagnosticSink.open(log_path, encoding=config.diagnostics.encoding))
            except OSError as exc:
                issue = RunnerIssue(
                    code="CLI_LOG_FILE_OPEN_FAILED",
                    message="Diagnostic log file cannot be opened.",
                    details={"path": str(log_path), "reason": str(exc)},
                )
                _dump_json_to_stdout(_error_payload(issue), pretty=args.pretty)
                return 2
        else:
            sink = DiagnosticSink(sys.stderr)

        try:
            settings = RunSettings.from_mapping(
                {
                    "program": _resolve_program(argv[0]),
                    "argv": argv,
                    "envp": _child_envp(args),
                    "stdin_path": args.stdin_path,
                    "stdout_path": args.stdout_path,
                    "stderr_path": args.stderr_path,
                    "append": config.run.append if args.append is None else True,
                    "timeout_sec": config.run.timeout_sec if args.timeout_sec is None else args.timeout_sec,
                    "logger": sink,
                    "cwd": args.cwd,
                }
            )
            result = run_command(settings, config=config)
        except RunnerError as exc:
            _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=args.pretty)
            return 2

    _dump_json_to_stdout(result.to_json_dict(), pretty=args.pretty)
    return 0 if result.ok else 1


def _handle_drop_privilege(args: argparse.Namespace) -> int:
    """执行 `drop-privilege` 子命令。"""

    try:
        drop_privilege(args.name)
    except RunnerError as exc:
        _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=args.pretty)
        return 2
    _dump_json_to_stdout({"ok": True, "privilege": args.name}, pretty=args.pretty)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 入口函数（用于 console_scripts 与测试）。

    参数：
    - argv：命令行参数列表（不含程序名）；为 None 时读取 sys.argv[1:]。

    返回：
    - int：exit code（不会直接 sys.exit，便于测试）。
    """

    _ensure_utf8_stdio()

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        # argparse 约定：`--help` 为 0，参数错误为 2
        code = getattr(exc, "code", 2)
        if code is None:
            return 2
        return int(code)

    if args.command == "run":
        return _handle_run(args)
    if args.command == "drop-privilege":
        return _handle_drop_privilege(args)
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
