"""
Runner 最小运行示例。

用途：
- 演示如何用 overlay 配置加载 runner 配置；
- 演示如何把诊断信息写入共享 sink；
- 演示如何读取结构化结局与整数 status。
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from harness_runner import DiagnosticSink, RunSettings, run_command
from harness_runner.config.loader import load_config


def main() -> int:
    """
    示例脚本入口。

    命令行参数：
    - --config：overlay 路径（可重复）；
    - --timeout-sec：超时秒数；
    - --stdout：stdout 目标文件。
    """

    parser = argparse.ArgumentParser(description="Run minimal harness-runner demo")
    parser.add_argument("--config", action="append", default=[], help="Overlay YAML path (repeatable)")
    parser.add_argument("--timeout-sec", type=int, default=2, help="Timeout in seconds")
    parser.add_argument("--stdout", default="demo-out.txt", help="Stdout target file")
    args = parser.parse_args()

    config = load_config([Path(p).expanduser().resolve() for p in args.config])
    settings = RunSettings(
        program=sys.executable,
        argv=[sys.executable, "-c", "import time; print('started', flush=True); time.sleep(10)"],
        stdout_path=args.stdout,
        timeout_sec=args.timeout_sec,
        logger=DiagnosticSink(sys.stderr),
    )

    result = run_command(settings, config=config)
    print(f"[demo] kind={result.kind} status={result.status} duration_ms={result.duration_ms}")
    print(f"[demo] stdout file: {Path(args.stdout).read_text(encoding='utf-8')!r}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
