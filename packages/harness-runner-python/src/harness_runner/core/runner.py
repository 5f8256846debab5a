"""
Runner：一次同步、有超时上限的子进程执行（对外边界 `run` / `run_command`）。

流程：
1) Redirection Manager 打开重定向目标（失败 -> RunSetupError，子进程从未创建）
2) Launcher spawn（失败 -> spawn_failed 结局，无需终止逻辑）
3) Supervisor 等待退出或 deadline（超时 -> 强制终止）
4) 无论哪条路径，`ChildProcess` 退出时都会“存活则终止 + reap”
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from harness_runner.config.loader import RunnerConfig
from harness_runner.core.diagnostics import DiagnosticLogger
from harness_runner.core.errors import RunSpawnError
from harness_runner.core.launcher import spawn
from harness_runner.core.redirection import open_redirections
from harness_runner.core.results import ExecutionResult
from harness_runner.core.settings import RunSettings
from harness_runner.core.supervisor import ChildProcess, supervise
from harness_runner.platform import ProcessPlatform, current_platform

logger = logging.getLogger(__name__)


def run_command(
    settings: RunSettings,
    *,
    config: Optional[RunnerConfig] = None,
    platform: Optional[ProcessPlatform] = None,
) -> ExecutionResult:
    """
    执行一次 run 并返回结构化结局。

    参数：
    - settings：本次 run 的 settings
    - config：runner 配置（缺省使用内置默认值；只读取 supervisor 相关字段）
    - platform：平台能力（缺省按当前 OS 选择；用于测试注入）

    返回：
    - ExecutionResult：exited/signaled/exception/timed_out/spawn_failed 之一

    异常：
    - RunSetupError：重定向目标无法打开（spawn 之前抛出）
    """

    cfg = config or RunnerConfig()
    plat = platform or current_platform()
    diagnostics = DiagnosticLogger(settings.logger)
    grace_sec = cfg.supervisor.terminate_grace_ms / 1000.0

    started = time.monotonic()
    with open_redirections(settings) as redirections:
        try:
            proc = spawn(settings, redirections, platform=plat)
        except RunSpawnError as exc:
            diagnostics.log("Failure to execute %s: %s", settings.program, exc.details.get("reason"))
            logger.debug("spawn failed: %s", exc)
            return ExecutionResult(
                kind="spawn_failed",
                duration_ms=int((time.monotonic() - started) * 1000),
                error=exc.message,
            )

    with ChildProcess(proc, platform=plat, grace_sec=grace_sec) as child:
        return supervise(child, timeout_sec=settings.timeout_sec, diagnostics=diagnostics, windows=plat.windows)


def run(settings: RunSettings) -> int:
    """
    执行一次 run 并返回整数 status（约定见 `harness_runner.core.results`）。

    异常：
    - RunSetupError：重定向目标无法打开（子进程从未创建）
    """

    return run_command(settings).status
