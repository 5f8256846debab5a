"""
Harness Runner SDK（Python）。

说明：
- 本包提供测试 harness 使用的子进程执行引擎：启动单个测试产物、强制 wall-clock 超时、
  把标准 stream 重定向到文件、注入替换环境，并通过并发安全的 sink 输出诊断信息。
- 当前包含：
  - RunSettings（pydantic 校验）与 ExecutionResult（唯一结局 + 整数 status）
  - Redirection Manager / Launcher / Timeout Supervisor
  - DiagnosticSink / DiagnosticLogger（lock-write-flush-unlock；失败静默）
  - 平台能力（POSIX 进程组 / Windows 进程组 + token 特权）
  - 配置加载器（YAML overlay + pydantic 校验）与 CLI
"""

from __future__ import annotations

from harness_runner.core.diagnostics import DiagnosticLogger, DiagnosticSink
from harness_runner.core.errors import PrivilegeNotFoundError, RunnerError, RunSetupError, RunSpawnError
from harness_runner.core.privilege import drop_privilege
from harness_runner.core.results import (
    EXCEPTION_STATUS,
    SPAWN_FAILURE_STATUS,
    TIMEOUT_STATUS,
    ExecutionResult,
)
from harness_runner.core.runner import run, run_command
from harness_runner.core.settings import LogWriter, RunSettings

__all__ = [
    "DiagnosticLogger",
    "DiagnosticSink",
    "EXCEPTION_STATUS",
    "ExecutionResult",
    "LogWriter",
    "PrivilegeNotFoundError",
    "RunSettings",
    "RunSetupError",
    "RunSpawnError",
    "RunnerError",
    "SPAWN_FAILURE_STATUS",
    "TIMEOUT_STATUS",
    "drop_privilege",
    "run",
    "run_command",
    "__version__",
]

__version__ = "0.1.0"
