"""
Timeout Supervisor：在子进程退出与 deadline 之间二选一，并保证子进程不会活过本次调用。

状态机：
- Running -> Completed：子进程先退出（报告真实退出码 / 终止信号）
- Running -> TimedOut：deadline 先到（强制终止子进程及其进程组；报告 `TIMEOUT_STATUS`）
- spawn 失败不进入该状态机（由 runner 直接返回 spawn_failed）。
"""

from __future__ import annotations

import subprocess
import time
from typing import Optional

from harness_runner.core.diagnostics import DiagnosticLogger
from harness_runner.core.results import ExecutionResult, signal_name
from harness_runner.platform.base import ProcessPlatform


class ChildProcess:
    """
    子进程的 scoped handle（上下文管理器）。

    说明：
    - 退出上下文时无论成功/超时/异常，都会执行“存活则终止，然后 reap”；
    - terminate() 幂等：对已退出的子进程是 no-op。
    """

    def __init__(self, proc: subprocess.Popen, *, platform: ProcessPlatform, grace_sec: float) -> None:
        """
        绑定 Popen 句柄与平台能力。

        参数：
        - proc：存活的子进程
        - platform：平台能力（负责整组终止）
        - grace_sec：SIGTERM→SIGKILL 的宽限秒数
        """

        self.proc = proc
        self._platform = platform
        self._grace_sec = grace_sec
        self._started = time.monotonic()

    @property
    def pid(self) -> int:
        """子进程 pid。"""

        return int(self.proc.pid)

    def elapsed_ms(self) -> int:
        """自 spawn 以来的耗时（毫秒）。"""

        return int((time.monotonic() - self._started) * 1000)

    def wait(self, timeout_sec: Optional[float]) -> Optional[int]:
        """
        等待子进程退出。

        返回：
        - returncode；若在 timeout_sec 内未退出返回 None（timeout_sec=None 表示无限等待）
        """

        try:
            return self.proc.wait(timeout=timeout_sec)
        except subprocess.TimeoutExpired:
            return None

    def terminate(self) -> None:
        """强制终止子进程（及平台可追踪的后代）；已退出时为 no-op。"""

        self._platform.terminate_tree(self.proc, grace_sec=self._grace_sec)

    def close(self) -> None:
        """存活则终止，然后 reap（可重复调用）。"""

        if self.proc.poll() is None:
            self.terminate()
        self.proc.wait()

    def __enter__(self) -> "ChildProcess":
        """上下文管理器入口：返回 self。"""
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        """上下文管理器退出：确保子进程已终止并被 reap。"""
        self.close()


def supervise(child: ChildProcess, *, timeout_sec: int, diagnostics: DiagnosticLogger, windows: bool) -> ExecutionResult:
    """
    监督子进程直到退出或超时。

    参数：
    - child：子进程 handle
    - timeout_sec：整数秒；0 表示无限等待
    - diagnostics：诊断日志
    - windows：是否按 Windows 语义解释 returncode

    返回：
    - ExecutionResult（exited/signaled/exception/timed_out 之一）
    """

    returncode = child.wait(timeout_sec if timeout_sec > 0 else None)
    if returncode is None:
        diagnostics.log("Timeout expired, killing all child processes")
        child.terminate()
        child.proc.wait()
        return ExecutionResult(kind="timed_out", pid=child.pid, duration_ms=child.elapsed_ms())

    result = ExecutionResult.from_returncode(
        returncode, pid=child.pid, duration_ms=child.elapsed_ms(), windows=windows
    )
    if result.kind == "signaled" and result.signal is not None:
        diagnostics.log("Process %d got signal %d(%s)", child.pid, result.signal, signal_name(result.signal))
    elif result.kind == "exception":
        diagnostics.log("Process %d terminated with exception code 0x%08X", child.pid, result.exception_code)
    return result
