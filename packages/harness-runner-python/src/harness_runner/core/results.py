"""
ExecutionResult：一次 run 的唯一结局（结构化）+ 整数 status 约定。

status 约定（与任何正常退出码、任何信号指示值都不相交）：
- exited：N（>= 0；Windows 上可能是任意 32 位无符号值）
- signaled：-S（POSIX 信号编号取负，范围 -1..-127）
- exception：`EXCEPTION_STATUS`（Windows NTSTATUS 异常终止）
- timed_out：`TIMEOUT_STATUS`
- spawn_failed：`SPAWN_FAILURE_STATUS`
"""

from __future__ import annotations

import signal as _signal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

EXCEPTION_STATUS = -1000
TIMEOUT_STATUS = -1001
SPAWN_FAILURE_STATUS = -1002

# NTSTATUS 的 severity=ERROR 区间（0xC0000000 起）视为异常终止
_NTSTATUS_ERROR_MIN = 0xC0000000

ResultKind = Literal["exited", "signaled", "exception", "timed_out", "spawn_failed"]


def signal_name(signum: int) -> str:
    """返回信号名（例如 SIGKILL）；未知编号返回 `signal <n>`。"""

    try:
        return _signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


class ExecutionResult(BaseModel):
    """
    run 结局（exactly one kind per call）。

    字段说明：
    - kind：结局分类（exited/signaled/exception/timed_out/spawn_failed）
    - exit_code：正常退出码（仅 exited）
    - signal：终止信号编号（仅 signaled）
    - exception_code：Windows 异常终止码（仅 exception）
    - pid：子进程 pid（spawn_failed 时为 None）
    - duration_ms：从 spawn 到结局的耗时（毫秒）
    - error：spawn 失败原因（仅 spawn_failed）
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ResultKind
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    exception_code: Optional[int] = None
    pid: Optional[int] = None
    duration_ms: int = Field(default=0, ge=0)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """是否以退出码 0 正常结束。"""

        return self.kind == "exited" and self.exit_code == 0

    @property
    def status(self) -> int:
        """把结局折叠为单个整数 status（见模块说明）。"""

        if self.kind == "exited":
            return int(self.exit_code or 0)
        if self.kind == "signaled":
            return -int(self.signal or 0)
        if self.kind == "exception":
            return EXCEPTION_STATUS
        if self.kind == "timed_out":
            return TIMEOUT_STATUS
        return SPAWN_FAILURE_STATUS

    @classmethod
    def from_returncode(cls, returncode: int, *, pid: Optional[int], duration_ms: int, windows: bool) -> "ExecutionResult":
        """
        按 `Popen.returncode` 分类结局。

        规则：
        - POSIX：负值表示被信号终止（subprocess 约定 -S）；
        - Windows：NTSTATUS 错误区间视为异常终止，其余为正常退出码。
        """

        if windows:
            code = returncode & 0xFFFFFFFF
            if code >= _NTSTATUS_ERROR_MIN:
                return cls(kind="exception", exception_code=code, pid=pid, duration_ms=duration_ms)
            return cls(kind="exited", exit_code=code, pid=pid, duration_ms=duration_ms)
        if returncode < 0:
            return cls(kind="signaled", signal=-returncode, pid=pid, duration_ms=duration_ms)
        return cls(kind="exited", exit_code=returncode, pid=pid, duration_ms=duration_ms)

    def to_json_dict(self) -> dict:
        """输出给 CLI 的 JSON dict（附带 ok/status 派生字段）。"""

        data = self.model_dump(exclude_none=True)
        data["ok"] = self.ok
        data["status"] = self.status
        return data
