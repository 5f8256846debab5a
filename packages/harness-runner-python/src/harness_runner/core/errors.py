"""
Runner 错误分类（异常类型）。

错误层级：
- `RunSetupError`：启动子进程之前发生的错误（重定向目标无法打开、stdin 不存在、特权名未知、settings 非法）；
  此时不存在任何子进程，无需清理。
- `RunSpawnError`：OS 拒绝创建子进程；同样不存在需要清理的子进程。
- 超时不是异常：它是 `ExecutionResult.kind == "timed_out"` 的正常结局。
- 日志失败永不向外传播（见 `harness_runner.core.diagnostics`）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class RunnerIssue:
    """结构化问题对象（用于 CLI JSON 输出）。"""

    code: str
    message: str
    details: Dict[str, Any]


class RunnerError(Exception):
    """Runner 结构化错误基类（英文 `code/message/details`）。"""

    def __init__(self, *, code: str, message: str, details: Dict[str, Any] | None = None) -> None:
        """创建 runner 错误。

        参数：
        - `code`：稳定错误码（英文大写下划线）
        - `message`：英文错误消息
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> RunnerIssue:
        """把异常转换为可序列化问题对象。"""

        return RunnerIssue(code=self.code, message=self.message, details=dict(self.details))


class RunSetupError(RunnerError):
    """启动前的准备错误（spawn 之前抛出，保证子进程从未被创建）。"""

    def __init__(self, message: str, *, code: str = "SETUP_ERROR", details: Dict[str, Any] | None = None) -> None:
        """创建 `RunSetupError`。

        参数：
        - `message`：可读错误信息
        - `code`：错误码（默认 `SETUP_ERROR`）
        - `details`：结构化补充信息（例如 stream/path/errno）
        """

        super().__init__(code=code, message=message, details=details or {})


class PrivilegeNotFoundError(RunSetupError, LookupError):
    """特权名在当前平台上无法识别（Windows `LookupPrivilegeValueW` 失败）。"""

    def __init__(self, name: str) -> None:
        """创建 `PrivilegeNotFoundError`（仅携带特权名）。"""

        super().__init__(
            f"Privilege not found: {name}",
            code="PRIVILEGE_NOT_FOUND",
            details={"privilege": name},
        )


class RunSpawnError(RunnerError):
    """OS 拒绝创建子进程（程序不存在、不可执行等）。"""

    def __init__(self, program: str, reason: str, *, errno: int | None = None) -> None:
        """创建 `RunSpawnError`。

        参数：
        - `program`：尝试执行的程序路径
        - `reason`：OS 给出的失败原因
        - `errno`：可选的 errno
        """

        super().__init__(
            code="SPAWN_FAILED",
            message=f"Failure to execute {program}: {reason}",
            details={"program": program, "reason": reason, "errno": errno},
        )
