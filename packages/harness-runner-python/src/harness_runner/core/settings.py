"""
RunSettings：一次 run 的完整输入（校验后的配置对象）。

约束：
- 每次调用构造一次、被 runner 独占消费、调用结束即丢弃；
- `envp` 是对继承环境的**完全替换**（绝不与 `os.environ` 合并）；
- 重定向路径缺省（None）表示“原样继承调用方的对应 stream”。
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError, field_validator

from harness_runner.core.errors import RunSetupError


@runtime_checkable
class LogWriter(Protocol):
    """
    日志能力（logger capability）协议。

    说明：
    - 只要求 `write(text)`；目的地（文件/channel/锁）由实现自身绑定；
    - 典型实现：`harness_runner.core.diagnostics.DiagnosticSink`。
    """

    def write(self, text: str) -> None:
        """写入一条完整消息（协议）。"""

        ...


def split_env_entry(entry: str) -> tuple[str, str]:
    """
    把 `KEY=VALUE` 拆成 (key, value)。

    说明：
    - 以 key 之后的第一个 `=` 为分隔；key 允许以 `=` 开头（Windows 的 `=C:=C:\\` 形式）；
    - 缺少分隔符或 key 为空时抛 ValueError。
    """

    sep = entry.find("=", 1)
    if sep <= 0:
        raise ValueError(f"environment entry must look like KEY=VALUE: {entry!r}")
    return entry[:sep], entry[sep + 1 :]


class RunSettings(BaseModel):
    """
    一次 run 的 settings（pydantic 校验；frozen）。

    字段：
    - program：可执行文件路径
    - argv：有序参数向量（argv[0] 为子进程看到的名字；为空时使用 [program]）
    - envp：有序 `KEY=VALUE` 列表，完全替换继承的环境
    - stdin_path/stdout_path/stderr_path：可选重定向目标
    - append：stdout/stderr 是否追加写（对 stdin 无意义）
    - timeout_sec：整数秒；0 表示不限时
    - logger：日志能力（见 `LogWriter`）；None 表示不输出诊断
    - cwd：子进程工作目录；None 表示继承
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    program: str = Field(min_length=1)
    argv: List[str] = Field(default_factory=list)
    envp: List[str] = Field(default_factory=list)
    stdin_path: Optional[str] = None
    stdout_path: Optional[str] = None
    stderr_path: Optional[str] = None
    append: StrictBool = False
    timeout_sec: StrictInt = Field(default=0, ge=0)
    logger: Optional[Any] = None
    cwd: Optional[str] = None

    @field_validator("envp")
    @classmethod
    def _check_envp(cls, value: List[str]) -> List[str]:
        """校验每一项都是合法的 `KEY=VALUE`。"""

        for entry in value:
            split_env_entry(entry)
        return value

    @field_validator("stdin_path", "stdout_path", "stderr_path", "cwd")
    @classmethod
    def _check_path(cls, value: Optional[str]) -> Optional[str]:
        """空字符串路径视为非法（与“缺省 = 继承”的语义区分开）。"""

        if value is not None and value == "":
            raise ValueError("path must be non-empty when given")
        return value

    @field_validator("logger")
    @classmethod
    def _check_logger(cls, value: Any) -> Any:
        """logger 必须提供可调用的 `write(text)`。"""

        if value is not None and not callable(getattr(value, "write", None)):
            raise ValueError("logger must provide a callable write(text)")
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RunSettings":
        """
        从调用方的 mapping 构造 settings（边界适配入口）。

        异常：
        - RunSetupError(code=SETTINGS_INVALID)：字段缺失/类型错误/取值非法
        """

        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise RunSetupError(
                "Run settings are invalid.",
                code="SETTINGS_INVALID",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc

    def env_mapping(self) -> Dict[str, str]:
        """返回替换用的环境变量 dict（同名 key 以后出现者为准）。"""

        env: Dict[str, str] = {}
        for entry in self.envp:
            key, value = split_env_entry(entry)
            env[key] = value
        return env

    def effective_argv(self) -> List[str]:
        """返回实际传给子进程的 argv（为空时退化为 [program]）。"""

        return list(self.argv) if self.argv else [self.program]
