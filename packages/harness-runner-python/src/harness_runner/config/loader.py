"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）；
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）；
- overlay 路径可由环境变量 `HARNESS_RUNNER_CONFIG_PATHS` 提供（`,`/`;` 分隔）。
"""

from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError

from harness_runner.config.defaults import load_default_config_dict
from harness_runner.core.errors import RunnerError

CONFIG_PATHS_ENV = "HARNESS_RUNNER_CONFIG_PATHS"


class RunnerConfigError(RunnerError):
    """配置文件缺失/无法解析/schema 校验失败。"""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        """创建配置错误（错误码固定为 `CONFIG_INVALID`）。"""

        super().__init__(code="CONFIG_INVALID", message=message, details=details or {})


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型（含 list）：overlay 直接覆盖
    """

    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class RunDefaultsConfig(BaseModel):
    """run 的默认参数（CLI 未显式指定时使用）。"""

    model_config = ConfigDict(extra="forbid")

    timeout_sec: StrictInt = Field(default=0, ge=0)
    append: StrictBool = False


class SupervisorConfig(BaseModel):
    """超时终止策略。"""

    model_config = ConfigDict(extra="forbid")

    # SIGTERM -> SIGKILL 的宽限时间；Windows 不适用
    terminate_grace_ms: StrictInt = Field(default=200, ge=0)


class DiagnosticsConfig(BaseModel):
    """诊断 sink 配置。"""

    model_config = ConfigDict(extra="forbid")

    log_path: Optional[str] = None
    encoding: str = Field(default="utf-8", min_length=1)


class RunnerConfig(BaseModel):
    """Runner 配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    run: RunDefaultsConfig = Field(default_factory=RunDefaultsConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise RunnerConfigError("Config file not found.", details={"path": str(path)})
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise RunnerConfigError("Config file is not valid YAML.", details={"path": str(path), "reason": str(exc)}) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RunnerConfigError(
            "Config file root must be a mapping.",
            details={"path": str(path), "actual": type(data).__name__},
        )
    return data


def load_config_dicts(config_dicts: Iterable[Mapping[str, Any]]) -> RunnerConfig:
    """
    在内置默认配置之上按顺序合并多个 dict，返回校验后的 `RunnerConfig`。

    异常：
    - RunnerConfigError：schema 校验失败
    """

    merged: Dict[str, Any] = load_default_config_dict()
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    try:
        return RunnerConfig.model_validate(merged)
    except ValidationError as exc:
        raise RunnerConfigError(
            "Config schema validation failed.",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def _split_paths(raw: str) -> List[str]:
    """将逗号/分号分隔的路径串切分为片段列表（保序，去空白与空项）。"""

    parts: List[str] = []
    for chunk in raw.replace(";", ",").split(","):
        s = chunk.strip()
        if s:
            parts.append(s)
    return parts


def resolve_overlay_paths(env: Optional[Mapping[str, str]] = None) -> List[Path]:
    """从环境变量 `HARNESS_RUNNER_CONFIG_PATHS` 解析 overlay 路径列表。"""

    raw = (env if env is not None else os.environ).get(CONFIG_PATHS_ENV) or ""
    return [Path(p).expanduser() for p in _split_paths(raw)]


def load_config(
    paths: Iterable[Path | str] = (),
    *,
    env: Optional[Mapping[str, str]] = None,
) -> RunnerConfig:
    """
    加载 runner 配置：内置默认 -> 环境变量 overlays -> 显式 overlays（后者覆盖前者）。

    参数：
    - paths：显式 overlay YAML 路径（例如 CLI `--config`）
    - env：用于测试注入；缺省读取 `os.environ`
    """

    overlays: List[Dict[str, Any]] = []
    for p in [*resolve_overlay_paths(env), *(Path(x) for x in paths)]:
        overlays.append(_load_yaml_file(p))
    return load_config_dicts(overlays)
