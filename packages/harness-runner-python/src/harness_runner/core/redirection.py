"""
Redirection Manager：把 stdin/stdout/stderr 解析为文件描述符或“继承”。

规则：
- stdin：必须预先存在，只读打开；不存在 -> `RunSetupError(STDIN_NOT_FOUND)`
- stdout/stderr：不存在则创建；`append=False` 截断，`append=True` 在文件末尾续写（O_APPEND）
- stdout 与 stderr 指向同一文件时（含 symlink/hard link，按 st_dev+st_ino 判断）共享一个 fd
  （两路输出交错写入同一文件，而不是相互覆盖）
- 未提供路径：对应 stream 原样继承（fd 为 None）
- 任一目标打开失败都在 spawn 之前抛出，并关闭已打开的 fd
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from harness_runner.core.errors import RunSetupError
from harness_runner.core.settings import RunSettings

_BINARY = getattr(os, "O_BINARY", 0)
_CLOEXEC = getattr(os, "O_CLOEXEC", 0)
_NOINHERIT = getattr(os, "O_NOINHERIT", 0)
_CREATE_MODE = 0o666


@dataclass
class Redirections:
    """
    已解析的重定向 fd（None 表示继承）。

    说明：
    - `_owned` 记录需要在父进程关闭的 fd（去重后；共享 fd 只关闭一次）；
    - close() 幂等：launcher 在 spawn 后立即调用，上下文管理器退出时再兜底一次。
    """

    stdin: Optional[int] = None
    stdout: Optional[int] = None
    stderr: Optional[int] = None
    _owned: List[int] = field(default_factory=list)

    def close(self) -> None:
        """关闭父进程持有的全部重定向 fd（幂等）。"""

        owned, self._owned = self._owned, []
        for fd in owned:
            try:
                os.close(fd)
            except OSError:
                continue

    @property
    def closed(self) -> bool:
        """父进程是否已不再持有任何重定向 fd。"""

        return not self._owned

    def __enter__(self) -> "Redirections":
        """上下文管理器入口：返回 self。"""
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        """上下文管理器退出：确保 fd 已关闭。"""
        self.close()


def _output_flags(append: bool) -> int:
    """stdout/stderr 的 open flags。"""

    flags = os.O_WRONLY | os.O_CREAT | _BINARY | _CLOEXEC | _NOINHERIT
    return flags | (os.O_APPEND if append else os.O_TRUNC)


def _open_target(path: str, flags: int, *, stream: str) -> int:
    """打开单个重定向目标；失败时转换为 `RunSetupError`。"""

    try:
        return os.open(path, flags, _CREATE_MODE)
    except FileNotFoundError as exc:
        if stream == "stdin":
            raise RunSetupError(
                f"Stdin source does not exist: {path}",
                code="STDIN_NOT_FOUND",
                details={"stream": stream, "path": path, "errno": exc.errno},
            ) from exc
        raise RunSetupError(
            f"Cannot open {stream} target: {path}",
            code="REDIRECTION_OPEN_FAILED",
            details={"stream": stream, "path": path, "errno": exc.errno, "reason": exc.strerror},
        ) from exc
    except OSError as exc:
        raise RunSetupError(
            f"Cannot open {stream} target: {path}",
            code="REDIRECTION_OPEN_FAILED",
            details={"stream": stream, "path": path, "errno": exc.errno, "reason": exc.strerror},
        ) from exc


def _same_file(fd: int, path: str) -> bool:
    """判断已打开的 fd 与 path 是否为同一文件（st_dev + st_ino）；path 不存在时为 False。"""

    try:
        target = os.stat(path)
    except OSError:
        return False
    return os.path.samestat(os.fstat(fd), target)


def open_redirections(settings: RunSettings) -> Redirections:
    """
    按 settings 打开全部重定向目标。

    返回：
    - Redirections：各 stream 的 fd（None 表示继承）

    异常：
    - RunSetupError：任一目标无法打开（已打开的 fd 会被关闭）
    """

    redirs = Redirections()
    try:
        if settings.stdin_path is not None:
            fd = _open_target(settings.stdin_path, os.O_RDONLY | _BINARY | _CLOEXEC | _NOINHERIT, stream="stdin")
            redirs._owned.append(fd)
            redirs.stdin = fd

        out_flags = _output_flags(settings.append)
        if settings.stdout_path is not None:
            fd = _open_target(settings.stdout_path, out_flags, stream="stdout")
            redirs._owned.append(fd)
            redirs.stdout = fd

        if settings.stderr_path is not None:
            if redirs.stdout is not None and _same_file(redirs.stdout, settings.stderr_path):
                redirs.stderr = redirs.stdout
            else:
                fd = _open_target(settings.stderr_path, out_flags, stream="stderr")
                redirs._owned.append(fd)
                redirs.stderr = fd
    except BaseException:
        redirs.close()
        raise
    return redirs
