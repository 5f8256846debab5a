"""
Process Launcher：以已解析的重定向 fd、argv 与替换环境启动恰好一个子进程。

约束：
- 子进程只继承三个标准 stream 槽位（`close_fds=True`），不继承调用方其它 fd；
- spawn 结束后（无论成功失败）立即关闭父进程持有的重定向 fd；
- spawn 失败抛 `RunSpawnError`：此时不存在子进程，调用方不得做任何终止逻辑。
"""

from __future__ import annotations

import subprocess

from harness_runner.core.errors import RunSpawnError
from harness_runner.core.redirection import Redirections
from harness_runner.core.settings import RunSettings
from harness_runner.platform.base import ProcessPlatform


def spawn(settings: RunSettings, redirections: Redirections, *, platform: ProcessPlatform) -> subprocess.Popen:
    """
    启动子进程。

    参数：
    - settings：run settings（program/argv/envp/cwd）
    - redirections：已打开的重定向 fd（None 槽位表示继承）
    - platform：平台能力（提供进程组相关的 Popen 参数）

    返回：
    - subprocess.Popen：存活的子进程句柄（所有权交给 `ChildProcess`）

    异常：
    - RunSpawnError：OS 拒绝创建进程（程序不存在、无执行权限、cwd 不存在等）
    """

    popen_kwargs: dict = {
        "executable": settings.program,
        "env": settings.env_mapping(),
        "stdin": redirections.stdin,
        "stdout": redirections.stdout,
        "stderr": redirections.stderr,
        "close_fds": True,
        "cwd": settings.cwd,
    }
    popen_kwargs.update(platform.popen_options())

    try:
        return subprocess.Popen(settings.effective_argv(), **popen_kwargs)  # noqa: S603
    except OSError as exc:
        raise RunSpawnError(settings.program, exc.strerror or str(exc), errno=exc.errno) from exc
    except ValueError as exc:
        # 例如 argv/env 中包含 NUL 字节
        raise RunSpawnError(settings.program, str(exc)) from exc
    finally:
        redirections.close()
