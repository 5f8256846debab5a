"""
平台能力接口（process group / job 终止 + 特权调整）。

说明：
- runner 其余部分保持平台无关，只通过该协议访问平台差异；
- 具体实现：`PosixPlatform`（进程组）与 `WindowsPlatform`（进程组 flag + token 特权）。
"""

from __future__ import annotations

import subprocess
from typing import Any, Dict, Protocol


class ProcessPlatform(Protocol):
    """
    平台能力协议。

    属性：
    - name：平台名（posix/windows）
    - windows：是否按 Windows 语义解释 returncode
    """

    name: str
    windows: bool

    def popen_options(self) -> Dict[str, Any]:
        """返回 spawn 时附加的 `subprocess.Popen` 参数（例如新进程组）。"""

        ...

    def terminate_tree(self, proc: subprocess.Popen, *, grace_sec: float) -> None:
        """
        强制终止子进程（以及平台能追踪到的后代）。

        约束：
        - 对已退出的子进程必须是 no-op（幂等，不抛错）；
        - 不负责 reap（由 `ChildProcess` 统一处理）。
        """

        ...

    def drop_privilege(self, name: str) -> None:
        """从当前进程 token 中移除指定特权（无 token 模型的平台为 no-op）。"""

        ...
