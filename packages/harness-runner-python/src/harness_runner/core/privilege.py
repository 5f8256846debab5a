"""Privilege Adjuster：在启动子进程前从当前进程移除一个命名特权。"""

from __future__ import annotations

from typing import Optional

from harness_runner.platform import ProcessPlatform, current_platform


def drop_privilege(name: str, *, platform: Optional[ProcessPlatform] = None) -> None:
    """
    移除当前进程 token 中的特权 `name`（best-effort）。

    行为：
    - Windows：未知特权名 -> `PrivilegeNotFoundError`；token 中不存在 -> no-op；
      移除被系统拒绝 -> 不报错（不保证已移除）
    - 其它平台：无 token 特权模型，任何名字都是成功的 no-op

    参数：
    - name：特权名（例如 `SeCreateSymbolicLinkPrivilege`）
    - platform：用于测试注入；缺省按当前 OS 选择
    """

    (platform or current_platform()).drop_privilege(name)
