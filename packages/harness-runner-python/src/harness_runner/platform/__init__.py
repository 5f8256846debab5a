"""平台能力（POSIX / Windows）的选择入口。"""

from __future__ import annotations

import os
from typing import Optional

from harness_runner.platform.base import ProcessPlatform
from harness_runner.platform.posix import PosixPlatform
from harness_runner.platform.windows import WindowsPlatform

__all__ = ["PosixPlatform", "ProcessPlatform", "WindowsPlatform", "current_platform"]


def current_platform(os_name: Optional[str] = None) -> ProcessPlatform:
    """
    按 `os.name` 选择平台实现。

    参数：
    - os_name：用于测试注入；缺省使用 `os.name`
    """

    name = os_name or os.name
    if name == "nt":
        return WindowsPlatform()
    return PosixPlatform()
