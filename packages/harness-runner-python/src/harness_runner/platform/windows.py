"""
Windows 平台实现：新进程组 + TerminateProcess；进程 token 特权移除（advapi32）。

说明：
- 超时终止只覆盖直接子进程（`TerminateProcess`）；孙进程不会被追踪
  （未使用 job object，属于已记录的平台能力缺口）。
- 特权移除为 best-effort：`AdjustTokenPrivileges` 被拒绝时不视为错误。
- ctypes 绑定在首次使用时才加载，非 Windows 平台可安全 import 本模块。
"""

from __future__ import annotations

import ctypes
import logging
import subprocess
from typing import Any, Dict, List, Optional, Protocol, Tuple

from harness_runner.core.errors import PrivilegeNotFoundError

logger = logging.getLogger(__name__)

Luid = Tuple[int, int]

CREATE_NEW_PROCESS_GROUP = 0x00000200
TOKEN_QUERY = 0x0008
TOKEN_ADJUST_PRIVILEGES = 0x0020
TOKEN_INFORMATION_CLASS_PRIVILEGES = 3
SE_PRIVILEGE_REMOVED = 0x00000004
ERROR_INSUFFICIENT_BUFFER = 122
ERROR_NOT_ALL_ASSIGNED = 1300


class TokenPrivilegeApi(Protocol):
    """
    进程 token 特权操作的最小接口（便于测试注入）。

    LUID 以 (LowPart, HighPart) 元组表示。
    """

    def lookup(self, name: str) -> Optional[Luid]:
        """按名字查找特权 LUID；未知名字返回 None。"""

        ...

    def held_privileges(self) -> List[Luid]:
        """返回当前进程 token 中存在的特权 LUID 列表。"""

        ...

    def remove(self, luid: Luid) -> bool:
        """尝试从 token 中移除特权；被拒绝时返回 False。"""

        ...


class _Win32TokenApi:
    """基于 ctypes/advapi32 的 `TokenPrivilegeApi` 实现。"""

    def __init__(self) -> None:
        """加载 advapi32/kernel32 并声明所需结构体。"""

        from ctypes import wintypes as wt

        class LUID(ctypes.Structure):
            """Win32 LUID。"""

            _fields_ = [("LowPart", wt.DWORD), ("HighPart", wt.LONG)]

        class LUID_AND_ATTRIBUTES(ctypes.Structure):
            """Win32 LUID_AND_ATTRIBUTES。"""

            _fields_ = [("Luid", LUID), ("Attributes", wt.DWORD)]

        class TOKEN_PRIVILEGES(ctypes.Structure):
            """单项 TOKEN_PRIVILEGES（用于 AdjustTokenPrivileges 输入）。"""

            _fields_ = [("PrivilegeCount", wt.DWORD), ("Privileges", LUID_AND_ATTRIBUTES * 1)]

        self._wt = wt
        self._LUID = LUID
        self._LUID_AND_ATTRIBUTES = LUID_AND_ATTRIBUTES
        self._TOKEN_PRIVILEGES = TOKEN_PRIVILEGES
        self._advapi32 = ctypes.WinDLL("advapi32", use_last_error=True)  # type: ignore[attr-defined]
        self._kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)  # type: ignore[attr-defined]
        self._declare_prototypes()

    def _declare_prototypes(self) -> None:
        """声明所用 Win32 函数的 argtypes/restype（HANDLE 按指针宽度传递，避免默认 int 截断）。"""

        wt = self._wt
        advapi32, kernel32 = self._advapi32, self._kernel32

        advapi32.OpenProcessToken.argtypes = [wt.HANDLE, wt.DWORD, ctypes.POINTER(wt.HANDLE)]
        advapi32.OpenProcessToken.restype = wt.BOOL

        advapi32.LookupPrivilegeValueW.argtypes = [wt.LPCWSTR, wt.LPCWSTR, ctypes.POINTER(self._LUID)]
        advapi32.LookupPrivilegeValueW.restype = wt.BOOL

        advapi32.GetTokenInformation.argtypes = [wt.HANDLE, wt.DWORD, wt.LPVOID, wt.DWORD, ctypes.POINTER(wt.DWORD)]
        advapi32.GetTokenInformation.restype = wt.BOOL

        advapi32.AdjustTokenPrivileges.argtypes = [
            wt.HANDLE,
            wt.BOOL,
            ctypes.POINTER(self._TOKEN_PRIVILEGES),
            wt.DWORD,
            wt.LPVOID,
            ctypes.POINTER(wt.DWORD),
        ]
        advapi32.AdjustTokenPrivileges.restype = wt.BOOL

        kernel32.GetCurrentProcess.argtypes = []
        kernel32.GetCurrentProcess.restype = wt.HANDLE

        kernel32.CloseHandle.argtypes = [wt.HANDLE]
        kernel32.CloseHandle.restype = wt.BOOL

    def _open_token(self, access: int) -> Optional[Any]:
        """打开当前进程 token；失败返回 None。"""

        token = self._wt.HANDLE()
        if not self._advapi32.OpenProcessToken(self._kernel32.GetCurrentProcess(), access, ctypes.byref(token)):
            logger.debug("OpenProcessToken failed: winerror=%d", ctypes.get_last_error())  # type: ignore[attr-defined]
            return None
        return token

    def lookup(self, name: str) -> Optional[Luid]:
        """`LookupPrivilegeValueW`。"""

        luid = self._LUID()
        if not self._advapi32.LookupPrivilegeValueW(None, name, ctypes.byref(luid)):
            return None
        return int(luid.LowPart), int(luid.HighPart)

    def held_privileges(self) -> List[Luid]:
        """`GetTokenInformation(TokenPrivileges)`：两次调用（先取长度，再取内容）。"""

        token = self._open_token(TOKEN_QUERY)
        if token is None:
            return []
        try:
            needed = self._wt.DWORD(0)
            self._advapi32.GetTokenInformation(
                token, TOKEN_INFORMATION_CLASS_PRIVILEGES, None, 0, ctypes.byref(needed)
            )
            if ctypes.get_last_error() != ERROR_INSUFFICIENT_BUFFER:  # type: ignore[attr-defined]
                return []
            buf = ctypes.create_string_buffer(needed.value)
            if not self._advapi32.GetTokenInformation(
                token, TOKEN_INFORMATION_CLASS_PRIVILEGES, buf, needed, ctypes.byref(needed)
            ):
                return []
            count = self._wt.DWORD.from_buffer(buf).value
            offset = ctypes.sizeof(self._wt.DWORD)
            entries = (self._LUID_AND_ATTRIBUTES * count).from_buffer(buf, offset)
            return [(int(e.Luid.LowPart), int(e.Luid.HighPart)) for e in entries]
        finally:
            self._kernel32.CloseHandle(token)

    def remove(self, luid: Luid) -> bool:
        """`AdjustTokenPrivileges(SE_PRIVILEGE_REMOVED)`。"""

        token = self._open_token(TOKEN_ADJUST_PRIVILEGES | TOKEN_QUERY)
        if token is None:
            return False
        try:
            adjustment = self._TOKEN_PRIVILEGES()
            adjustment.PrivilegeCount = 1
            adjustment.Privileges[0].Luid.LowPart = luid[0]
            adjustment.Privileges[0].Luid.HighPart = luid[1]
            adjustment.Privileges[0].Attributes = SE_PRIVILEGE_REMOVED
            ok = self._advapi32.AdjustTokenPrivileges(
                token, False, ctypes.byref(adjustment), ctypes.sizeof(adjustment), None, None
            )
            # AdjustTokenPrivileges 成功返回时仍可能“部分未分配”
            return bool(ok) and ctypes.get_last_error() != ERROR_NOT_ALL_ASSIGNED  # type: ignore[attr-defined]
        finally:
            self._kernel32.CloseHandle(token)


class WindowsPlatform:
    """
    Windows 进程模型。

    参数：
    - token_api：token 特权接口；None 时首次使用才创建 ctypes 实现
    """

    name = "windows"
    windows = True

    def __init__(self, *, token_api: Optional[TokenPrivilegeApi] = None) -> None:
        """保存（或延迟创建）token 特权接口。"""

        self._token_api = token_api

    def _api(self) -> TokenPrivilegeApi:
        """返回 token 特权接口（延迟加载 ctypes 绑定）。"""

        if self._token_api is None:
            self._token_api = _Win32TokenApi()
        return self._token_api

    def popen_options(self) -> Dict[str, Any]:
        """新进程组（避免控制台 Ctrl 事件波及 runner 自身）。"""

        return {"creationflags": CREATE_NEW_PROCESS_GROUP}

    def terminate_tree(self, proc: subprocess.Popen, *, grace_sec: float) -> None:
        """
        `TerminateProcess` 直接子进程（Windows 无“优雅”信号，grace 不适用）。

        说明：
        - 子进程已退出：no-op；
        - 竞态下 kill 已退出的进程会得到 PermissionError/OSError，同样视为 no-op。
        """

        if proc.poll() is not None:
            return
        try:
            proc.kill()
        except OSError:
            if proc.poll() is None:
                raise

    def drop_privilege(self, name: str) -> None:
        """
        从当前进程 token 移除特权（best-effort）。

        异常：
        - PrivilegeNotFoundError：特权名无法识别
        """

        api = self._api()
        luid = api.lookup(name)
        if luid is None:
            raise PrivilegeNotFoundError(name)
        if luid not in api.held_privileges():
            return
        if not api.remove(luid):
            logger.debug("Privilege %s could not be removed from the process token", name)
