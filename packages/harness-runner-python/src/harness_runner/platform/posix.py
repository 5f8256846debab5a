"""
POSIX 平台实现：子进程作为新 session/进程组 leader，超时按进程组终止。
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _signal_group(pgid: int, signum: int) -> bool:
    """向进程组发送信号；组已不存在时返回 False（不抛错）。"""

    try:
        os.killpg(pgid, signum)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        logger.debug("killpg(%d, %d) denied", pgid, signum, exc_info=True)
        return False


class PosixPlatform:
    """POSIX 进程模型（setsid + killpg）。"""

    name = "posix"
    windows = False

    def popen_options(self) -> Dict[str, Any]:
        """让子进程成为新的 session leader（pgid == pid），便于整组终止。"""

        return {"start_new_session": True}

    def terminate_tree(self, proc: subprocess.Popen, *, grace_sec: float) -> None:
        """
        SIGTERM -> (grace) -> SIGKILL，均作用于子进程所在的进程组。

        说明：
        - 子进程已退出：直接返回（no-op）；
        - leader 在 grace 内退出后仍会对整组补发 SIGKILL：只要组内还有成员，pgid 不会被复用；
          组已空时 killpg 返回 ESRCH，被静默忽略。
        """

        if proc.poll() is not None:
            return

        pgid = proc.pid
        if not _signal_group(pgid, signal.SIGTERM):
            try:
                proc.terminate()
            except ProcessLookupError:
                return

        try:
            proc.wait(timeout=grace_sec)
        except subprocess.TimeoutExpired:
            pass

        if not _signal_group(pgid, signal.SIGKILL) and proc.poll() is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass

    def drop_privilege(self, name: str) -> None:
        """POSIX 没有 token 特权模型：任何名字都视为成功的 no-op。"""

        return None
