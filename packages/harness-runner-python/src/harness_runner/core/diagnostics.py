"""
诊断日志（Diagnostic Logger）：并发安全、永不影响 run 的消息输出。

约束：
- 先在私有内存中把整条消息渲染完成，再获取 sink 的排他锁；
- 锁内只做 write 整条消息 + flush，锁外不做任何部分写；
- 任何失败（渲染异常、内存不足、写入失败）都静默丢弃该条消息：
  诊断管道不得中止、阻塞或改变正在被诊断的 run。
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Optional, TextIO

from harness_runner.core.settings import LogWriter

logger = logging.getLogger(__name__)


class DiagnosticSink:
    """
    lock-guarded 共享日志目的地（可被多个并发 run 共享）。

    参数：
    - stream：文本流（例如已打开的文件、`sys.stderr`）
    - owns_stream：close() 时是否关闭 stream（`open()` 创建的 sink 为 True）
    """

    def __init__(self, stream: TextIO, *, owns_stream: bool = False) -> None:
        """绑定 stream 并创建排他锁。"""

        self._stream = stream
        self._owns_stream = owns_stream
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Path | str, *, encoding: str = "utf-8") -> "DiagnosticSink":
        """以追加模式打开文件 sink（目录不存在时自动创建）。"""

        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return cls(p.open("a", encoding=encoding), owns_stream=True)

    def write(self, text: str) -> None:
        """
        原子写入一条完整消息：lock -> write -> flush -> unlock。

        说明：
        - 该方法本身会抛出 I/O 异常；吞异常的职责在 `DiagnosticLogger`。
        """

        with self._lock:
            self._stream.write(text)
            self._stream.flush()

    def close(self) -> None:
        """关闭 sink（仅当 sink 拥有 stream 时关闭底层文件）。"""

        with self._lock:
            if self._owns_stream and not self._stream.closed:
                self._stream.close()

    def __enter__(self) -> "DiagnosticSink":
        """上下文管理器入口：返回 self。"""
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        """上下文管理器退出：关闭 sink。"""
        self.close()


def render_message(template: str, args: tuple[Any, ...]) -> str:
    """
    渲染 `%` 风格模板为整条消息（保证以换行结尾）。

    说明：
    - 无参数时模板按字面输出（不解释 `%`）；
    - 渲染异常由调用方处理。
    """

    text = template % args if args else template
    if not text.endswith("\n"):
        text += "\n"
    return text


class DiagnosticLogger:
    """
    面向 runner 内部的诊断入口：format + 整条写入 + 失败静默。

    参数：
    - writer：日志能力（`write(text)`）；None 时所有调用均为 no-op
    """

    def __init__(self, writer: Optional[LogWriter]) -> None:
        """绑定 writer（可为 None）。"""

        self._writer = writer

    @property
    def enabled(self) -> bool:
        """是否绑定了 writer。"""

        return self._writer is not None

    def log(self, template: str, *args: Any) -> None:
        """
        输出一条诊断消息（best-effort，永不抛出）。

        参数：
        - template：`%` 风格模板
        - args：模板参数
        """

        if self._writer is None:
            return
        try:
            message = render_message(template, args)
        except Exception:
            logger.debug("Dropped diagnostic message: render failed (template=%r)", template, exc_info=True)
            return
        try:
            self._writer.write(message)
        except Exception:
            logger.debug("Dropped diagnostic message: sink write failed", exc_info=True)
