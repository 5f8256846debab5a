from __future__ import annotations

import io
import logging
import threading
import time
from pathlib import Path
from typing import List

import pytest

from harness_runner.core.diagnostics import DiagnosticLogger, DiagnosticSink, render_message
from runner_helpers import ListWriter


def test_render_appends_single_trailing_newline() -> None:
    assert render_message("hello %s", ("x",)) == "hello x\n"
    assert render_message("done\n", ()) == "done\n"


def test_render_without_args_keeps_percent_literal() -> None:
    assert render_message("100% finished", ()) == "100% finished\n"


def test_logger_writes_one_complete_message(list_writer: ListWriter) -> None:
    DiagnosticLogger(list_writer).log("Process %d got signal %d(%s)", 12, 9, "SIGKILL")

    assert list_writer.messages == ["Process 12 got signal 9(SIGKILL)\n"]


def test_logger_drops_unrenderable_message(list_writer: ListWriter, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="harness_runner.core.diagnostics")

    DiagnosticLogger(list_writer).log("needs %d and %d", 1)

    assert list_writer.messages == []
    assert any("render failed" in r.getMessage() for r in caplog.records)


def test_logger_swallows_sink_failure() -> None:
    class _Broken:
        def write(self, text: str) -> None:
            raise OSError("disk full")

    # 不得抛出
    DiagnosticLogger(_Broken()).log("anything %s", "here")


def test_logger_without_writer_is_noop() -> None:
    diag = DiagnosticLogger(None)

    assert diag.enabled is False
    diag.log("ignored %s", "x")


def test_sink_open_appends_and_creates_parent(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "diag.log"
    with DiagnosticSink.open(path) as sink:
        sink.write("first\n")
    with DiagnosticSink.open(path) as sink:
        sink.write("second\n")

    assert path.read_text(encoding="utf-8") == "first\nsecond\n"


def test_sink_close_leaves_borrowed_stream_open() -> None:
    stream = io.StringIO()
    sink = DiagnosticSink(stream)
    sink.write("line\n")
    sink.close()

    assert stream.closed is False
    assert stream.getvalue() == "line\n"


class _SlowStream:
    """记录并发写入数的 stream：write 期间短暂 sleep 以放大交错窗口。"""

    def __init__(self) -> None:
        self.chunks: List[str] = []
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()
        self.closed = False

    def write(self, text: str) -> None:
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.001)
        self.chunks.append(text)
        with self._guard:
            self.active -= 1

    def flush(self) -> None:
        return None


def test_shared_sink_never_interleaves_messages() -> None:
    stream = _SlowStream()
    sink = DiagnosticSink(stream)  # type: ignore[arg-type]
    threads_n, per_thread = 4, 25

    def _worker(idx: int) -> None:
        diag = DiagnosticLogger(sink)
        for i in range(per_thread):
            diag.log("worker %d message %d", idx, i)

    threads = [threading.Thread(target=_worker, args=(n,)) for n in range(threads_n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert stream.max_active == 1
    assert len(stream.chunks) == threads_n * per_thread
    expected = {f"worker {n} message {i}\n" for n in range(threads_n) for i in range(per_thread)}
    assert set(stream.chunks) == expected
