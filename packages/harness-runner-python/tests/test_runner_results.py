from __future__ import annotations

import signal

import pytest

from harness_runner.core.results import (
    EXCEPTION_STATUS,
    SPAWN_FAILURE_STATUS,
    TIMEOUT_STATUS,
    ExecutionResult,
    signal_name,
)


def test_sentinel_statuses_are_distinct_and_outside_signal_range() -> None:
    sentinels = {EXCEPTION_STATUS, TIMEOUT_STATUS, SPAWN_FAILURE_STATUS}

    assert len(sentinels) == 3
    for value in sentinels:
        # 正常退出码 >= 0；信号指示值为 -1..-127
        assert value < -127


def test_posix_returncode_classification() -> None:
    exited = ExecutionResult.from_returncode(3, pid=10, duration_ms=5, windows=False)
    signaled = ExecutionResult.from_returncode(-int(signal.SIGTERM), pid=10, duration_ms=5, windows=False)

    assert exited.kind == "exited"
    assert exited.status == 3
    assert exited.ok is False
    assert signaled.kind == "signaled"
    assert signaled.signal == signal.SIGTERM
    assert signaled.status == -int(signal.SIGTERM)


@pytest.mark.parametrize(
    ("returncode", "kind", "status"),
    [
        (0, "exited", 0),
        (259, "exited", 259),
        (0xC0000005, "exception", EXCEPTION_STATUS),
        # Popen 在 Windows 上可能给出有符号值
        (-1073741819, "exception", EXCEPTION_STATUS),
    ],
)
def test_windows_returncode_classification(returncode: int, kind: str, status: int) -> None:
    result = ExecutionResult.from_returncode(returncode, pid=1, duration_ms=0, windows=True)

    assert result.kind == kind
    assert result.status == status


def test_windows_exception_code_is_kept() -> None:
    result = ExecutionResult.from_returncode(0xC00000FD, pid=1, duration_ms=0, windows=True)

    assert result.exception_code == 0xC00000FD


def test_timeout_and_spawn_failure_statuses() -> None:
    assert ExecutionResult(kind="timed_out", pid=4).status == TIMEOUT_STATUS
    assert ExecutionResult(kind="spawn_failed", error="boom").status == SPAWN_FAILURE_STATUS


def test_to_json_dict_adds_derived_fields() -> None:
    data = ExecutionResult(kind="exited", exit_code=0, pid=42, duration_ms=7).to_json_dict()

    assert data == {"kind": "exited", "exit_code": 0, "pid": 42, "duration_ms": 7, "ok": True, "status": 0}


def test_signal_name_known_and_unknown() -> None:
    assert signal_name(int(signal.SIGTERM)) == "SIGTERM"
    assert signal_name(250) == "signal 250"
