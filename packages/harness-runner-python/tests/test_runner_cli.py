from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from harness_runner.cli.main import main
from harness_runner.core.results import SPAWN_FAILURE_STATUS, TIMEOUT_STATUS


def _run_cli(args: List[str], capsys: pytest.CaptureFixture[str]) -> Tuple[int, Dict[str, Any]]:
    """调用 CLI main 并解析 stdout 中的 JSON。"""

    code = main(args)
    out = capsys.readouterr().out
    return code, json.loads(out)


def _py(code: str) -> List[str]:
    return ["--", sys.executable, "-c", code]


def test_cli_run_success(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)

    code, payload = _run_cli(["run", "--inherit-env", *_py("pass")], capsys)

    assert code == 0
    assert payload["ok"] is True
    assert payload["kind"] == "exited"
    assert payload["status"] == 0


def test_cli_run_nonzero_exit(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)

    code, payload = _run_cli(["run", "--inherit-env", *_py("import sys; sys.exit(3)")], capsys)

    assert code == 1
    assert payload["ok"] is False
    assert payload["status"] == 3


def test_cli_run_timeout(capsys: pytest.CaptureFixture[str], tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)
    log = tmp_path / "diag.log"

    code, payload = _run_cli(
        [
            "run",
            "--inherit-env",
            "--timeout-sec",
            "1",
            "--log-file",
            str(log),
            *_py("import time; time.sleep(30)"),
        ],
        capsys,
    )

    assert code == 1
    assert payload["kind"] == "timed_out"
    assert payload["status"] == TIMEOUT_STATUS
    assert log.read_text(encoding="utf-8") == "Timeout expired, killing all child processes\n"


def test_cli_timeout_from_config_overlay(
    capsys: pytest.CaptureFixture[str], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)
    overlay = tmp_path / "runner.yaml"
    overlay.write_text("run:\n  timeout_sec: 1\nsupervisor:\n  terminate_grace_ms: 10\n", encoding="utf-8")

    code, payload = _run_cli(
        ["run", "--inherit-env", "--config", str(overlay), *_py("import time; time.sleep(30)")], capsys
    )

    assert code == 1
    assert payload["kind"] == "timed_out"


def test_cli_run_redirects_and_env(
    capsys: pytest.CaptureFixture[str], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)
    out = tmp_path / "out.txt"

    code, payload = _run_cli(
        [
            "run",
            "--inherit-env",
            "--env",
            "HR_GREETING=hello",
            "--stdout",
            str(out),
            *_py("import os; print(os.environ['HR_GREETING'])"),
        ],
        capsys,
    )

    assert code == 0
    assert payload["ok"] is True
    assert out.read_text().strip() == "hello"


def test_cli_missing_stdin_is_setup_error(
    capsys: pytest.CaptureFixture[str], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)

    code, payload = _run_cli(
        ["run", "--inherit-env", "--stdin", str(tmp_path / "absent.txt"), *_py("pass")], capsys
    )

    assert code == 2
    assert payload["ok"] is False
    assert payload["error"]["code"] == "STDIN_NOT_FOUND"


def test_cli_spawn_failure_logs_to_file(
    capsys: pytest.CaptureFixture[str], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)
    missing = str(tmp_path / "no-such-binary")
    log = tmp_path / "diag.log"

    code, payload = _run_cli(["run", "--log-file", str(log), "--", missing], capsys)

    assert code == 1
    assert payload["kind"] == "spawn_failed"
    assert payload["status"] == SPAWN_FAILURE_STATUS
    assert log.read_text(encoding="utf-8").startswith(f"Failure to execute {missing}: ")


def test_cli_without_argv_is_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    code, payload = _run_cli(["run"], capsys)

    assert code == 2
    assert payload["error"]["code"] == "CLI_ARGV_MISSING"


def test_cli_bad_config_is_usage_error(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    code, payload = _run_cli(["run", "--config", str(tmp_path / "missing.yaml"), *_py("pass")], capsys)

    assert code == 2
    assert payload["error"]["code"] == "CONFIG_INVALID"


def test_cli_negative_timeout_is_settings_error(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("HARNESS_RUNNER_CONFIG_PATHS", raising=False)

    code, payload = _run_cli(["run", "--timeout-sec", "-1", *_py("pass")], capsys)

    assert code == 2
    assert payload["error"]["code"] == "SETTINGS_INVALID"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX no-op semantics")
def test_cli_drop_privilege_on_posix(capsys: pytest.CaptureFixture[str]) -> None:
    code, payload = _run_cli(["drop-privilege", "SeCreateSymbolicLinkPrivilege"], capsys)

    assert code == 0
    assert payload == {"ok": True, "privilege": "SeCreateSymbolicLinkPrivilege"}
