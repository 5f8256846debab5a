from __future__ import annotations

import sys
from importlib.machinery import PathFinder
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _src_root() -> Path:
    return _repo_root() / "packages" / "harness-runner-python" / "src"


def test_package_is_importable_without_install() -> None:
    src = _src_root()
    sys.path.insert(0, str(src))

    # 开发机/CI 的 site-packages 可能装有旧版本，确保解析来源是 repo 内的 src
    spec = PathFinder.find_spec("harness_runner", [str(src)])
    assert spec is not None

    import harness_runner

    assert callable(harness_runner.run)
    assert callable(harness_runner.drop_privilege)
    assert harness_runner.__version__


def test_default_config_asset_is_shipped() -> None:
    asset = _src_root() / "harness_runner" / "assets" / "default.yaml"

    assert asset.exists()
    assert "config_version" in asset.read_text(encoding="utf-8")


def test_console_script_is_declared() -> None:
    text = (_repo_root() / "pyproject.toml").read_text(encoding="utf-8")

    assert 'harness-runner = "harness_runner.cli.main:main"' in text
