from __future__ import annotations

import ast
from pathlib import Path
from typing import Iterator, List

import pytest

_SRC = Path(__file__).resolve().parents[1] / "packages" / "harness-runner-python" / "src" / "harness_runner"
_DEF_NODES = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)


def _source_files() -> List[Path]:
    return sorted(p for p in _SRC.rglob("*.py") if "__pycache__" not in p.parts)


def _undocumented(tree: ast.AST, prefix: str = "") -> Iterator[str]:
    """深度优先产出缺少 docstring 的 class/def（含嵌套定义），格式为 `lineno qualname`。"""

    for node in ast.iter_child_nodes(tree):
        if isinstance(node, _DEF_NODES):
            qualname = f"{prefix}{node.name}"
            if ast.get_docstring(node) is None:
                yield f"{node.lineno} {qualname}"
            yield from _undocumented(node, f"{qualname}.")
        else:
            yield from _undocumented(node, prefix)


def test_runner_sources_are_found() -> None:
    assert _SRC.is_dir()
    assert len(_source_files()) > 5


@pytest.mark.parametrize("path", _source_files(), ids=lambda p: p.relative_to(_SRC).as_posix())
def test_every_definition_has_docstring(path: Path) -> None:
    """`harness_runner` 下每个 class/def（含嵌套）都必须有 docstring。"""

    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    missing = list(_undocumented(tree))

    assert not missing, f"{path.relative_to(_SRC)} missing docstrings: {missing}"
