from __future__ import annotations

import ast
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

_SKIP_DIRS = {".git", "__pycache__", ".pytest_cache", ".mypy_cache", "dist", "build", "venv", ".venv"}

_DefNode = Union[ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef]


@dataclass(frozen=True)
class MissingDocstring:
    path: Path
    lineno: int
    qualname: str


def _iter_package_sources(root: Path) -> Iterable[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in _SKIP_DIRS and d != "tests"]
        for filename in sorted(filenames):
            if filename.endswith(".py"):
                yield Path(dirpath) / filename


def _missing_in(py_path: Path) -> list[MissingDocstring]:
    tree = ast.parse(py_path.read_text(encoding="utf-8"), filename=str(py_path))
    missing: list[MissingDocstring] = []

    def _walk(node: ast.AST, stack: list[str]) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                _check(child, stack)
            else:
                _walk(child, stack)

    def _check(node: _DefNode, stack: list[str]) -> None:
        qualname = ".".join(stack + [node.name])
        if ast.get_docstring(node) is None:
            missing.append(MissingDocstring(py_path, node.lineno, qualname))
        _walk(node, stack + [node.name])

    _walk(tree, [])
    return missing


def test_every_class_and_function_under_src_has_a_docstring() -> None:
    """
    Docstring 合规护栏。

    规则：
    - 扫描 `src/` 下所有 `.py` 文件（排除 `tests/` 目录）；
    - 每个 `class/def/async def` 都必须有 docstring（包含嵌套定义与 property）。
    """

    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    assert src_root.is_dir()

    missing: list[MissingDocstring] = []
    for py_path in _iter_package_sources(src_root):
        missing.extend(_missing_in(py_path))

    if not missing:
        return

    lines = ["missing docstrings:"]
    for m in sorted(missing, key=lambda m: (str(m.path), m.lineno)):
        lines.append(f"- {m.path.relative_to(repo_root)}:{m.lineno} {m.qualname}")
    raise AssertionError("\n".join(lines))


def test_nested_definitions_are_reported_with_qualified_names(tmp_path: Path) -> None:
    sample = tmp_path / "sample.py"
    sample.write_text(
        '"""module."""\n'
        "class Outer:\n"
        '    """ok."""\n'
        "    def method(self):\n"
        "        def inner():\n"
        '            """ok."""\n'
        "        return inner\n"
        "\n"
        "async def coro():\n"
        "    return 1\n",
        encoding="utf-8",
    )
    found = [(m.lineno, m.qualname) for m in _missing_in(sample)]
    assert found == [(4, "Outer.method"), (9, "coro")]
