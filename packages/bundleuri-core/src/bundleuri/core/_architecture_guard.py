"""bundleuri strict architecture guard.

Enforced at import time over the `bundleuri.core` source tree:

1) Customized exceptions are defined only in `exception.py`.
2) `*Spec` classes are defined only in `spec.py`.
3) Process spawning (`subprocess`) and HTTP (`httpx`) are imported only by
   transport implementations (`builtins/`) and helper programs (`helpers/`).

Violations raise RuntimeError listing every offending file. Disable with
BUNDLEURI_STRICT_ARCH=0.
"""

from __future__ import annotations

import ast
import os
from pathlib import Path
from typing import Iterable, List, Tuple

_EXCLUDED_DIRS = {"__pycache__", ".venv", "venv", "build", "dist", ".eggs", ".git", "tests"}
_IO_MODULES = {"subprocess", "httpx"}
_IO_ALLOWED_DIRS = {"builtins", "helpers"}


def _iter_python_files(package_root: Path) -> Iterable[Path]:
    for path in package_root.rglob("*.py"):
        if set(path.relative_to(package_root).parts) & _EXCLUDED_DIRS:
            continue
        yield path


def _base_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        return _base_name(node.value)
    return ""


def _is_exception_class(cls: ast.ClassDef) -> bool:
    for base in cls.bases:
        name = _base_name(base)
        if name in {"BaseException", "Exception"} or name.endswith(("Error", "Exception")):
            return True
    return False


def _imported_modules(tree: ast.AST) -> Iterable[str]:
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name.split(".")[0]
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            yield node.module.split(".")[0]


def assert_architecture() -> None:
    if os.getenv("BUNDLEURI_STRICT_ARCH", "1") == "0":
        return

    package_root = Path(__file__).resolve().parent
    violations: List[Tuple[str, str, Path]] = []

    for path in _iter_python_files(package_root):
        rel = path.relative_to(package_root)
        try:
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        except (OSError, UnicodeDecodeError, SyntaxError) as e:
            raise RuntimeError(f"[bundleuri strict-arch] Cannot parse source file: {path}") from e

        for node in ast.walk(tree):
            if not isinstance(node, ast.ClassDef):
                continue
            if _is_exception_class(node) and rel.name != "exception.py":
                violations.append(("exception", node.name, path))
            if node.name.endswith("Spec") and rel.name != "spec.py":
                violations.append(("spec", node.name, path))

        if rel.parts[0] not in _IO_ALLOWED_DIRS:
            for mod in sorted(set(_imported_modules(tree)) & _IO_MODULES):
                violations.append(("io", mod, path))

    if not violations:
        return

    fixes = {
        "exception": "move exception classes into bundleuri/core/exception.py",
        "spec": "move Spec classes into bundleuri/core/spec.py",
        "io": "spawn processes / make HTTP calls from a transport in bundleuri/core/builtins/",
    }
    lines = ["bundleuri strict architecture check failed:"]
    for kind, name, path in sorted(violations, key=lambda v: (v[0], str(v[2]), v[1])):
        lines.append(f"  - [{kind}] {name} in {path} (fix: {fixes[kind]})")
    raise RuntimeError("\n".join(lines))
