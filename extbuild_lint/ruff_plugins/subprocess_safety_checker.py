"""Flake8 plugin to enforce safe subprocess usage.

Every toolchain invocation must go through extbuild.subprocess_utils.safe_run
so child processes never open a console window on Windows and never inherit
stdin from the build.

Error Codes:
    SUB001: Direct subprocess.run() call detected - use safe_run() instead
    SUB002: Direct subprocess.Popen() call detected - use safe_run() instead
    SUB003: Direct subprocess.call() call detected - use safe_run() instead
    SUB004: Direct subprocess.check_call() call detected - use safe_run() instead
    SUB005: Direct subprocess.check_output() call detected - use safe_run() instead
    SUB006: os.system() call detected - use safe_run() instead

Usage:
    # Run with flake8
    flake8 --select=SUB src/

    # Or standalone
    python scripts/check_subprocess_safety.py
"""

import ast
from typing import Any, Generator, Tuple, Type


class SubprocessSafetyChecker:
    """Flake8 plugin to check for unsafe subprocess usage."""

    name = "subprocess-safety-checker"
    version = "1.1.0"

    ERRORS = {
        "SUB001": "SUB001 Direct subprocess.run() call - use safe_run() from extbuild.subprocess_utils",
        "SUB002": "SUB002 Direct subprocess.Popen() call - use safe_run() from extbuild.subprocess_utils",
        "SUB003": "SUB003 Direct subprocess.call() call - use safe_run() from extbuild.subprocess_utils",
        "SUB004": "SUB004 Direct subprocess.check_call() call - use safe_run() from extbuild.subprocess_utils",
        "SUB005": "SUB005 Direct subprocess.check_output() call - use safe_run() from extbuild.subprocess_utils",
        "SUB006": "SUB006 os.system() call - use safe_run() from extbuild.subprocess_utils",
    }

    # (module, attribute) -> error code
    UNSAFE_CALLS = {
        ("subprocess", "run"): "SUB001",
        ("subprocess", "Popen"): "SUB002",
        ("subprocess", "call"): "SUB003",
        ("subprocess", "check_call"): "SUB004",
        ("subprocess", "check_output"): "SUB005",
        ("os", "system"): "SUB006",
    }

    # The wrapper itself
    EXCLUDED_PATTERNS = [
        "subprocess_utils.py",
    ]

    def __init__(self, tree: ast.AST, filename: str = "(none)") -> None:
        """Initialize checker.

        Args:
            tree: AST tree to check
            filename: Name of file being checked
        """
        self._tree = tree
        self._filename = filename

    def run(self) -> Generator[Tuple[int, int, str, Type[Any]], None, None]:
        """Run the checker and yield violations.

        Yields:
            Tuple of (line, column, message, checker_class)
        """
        for pattern in self.EXCLUDED_PATTERNS:
            if self._filename.endswith(pattern):
                return

        visitor = SubprocessCallVisitor()
        visitor.visit(self._tree)

        for line, col, msg in visitor.errors:
            yield (line, col, msg, type(self))


class SubprocessCallVisitor(ast.NodeVisitor):
    """AST visitor to find unsafe subprocess calls.

    Catches both ``subprocess.run(...)`` and names imported with
    ``from subprocess import run``.
    """

    def __init__(self) -> None:
        self.errors: list[Tuple[int, int, str]] = []
        self._imported: dict[str, str] = {}

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            code = SubprocessSafetyChecker.UNSAFE_CALLS.get((node.module or "", alias.name))
            if code is not None:
                self._imported[alias.asname or alias.name] = code
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        code = None
        func = node.func
        if isinstance(func, ast.Attribute) and isinstance(func.value, ast.Name):
            code = SubprocessSafetyChecker.UNSAFE_CALLS.get((func.value.id, func.attr))
        elif isinstance(func, ast.Name):
            code = self._imported.get(func.id)

        if code is not None:
            self.errors.append((node.lineno, node.col_offset, SubprocessSafetyChecker.ERRORS[code]))

        self.generic_visit(node)
