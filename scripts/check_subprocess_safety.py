#!/usr/bin/env python3
"""Standalone script to check that subprocess calls use safe wrappers.

This script validates that no module under src/ calls subprocess directly;
every toolchain invocation must use safe_run() from subprocess_utils.py.

Usage:
    python scripts/check_subprocess_safety.py
"""

import ast
import sys
from pathlib import Path

# Add project root to path for development (extbuild_lint is not distributed with package)
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from extbuild_lint.ruff_plugins.subprocess_safety_checker import SubprocessSafetyChecker  # noqa: E402


def main() -> int:
    """Run subprocess safety checker on all source files."""
    src_dir = project_root / "src"
    total_errors = 0

    for file_path in sorted(src_dir.rglob("*.py")):
        with open(file_path, encoding="utf-8") as f:
            tree = ast.parse(f.read(), filename=str(file_path))

        errors = list(SubprocessSafetyChecker(tree, str(file_path)).run())
        if errors:
            print(f"{file_path.relative_to(project_root)}:")
            for line, _col, msg, _ in errors:
                print(f"  Line {line}: {msg}")
            total_errors += len(errors)

    if total_errors > 0:
        print(f"\nTotal errors: {total_errors}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
