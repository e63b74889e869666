"""Compilation of one source file into one object file."""

import logging
from pathlib import Path
from typing import List, Optional

from extbuild.build.flags import FlagSet
from extbuild.build.platform_info import PlatformInfo
from extbuild.errors import CompilationError
from extbuild.graph.actions import Action, ActionKind, ActionSpec
from extbuild.subprocess_utils import combined_output, format_command, safe_run

logger = logging.getLogger(__name__)


class CompilationUnitBuilder(Action):
    """Runs the C++ compiler for a single translation unit.

    Args:
        platform_info: Toolchain commands and module flags
    """

    kind = ActionKind.COMPILE

    def __init__(self, platform_info: PlatformInfo):
        self.platform_info = platform_info

    def execute(self, spec: Optional[ActionSpec]) -> None:
        if spec is None or len(spec.sources) != 1:
            raise ValueError("compile action needs exactly one source file")
        self.compile(spec.sources[0], spec.output, spec.flags if isinstance(spec.flags, FlagSet) else FlagSet())

    def build_command(self, source_path: Path, object_path: Path, flags: FlagSet) -> List[str]:
        """Assemble the compiler command line.

        The layout is ``CXX <module cxxflags> <flags> -I... -c SRC -o OBJ``.
        """
        cmd = self.platform_info.compiler_command()
        cmd.extend(flags.platform_args(self.platform_info.module_cxxflags))
        cmd.extend(flags.compile_args())
        cmd.extend(["-c", str(source_path)])
        cmd.extend(["-o", str(object_path)])
        return cmd

    def compile(self, source_path: Path, object_path: Path, flags: FlagSet) -> Path:
        """Compile ``source_path`` into ``object_path``.

        Args:
            source_path: C++ source file
            object_path: Object file to produce
            flags: Include paths, extra flags and optimize/sanitize switches

        Returns:
            Path to the object file

        Raises:
            CompilationError: If the compiler exits with a non-zero status
            PreflightError: If the compiler cannot be located
        """
        object_path = Path(object_path)
        object_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(Path(source_path), object_path, flags)
        logger.debug(f"Compiling: {format_command(cmd)}")

        result = safe_run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise CompilationError(str(object_path), result.returncode, combined_output(result), cmd)

        if result.stderr:
            # Warnings
            logger.warning(result.stderr.rstrip())

        return object_path
