"""Linking of the extension module shared library."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from extbuild.build.flags import FlagSet
from extbuild.build.platform_info import PlatformInfo
from extbuild.errors import LinkError, PreflightError
from extbuild.graph.actions import Action, ActionKind, ActionSpec
from extbuild.subprocess_utils import combined_output, format_command, safe_run

logger = logging.getLogger(__name__)


class Linker(Action):
    """Links object files and library references into a shared library.

    The compiler driver is used as the linker, so sanitizer and optimization
    flags apply consistently to compile and link steps.

    Args:
        platform_info: Toolchain commands and platform link flags
    """

    kind = ActionKind.LINK

    def __init__(self, platform_info: PlatformInfo):
        self.platform_info = platform_info

    def execute(self, spec: Optional[ActionSpec]) -> None:
        if spec is None:
            raise ValueError("link action needs a spec")
        self.link(spec.sources, spec.libraries, spec.output, spec.flags if isinstance(spec.flags, FlagSet) else FlagSet())

    def preflight(self, required_binaries: Iterable[str] = (), need_archiver: bool = False) -> None:
        """Check that every binary the build needs can be found.

        Args:
            required_binaries: Additional binaries the manifest requires
            need_archiver: Whether the archiver must be available too

        Raises:
            PreflightError: Naming the first missing binary
        """
        self.platform_info.compiler_command()
        if need_archiver:
            self.platform_info.archiver_command()

        all_found, missing = self.platform_info.verify_required_binaries(list(required_binaries))
        if not all_found:
            raise PreflightError(missing[0], "It is required by the build manifest")

    def build_command(
        self,
        object_paths: Sequence[Path],
        library_refs: Sequence[str],
        output_path: Path,
        flags: FlagSet,
    ) -> List[str]:
        """Assemble the link command line.

        The layout is ``CXX -shared OBJS LIBS <module ldflags>
        <portability ldflags> <flags> -o OUT``; libraries follow the objects
        that reference them.
        """
        info = self.platform_info
        cmd = info.compiler_command()
        cmd.extend(info.shared_library_flags())
        cmd.extend(str(obj) for obj in object_paths)
        cmd.extend(library_refs)
        cmd.extend(flags.platform_args(info.module_ldflags))
        cmd.extend(flags.platform_args(info.portability_ldflags))
        cmd.extend(flags.link_args())
        cmd.extend(["-o", str(output_path)])
        return cmd

    def link(
        self,
        object_paths: Sequence[Path],
        library_refs: Sequence[str],
        output_path: Path,
        flags: FlagSet,
    ) -> Path:
        """Link the shared library.

        Args:
            object_paths: Object files to link
            library_refs: Archive paths and ``-l`` / ``-L`` references
            output_path: Shared library to produce
            flags: Link flags and optimize/sanitize switches

        Returns:
            Path to the shared library

        Raises:
            LinkError: If the linker exits with a non-zero status
            PreflightError: If the link driver cannot be located
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(object_paths, library_refs, output_path, flags)
        logger.debug(f"Linking: {format_command(cmd)}")

        result = safe_run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise LinkError(str(output_path), result.returncode, combined_output(result), cmd)

        return output_path
