"""Static support archives.

Support code shared by the extension module and auxiliary programs is bundled
into static archives (``ar rcs``) before the module is linked against them.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from extbuild.build.platform_info import PlatformInfo
from extbuild.errors import ArchiveError
from extbuild.graph.actions import Action, ActionKind, ActionSpec
from extbuild.subprocess_utils import combined_output, format_command, safe_run

logger = logging.getLogger(__name__)


class ArchiveBuilder(Action):
    """Creates static archives from object files.

    Args:
        platform_info: Toolchain commands
    """

    kind = ActionKind.ARCHIVE

    def __init__(self, platform_info: PlatformInfo):
        self.platform_info = platform_info

    def execute(self, spec: Optional[ActionSpec]) -> None:
        if spec is None:
            raise ValueError("archive action needs a spec")
        self.create_archive(spec.sources, spec.output)

    def create_archive(self, object_paths: Sequence[Path], archive_path: Path) -> Path:
        """Create ``archive_path`` from ``object_paths``.

        An existing archive is removed first, so members of objects that are
        no longer listed do not linger.

        Args:
            object_paths: Object files to archive
            archive_path: Archive to produce

        Returns:
            Path to the archive

        Raises:
            ArchiveError: If the archiver fails or produces no archive
            PreflightError: If the archiver cannot be located
        """
        archive_path = Path(archive_path)
        target = str(archive_path)
        if not object_paths:
            raise ArchiveError(target, 1, "No object files provided for archive")

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        archive_path.unlink(missing_ok=True)

        # ar rcs lib.a obj1.o obj2.o ...
        cmd: List[str] = self.platform_info.archiver_command()
        cmd.extend(["rcs", str(archive_path)])
        cmd.extend(str(obj) for obj in object_paths)
        logger.debug(f"Archiving: {format_command(cmd)}")

        result = safe_run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise ArchiveError(target, result.returncode, combined_output(result), cmd)
        if not archive_path.exists():
            raise ArchiveError(target, result.returncode, f"Archive was not created: {archive_path}", cmd)

        return archive_path
