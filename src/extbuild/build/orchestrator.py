"""Build orchestration: manifest in, task graph out, targets built.

The Orchestrator translates a BuildManifest into a TaskGraph and runs the
requested top-level targets. Target wiring:

    generated sources   <- template + configuration source
    objects             <- source + every generated source
    archive objects     <- source + every generated source
    archives            <- archive objects
    module              <- module objects + archives
    auxiliary targets   <- their declared prerequisites (phony)
    all                 <- module + auxiliary targets (phony)

A fresh TaskGraph is built for every ``run`` so the "built this run" flags
never leak between invocations.
"""

import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from extbuild.build.archiver import ArchiveBuilder
from extbuild.build.build_context import BuildParams
from extbuild.build.codegen import CodeGenerator
from extbuild.build.compiler import CompilationUnitBuilder
from extbuild.build.flags import FlagSet
from extbuild.build.linker import Linker
from extbuild.build.manifest import BuildManifest
from extbuild.build.platform_info import PlatformInfo
from extbuild.errors import CleanError
from extbuild.graph.actions import ActionKind, ActionSpec
from extbuild.graph.build_state import STATE_FILE_NAME, BuildStateTracker
from extbuild.graph.callbacks import BuildCallback
from extbuild.graph.models import BuildReport, TaskNode
from extbuild.graph.task_graph import TaskGraph
from extbuild.output import log_detail, log_phase

logger = logging.getLogger(__name__)

ALL_TARGET = "all"


class Orchestrator:
    """Builds and cleans the extension module described by a manifest.

    Args:
        manifest: Static target declaration
        params: Build switches (optimize, sanitizer, jobs, output dir)
        platform_info: Toolchain lookups (defaults to the detected host)
        callback: Receives per-target progress updates
    """

    def __init__(
        self,
        manifest: BuildManifest,
        params: Optional[BuildParams] = None,
        platform_info: Optional[PlatformInfo] = None,
        callback: Optional[BuildCallback] = None,
    ):
        self.manifest = manifest
        self.params = params if params is not None else BuildParams()
        self.platform_info = platform_info if platform_info is not None else PlatformInfo.detect()
        self.callback = callback

        self.output_dir = self.params.output_dir if self.params.output_dir is not None else manifest.default_output_dir()
        self.state_file = self.output_dir / STATE_FILE_NAME

        self.generator = CodeGenerator()
        self.compiler = CompilationUnitBuilder(self.platform_info)
        self.archiver = ArchiveBuilder(self.platform_info)
        self.linker = Linker(self.platform_info)

    @property
    def module_path(self) -> Path:
        """Path of the shared library this build produces."""
        return self.output_dir / self.manifest.module

    def flag_set(self) -> FlagSet:
        """Flags shared by every compile and link action."""
        return FlagSet(
            include_paths=tuple(str(self.manifest.resolve(p)) for p in self.manifest.include_paths),
            cxxflags=self.manifest.cxxflags,
            ldflags=self.manifest.ldflags,
            optimize=self.params.optimize,
            sanitize=self.params.sanitize,
        )

    def build_graph(self, tracker: Optional[BuildStateTracker] = None) -> TaskGraph:
        """Register every target the manifest declares.

        Args:
            tracker: Fingerprint tracker to attach to the graph

        Returns:
            Unvalidated TaskGraph

        Raises:
            DuplicateTargetError: If two entries claim the same output path
        """
        manifest = self.manifest
        flags = self.flag_set()
        graph = TaskGraph(callback=self.callback, tracker=tracker, jobs=self.params.jobs)

        config_source = manifest.resolve(manifest.config_source) if manifest.config_source else None
        generated: List[Path] = []
        for output, template in manifest.generated.items():
            spec = ActionSpec(
                kind=ActionKind.GENERATE,
                output=manifest.resolve(output),
                sources=(manifest.resolve(template),),
                config_source=config_source,
            )
            graph.register(TaskNode.file(spec, self.generator))
            generated.append(spec.output)

        module_objects = [self._register_object(graph, name, source, flags, generated) for name, source in manifest.objects.items()]

        archives: List[Path] = []
        for archive in manifest.archives:
            archive_objects = [self._register_object(graph, name, source, flags, generated) for name, source in archive.objects.items()]
            spec = ActionSpec(
                kind=ActionKind.ARCHIVE,
                output=self.output_dir / archive.name,
                sources=tuple(archive_objects),
                toolchain=self.platform_info.command_signature(ActionKind.ARCHIVE),
            )
            graph.register(TaskNode.file(spec, self.archiver))
            archives.append(spec.output)

        link_spec = ActionSpec(
            kind=ActionKind.LINK,
            output=self.module_path,
            sources=tuple(module_objects),
            flags=flags,
            libraries=tuple(str(a) for a in archives) + manifest.libraries,
            toolchain=self.platform_info.command_signature(ActionKind.LINK),
        )
        graph.register(TaskNode.file(link_spec, self.linker, prerequisites=[*module_objects, *archives]))

        for name, prerequisites in manifest.auxiliary.items():
            graph.register(TaskNode.group(name, [manifest.resolve(p) for p in prerequisites]))

        graph.register(TaskNode.group(ALL_TARGET, [self.module_path, *manifest.auxiliary]))
        return graph

    def _register_object(self, graph: TaskGraph, name: str, source: str, flags: FlagSet, generated: List[Path]) -> Path:
        spec = ActionSpec(
            kind=ActionKind.COMPILE,
            output=self.output_dir / name,
            sources=(self.manifest.resolve(source),),
            flags=flags,
            toolchain=self.platform_info.command_signature(ActionKind.COMPILE),
        )
        prerequisites = list(dict.fromkeys([*spec.sources, *generated]))
        graph.register(TaskNode.file(spec, self.compiler, prerequisites=prerequisites))
        return spec.output

    def output_paths(self) -> List[Path]:
        """Every output path the build can produce."""
        return self.build_graph().output_paths()

    def run(self, targets: Optional[Sequence[str]] = None) -> BuildReport:
        """Build the requested top-level targets in order.

        Args:
            targets: Target ids (phony names or output paths); defaults to ``all``

        Returns:
            Combined BuildReport

        Raises:
            PreflightError: If a required binary is missing (nothing is built)
            ConfigurationError: If the graph is invalid (nothing is built)
            BuildActionError: On the first failing action
        """
        targets = list(targets) if targets else [ALL_TARGET]

        log_phase(1, 3, "Preflight...")
        self.linker.preflight(self.manifest.required_binaries, need_archiver=bool(self.manifest.archives))

        tracker = BuildStateTracker(self.state_file)
        graph = self.build_graph(tracker)
        graph.validate()

        log_phase(2, 3, f"Building {', '.join(targets)}...")
        report = BuildReport()
        try:
            for target in targets:
                report = report.merge(graph.build(self._target_id(graph, target)))
        finally:
            tracker.save()

        log_phase(3, 3, "Done")
        log_detail(f"Module: {self.module_path}", verbose_only=True)
        return report

    def _target_id(self, graph: TaskGraph, target: str) -> str:
        """Accept output paths relative to the output directory as well."""
        if target not in graph and (self.output_dir / target) in graph:
            return str(self.output_dir / target)
        return target

    def clean(self) -> List[Path]:
        """Remove every output path and the build state file.

        Returns:
            Paths that existed and were removed

        Raises:
            CleanError: If a path cannot be removed
        """
        removed: List[Path] = []
        for path in [*self.output_paths(), self.state_file]:
            if not path.exists() and not path.is_symlink():
                continue
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
            except OSError as e:
                raise CleanError(path, e) from e
            logger.debug(f"Removed {path}")
            removed.append(path)
        return removed
