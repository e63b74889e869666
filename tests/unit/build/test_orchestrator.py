"""Unit tests for the Orchestrator: manifest wiring, incremental runs and clean."""

import dataclasses
import json
import os
from pathlib import Path

import pytest

from extbuild.build.build_context import BuildParams
from extbuild.build.manifest import BuildManifest
from extbuild.build.orchestrator import ALL_TARGET, Orchestrator
from extbuild.errors import (
    BuildActionError,
    CleanError,
    CompilationError,
    CyclicDependencyError,
    DuplicateTargetError,
    PreflightError,
    TemplateRenderError,
)
from extbuild.graph.build_state import STATE_FILE_NAME

GEN_TEMPLATE = """\
@@# Generated from ${template_name}
@@for option in options
int ${option.name} = ${option.default};
@@end
"""


def _set_mtime(path: Path, offset_seconds: int) -> None:
    base = 1_700_000_000 * 1_000_000_000
    mtime = base + offset_seconds * 1_000_000_000
    os.utime(path, ns=(mtime, mtime))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Gen.cpp (from Gen.cpp.tmpl + opts.def) -> gen.o -> lib.so"""
    root = tmp_path / "project"
    root.mkdir()
    (root / "Gen.cpp.tmpl").write_text(GEN_TEMPLATE)
    (root / "opts.def").write_text(json.dumps({"options": [{"name": "pool_size", "default": 6}]}))
    for name in ("Gen.cpp.tmpl", "opts.def"):
        _set_mtime(root / name, 0)
    return root


def _manifest(project: Path, **overrides) -> BuildManifest:
    data = {
        "module": "lib.so",
        "output_dir": "out",
        "objects": {"gen.o": "Gen.cpp"},
        "config_source": "opts.def",
        "generated": {"Gen.cpp": None},
    }
    data.update(overrides)
    return BuildManifest.from_dict(data, base_dir=project)


def _names(ids: list[str]) -> list[str]:
    return [Path(i).name for i in ids]


class TestIncrementalScenario:
    """Generator, compiler and linker run only when their inputs changed."""

    def test_fresh_checkout_builds_everything_in_order(self, project, toolchain, fake_tools):
        orchestrator = Orchestrator(_manifest(project), BuildParams(), toolchain)

        report = orchestrator.run(["lib.so"])

        assert _names(report.executed) == ["Gen.cpp", "gen.o", "lib.so"]
        assert fake_tools.outputs() == ["gen.o", "lib.so"]
        assert (project / "Gen.cpp").read_text() == "int pool_size = 6;\n"
        assert (project / "out" / "lib.so").exists()

    def test_second_build_does_nothing(self, project, toolchain, fake_tools):
        Orchestrator(_manifest(project), BuildParams(), toolchain).run(["lib.so"])
        fake_tools.commands.clear()

        report = Orchestrator(_manifest(project), BuildParams(), toolchain).run(["lib.so"])

        assert report.executed == []
        assert fake_tools.commands == []

    def test_editing_config_source_reruns_whole_chain(self, project, toolchain, fake_tools):
        Orchestrator(_manifest(project), BuildParams(), toolchain).run(["lib.so"])
        for path in (project / "Gen.cpp", project / "out" / "gen.o", project / "out" / "lib.so"):
            _set_mtime(path, 10)
        (project / "opts.def").write_text(json.dumps({"options": [{"name": "pool_size", "default": 12}]}))
        _set_mtime(project / "opts.def", 20)
        fake_tools.commands.clear()

        report = Orchestrator(_manifest(project), BuildParams(), toolchain).run(["lib.so"])

        assert _names(report.executed) == ["Gen.cpp", "gen.o", "lib.so"]
        assert fake_tools.outputs() == ["gen.o", "lib.so"]
        assert (project / "Gen.cpp").read_text() == "int pool_size = 12;\n"

        fake_tools.commands.clear()
        assert Orchestrator(_manifest(project), BuildParams(), toolchain).run(["lib.so"]).executed == []

    def test_changed_flags_recompile_but_do_not_regenerate(self, project, toolchain, fake_tools):
        """Turning on optimization rebuilds compile and link actions only."""
        Orchestrator(_manifest(project), BuildParams(), toolchain).run()
        fake_tools.commands.clear()

        report = Orchestrator(_manifest(project), BuildParams(optimize=True), toolchain).run()

        assert _names(report.executed) == ["gen.o", "lib.so"]
        assert all("-O" in cmd for cmd in fake_tools.commands)

    def test_generated_sources_are_prerequisites_of_every_object(self, project, toolchain, fake_tools):
        (project / "other.cpp").write_text("")
        _set_mtime(project / "other.cpp", 0)
        manifest = _manifest(project, objects={"gen.o": "Gen.cpp", "other.o": "other.cpp"})
        Orchestrator(manifest, BuildParams(), toolchain).run()
        for path in (project / "out" / "gen.o", project / "out" / "other.o", project / "out" / "lib.so"):
            _set_mtime(path, 10)
        _set_mtime(project / "Gen.cpp", 20)
        fake_tools.commands.clear()

        Orchestrator(manifest, BuildParams(), toolchain).run()

        assert fake_tools.outputs() == ["gen.o", "other.o", "lib.so"]

    def test_touched_source_leaves_unrelated_object_alone(self, project, toolchain, fake_tools):
        """Editing a.cpp recompiles a.o and relinks; b.o is not rebuilt."""
        for name in ("a.cpp", "b.cpp"):
            (project / name).write_text("")
            _set_mtime(project / name, 0)
        manifest = _manifest(project, objects={"a.o": "a.cpp", "b.o": "b.cpp"}, generated={}, config_source=None)
        Orchestrator(manifest, BuildParams(), toolchain).run()
        for name in ("a.o", "b.o", "lib.so"):
            _set_mtime(project / "out" / name, 10)
        _set_mtime(project / "a.cpp", 20)
        fake_tools.commands.clear()

        report = Orchestrator(manifest, BuildParams(), toolchain).run()

        assert _names(report.executed) == ["a.o", "lib.so"]
        assert fake_tools.outputs() == ["a.o", "lib.so"]

    def test_changed_platform_cxxflags_recompile(self, project, toolchain, fake_tools):
        """A new CXXFLAGS define rebuilds the object and the module, not the generated source."""
        Orchestrator(_manifest(project), BuildParams(), toolchain).run()
        for path in (project / "Gen.cpp", project / "out" / "gen.o", project / "out" / "lib.so"):
            _set_mtime(path, 10)
        fake_tools.commands.clear()
        changed = dataclasses.replace(toolchain, module_cxxflags=toolchain.module_cxxflags + ("-DNEW_DEFINE=1",))

        report = Orchestrator(_manifest(project), BuildParams(), changed).run()

        assert _names(report.executed) == ["gen.o", "lib.so"]
        assert fake_tools.outputs() == ["gen.o", "lib.so"]
        assert "-DNEW_DEFINE=1" in fake_tools.commands[0]

    def test_changed_platform_ldflags_relink_only(self, project, toolchain, fake_tools):
        Orchestrator(_manifest(project), BuildParams(), toolchain).run()
        fake_tools.commands.clear()
        changed = dataclasses.replace(toolchain, module_ldflags=("-Wl,-z,defs",))

        report = Orchestrator(_manifest(project), BuildParams(), changed).run()

        assert _names(report.executed) == ["lib.so"]
        assert "-Wl,-z,defs" in fake_tools.commands[0]

    def test_changed_compiler_rebuilds_objects(self, project, toolchain, fake_tools):
        """Switching CXX counts as a flag change for compile and link actions."""
        Orchestrator(_manifest(project), BuildParams(), toolchain).run()
        fake_tools.commands.clear()
        changed = dataclasses.replace(toolchain, cxx=(*toolchain.cxx, "-std=c++17"))

        report = Orchestrator(_manifest(project), BuildParams(), changed).run()

        assert _names(report.executed) == ["gen.o", "lib.so"]


class TestGraphWiring:
    """Archives, auxiliary targets and the 'all' target."""

    def test_all_builds_module_and_auxiliary_targets(self, project, toolchain, fake_tools):
        support = project / "native" / "support.so"
        support.parent.mkdir()
        support.write_text("")
        manifest = _manifest(project, auxiliary={"native_support": ["native/support.so"]})

        graph = Orchestrator(manifest, BuildParams(), toolchain).build_graph()

        all_target = graph.get(ALL_TARGET)
        assert all_target.phony
        assert all_target.prerequisites == [str(project / "out" / "lib.so"), "native_support"]
        assert graph.get("native_support").prerequisites == [str(support)]

    def test_archives_are_built_and_linked(self, project, toolchain, fake_tools):
        (project / "Utils.cpp").write_text("")
        manifest = _manifest(
            project,
            archives=[{"name": "libcommon.a", "objects": {"common/Utils.o": "Utils.cpp"}}],
            libraries=["-lz"],
        )

        Orchestrator(manifest, BuildParams(), toolchain).run()

        assert fake_tools.outputs() == ["gen.o", "Utils.o", "libcommon.a", "lib.so"]
        link = fake_tools.commands[-1]
        archive = str(project / "out" / "libcommon.a")
        assert link.index(archive) < link.index("-lz")
        assert fake_tools.commands[2][:2] == [toolchain.ar[0], "rcs"]

    def test_duplicate_object_names_are_rejected(self, project, toolchain):
        manifest = _manifest(project, archives=[{"name": "libcommon.a", "objects": {"gen.o": "Gen.cpp"}}])
        with pytest.raises(DuplicateTargetError):
            Orchestrator(manifest, BuildParams(), toolchain).build_graph()

    def test_cycle_fails_before_any_action(self, project, toolchain, fake_tools):
        """An object compiled from its own output path is a cycle."""
        manifest = _manifest(project, objects={"gen.o": "Gen.cpp", "loop.o": "out/loop.o"})

        with pytest.raises(CyclicDependencyError):
            Orchestrator(manifest, BuildParams(), toolchain).run()

        assert fake_tools.commands == []
        assert not (project / "Gen.cpp").exists()

    def test_include_paths_resolve_against_manifest(self, project, toolchain, fake_tools):
        manifest = _manifest(project, include_paths=["src/common"])
        Orchestrator(manifest, BuildParams(), toolchain).run()
        assert f"-I{project / 'src' / 'common'}" in fake_tools.commands[0]

    def test_output_dir_override(self, project, toolchain, fake_tools, tmp_path):
        elsewhere = tmp_path / "elsewhere"
        orchestrator = Orchestrator(_manifest(project), BuildParams(output_dir=elsewhere), toolchain)
        orchestrator.run()
        assert orchestrator.module_path == elsewhere / "lib.so"
        assert (elsewhere / "lib.so").exists()
        assert (elsewhere / STATE_FILE_NAME).exists()


class TestRunFailures:
    def test_preflight_failure_builds_nothing(self, project, toolchain, fake_tools):
        manifest = _manifest(project, required_binaries=["httpd"])

        with pytest.raises(PreflightError, match="httpd"):
            Orchestrator(manifest, BuildParams(), toolchain).run()

        assert fake_tools.commands == []
        assert not (project / "Gen.cpp").exists()

    def test_compile_failure_stops_before_link(self, project, toolchain, fake_tools):
        fake_tools.fail_for["gen.o"] = "Gen.cpp:1: error: boom"

        with pytest.raises(BuildActionError) as exc_info:
            Orchestrator(_manifest(project), BuildParams(), toolchain).run()

        assert isinstance(exc_info.value, CompilationError)
        assert exc_info.value.target == str(project / "out" / "gen.o")
        assert fake_tools.outputs() == ["gen.o"]
        # Successful targets are still recorded
        state = json.loads((project / "out" / STATE_FILE_NAME).read_text())
        assert str(project / "Gen.cpp") in state

    def test_parallel_build_runs_each_action_once(self, project, toolchain, fake_tools):
        objects = {f"obj{i}.o": f"src{i}.cpp" for i in range(8)}
        for source in objects.values():
            (project / source).write_text("")
        manifest = _manifest(project, objects={"gen.o": "Gen.cpp", **objects})

        report = Orchestrator(manifest, BuildParams(jobs=4), toolchain).run()

        assert sorted(fake_tools.outputs()) == sorted(["gen.o", "lib.so", *objects])
        assert fake_tools.outputs()[-1] == "lib.so"
        assert len(report.executed) == 11

    def test_failed_render_keeps_previous_generated_source(self, project, toolchain, fake_tools):
        """A broken template fails the build but the last good Gen.cpp survives."""
        Orchestrator(_manifest(project), BuildParams(), toolchain).run()
        _set_mtime(project / "Gen.cpp", 10)
        (project / "Gen.cpp.tmpl").write_text("int ${missing_field};\n")
        _set_mtime(project / "Gen.cpp.tmpl", 20)
        fake_tools.commands.clear()

        with pytest.raises(TemplateRenderError, match="missing_field"):
            Orchestrator(_manifest(project), BuildParams(), toolchain).run()

        assert (project / "Gen.cpp").read_text() == "int pool_size = 6;\n"
        assert fake_tools.commands == []


class TestClean:
    def test_clean_removes_outputs_and_state(self, project, toolchain, fake_tools):
        orchestrator = Orchestrator(_manifest(project), BuildParams(), toolchain)
        orchestrator.run()

        removed = orchestrator.clean()

        assert sorted(p.name for p in removed) == sorted(["Gen.cpp", "gen.o", "lib.so", STATE_FILE_NAME])
        assert not (project / "out" / "lib.so").exists()
        assert (project / "Gen.cpp.tmpl").exists()
        assert orchestrator.clean() == []

    def test_clean_then_build_rebuilds_everything(self, project, toolchain, fake_tools):
        orchestrator = Orchestrator(_manifest(project), BuildParams(), toolchain)
        orchestrator.run()
        orchestrator.clean()
        fake_tools.commands.clear()

        report = Orchestrator(_manifest(project), BuildParams(), toolchain).run()

        assert _names(report.executed) == ["Gen.cpp", "gen.o", "lib.so"]

    def test_clean_failure_raises(self, project, toolchain, fake_tools, monkeypatch):
        orchestrator = Orchestrator(_manifest(project), BuildParams(), toolchain)
        orchestrator.run()

        def refuse(self, missing_ok=False):
            raise PermissionError("read-only file system")

        monkeypatch.setattr(Path, "unlink", refuse)
        with pytest.raises(CleanError, match="read-only file system"):
            orchestrator.clean()

    def test_output_paths(self, project, toolchain):
        paths = Orchestrator(_manifest(project), BuildParams(), toolchain).output_paths()
        assert paths == [project / "Gen.cpp", project / "out" / "gen.o", project / "out" / "lib.so"]
