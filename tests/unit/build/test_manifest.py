"""Unit tests for BuildManifest loading and validation."""

import json
from pathlib import Path

import pytest

from extbuild.build.manifest import ArchiveEntry, BuildManifest
from extbuild.errors import ManifestError

FULL_MANIFEST = {
    "module": "mod_example.so",
    "output_dir": "buildout/apache2",
    "objects": {"mod_example.o": "src/mod_example.cpp", "Config.o": "src/Config.cpp"},
    "config_source": "src/config_options.json",
    "generated": {"src/Config/AutoGeneratedStruct.h": None, "src/Config/Setters.cpp": "templates/setters.tmpl"},
    "archives": [{"name": "libcommon.a", "objects": {"common/Utils.o": "src/common/Utils.cpp"}}],
    "libraries": ["-lz"],
    "include_paths": ["src/common"],
    "cxxflags": ["-Wall"],
    "ldflags": ["-Wl,-z,defs"],
    "auxiliary": {"native_support": ["buildout/native_support.so"]},
    "required_binaries": ["apachectl"],
}


class TestBuildManifestFromDict:
    def test_full_manifest(self):
        manifest = BuildManifest.from_dict(FULL_MANIFEST, base_dir=Path("/project"))

        assert manifest.module == "mod_example.so"
        assert list(manifest.objects) == ["mod_example.o", "Config.o"]
        assert manifest.generated == {
            "src/Config/AutoGeneratedStruct.h": "src/Config/AutoGeneratedStruct.h.tmpl",
            "src/Config/Setters.cpp": "templates/setters.tmpl",
        }
        assert manifest.archives == (ArchiveEntry("libcommon.a", {"common/Utils.o": "src/common/Utils.cpp"}),)
        assert manifest.libraries == ("-lz",)
        assert manifest.auxiliary == {"native_support": ("buildout/native_support.so",)}
        assert manifest.required_binaries == ("apachectl",)
        assert manifest.default_output_dir() == Path("/project/buildout/apache2")

    def test_minimal_manifest_defaults(self):
        manifest = BuildManifest.from_dict({"module": "lib.so", "objects": {"gen.o": "Gen.cpp"}})
        assert manifest.output_dir == "build"
        assert manifest.generated == {}
        assert manifest.archives == ()
        assert manifest.base_dir == Path(".")

    def test_to_dict_preserves_fields(self):
        manifest = BuildManifest.from_dict(FULL_MANIFEST)
        data = manifest.to_dict()
        assert BuildManifest.from_dict(data) == manifest

    def test_resolve_keeps_absolute_paths(self):
        manifest = BuildManifest.from_dict({"module": "lib.so", "objects": {"a.o": "a.cpp"}}, base_dir=Path("/project"))
        assert manifest.resolve("src/a.cpp") == Path("/project/src/a.cpp")
        assert manifest.resolve("/abs/a.cpp") == Path("/abs/a.cpp")

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"objects": {"a.o": "a.cpp"}}, "'module'"),
            ({"module": "lib.so"}, "at least one object"),
            ({"module": "lib.so", "objects": {"a.o": 3}}, "'objects'"),
            ({"module": "lib.so", "objects": {"a.o": "a.cpp"}, "generated": {"Gen.cpp": None}}, "no 'config_source'"),
            ({"module": "lib.so", "objects": {"a.o": "a.cpp"}, "libraries": "-lz"}, "'libraries'"),
            ({"module": "lib.so", "objects": {"a.o": "a.cpp"}, "archives": [{"name": "x.a", "objects": {}}]}, "has no objects"),
            ({"module": "lib.so", "objects": {"a.o": "a.cpp"}, "auxiliary": {"x": "y"}}, "auxiliary target 'x'"),
            ({"module": "lib.so", "objects": {"a.o": "a.cpp"}, "obejcts": {}}, "Unknown manifest field"),
        ],
    )
    def test_invalid_manifests(self, data, message):
        with pytest.raises(ManifestError, match=message):
            BuildManifest.from_dict(data)


class TestBuildManifestLoad:
    def test_load_resolves_against_manifest_directory(self, tmp_path):
        path = tmp_path / "project" / "extbuild.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"module": "lib.so", "objects": {"gen.o": "Gen.cpp"}}))

        manifest = BuildManifest.load(path)

        assert manifest.base_dir == path.parent
        assert manifest.resolve("Gen.cpp") == tmp_path / "project" / "Gen.cpp"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="Manifest not found"):
            BuildManifest.load(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "extbuild.json"
        path.write_text("{")
        with pytest.raises(ManifestError, match="Invalid JSON"):
            BuildManifest.load(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "extbuild.json"
        path.write_text("[]")
        with pytest.raises(ManifestError, match="JSON object"):
            BuildManifest.load(path)
