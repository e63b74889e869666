"""Build manifest: the static declaration of every target.

The manifest is loaded once at startup into a frozen BuildManifest and passed
to the Orchestrator; nothing mutates it afterwards.

Manifest File Format (JSON):
    {
      "module": "mod_example.so",
      "output_dir": "buildout/apache2",
      "objects": {
        "mod_example.o": "src/module/mod_example.cpp",
        "Config.o": "src/module/Config.cpp"
      },
      "config_source": "src/module/config_options.json",
      "generated": {
        "src/module/Config/AutoGeneratedStruct.h": null,
        "src/module/Config/AutoGeneratedSetterFuncs.cpp": "templates/setters.tmpl"
      },
      "archives": [
        {"name": "libcommon.a", "objects": {"common/Utils.o": "src/common/Utils.cpp"}}
      ],
      "libraries": ["-lz"],
      "include_paths": ["src/common"],
      "cxxflags": ["-Wall"],
      "ldflags": [],
      "auxiliary": {"native_support": ["buildout/native_support.so"]},
      "required_binaries": ["apachectl"]
    }

Path Rules:
    - Object, archive and module names are relative to the output directory.
    - Sources, templates, include paths, the configuration source and
      auxiliary prerequisites are relative to the manifest's directory.
    - A generated entry whose template is null uses ``<generated>.tmpl``.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from extbuild.errors import ManifestError

DEFAULT_OUTPUT_DIR = "build"
TEMPLATE_SUFFIX = ".tmpl"

_KNOWN_KEYS = {
    "module",
    "output_dir",
    "objects",
    "config_source",
    "generated",
    "archives",
    "libraries",
    "include_paths",
    "cxxflags",
    "ldflags",
    "auxiliary",
    "required_binaries",
}


@dataclass(frozen=True)
class ArchiveEntry:
    """A static support archive and the objects it bundles.

    Attributes:
        name: Archive file name relative to the output directory
        objects: Object name (relative to the output directory) -> source
    """

    name: str
    objects: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "objects": dict(self.objects)}


@dataclass(frozen=True)
class BuildManifest:
    """Every target of the build, declared up front.

    Attributes:
        module: File name of the shared library to produce
        objects: Object name -> source path for the module's own objects
        base_dir: Directory that relative source paths are resolved against
        output_dir: Output directory (relative to base_dir unless absolute)
        config_source: Configuration-option source shared by all templates
        generated: Generated source path -> template path
        archives: Support archives linked into the module, in link order
        libraries: Extra library references passed to the linker
        include_paths: Include directories for every compilation
        cxxflags: Extra compile flags for every compilation
        ldflags: Extra link flags for the module
        auxiliary: Auxiliary target name -> prerequisites; built by ``all``
        required_binaries: Binaries that must exist before anything is built
    """

    module: str
    objects: dict[str, str]
    base_dir: Path = Path(".")
    output_dir: str = DEFAULT_OUTPUT_DIR
    config_source: Optional[str] = None
    generated: dict[str, str] = field(default_factory=dict)
    archives: tuple[ArchiveEntry, ...] = field(default_factory=tuple)
    libraries: tuple[str, ...] = field(default_factory=tuple)
    include_paths: tuple[str, ...] = field(default_factory=tuple)
    cxxflags: tuple[str, ...] = field(default_factory=tuple)
    ldflags: tuple[str, ...] = field(default_factory=tuple)
    auxiliary: dict[str, tuple[str, ...]] = field(default_factory=dict)
    required_binaries: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Optional[Path] = None) -> "BuildManifest":
        """Create a manifest from parsed JSON.

        Args:
            data: Manifest dictionary
            base_dir: Directory relative paths are resolved against

        Returns:
            BuildManifest instance

        Raises:
            ManifestError: If required fields are missing or have the wrong type
        """
        if not isinstance(data, dict):
            raise ManifestError("Manifest must be a JSON object")

        unknown = sorted(set(data) - _KNOWN_KEYS)
        if unknown:
            raise ManifestError(f"Unknown manifest field(s): {', '.join(unknown)}")

        module = data.get("module")
        if not isinstance(module, str) or not module:
            raise ManifestError("Manifest field 'module' must be a non-empty string")

        objects = _string_map(data, "objects")
        if not objects:
            raise ManifestError("Manifest field 'objects' must list at least one object")

        config_source = data.get("config_source")
        if config_source is not None and not isinstance(config_source, str):
            raise ManifestError("Manifest field 'config_source' must be a string")

        raw_generated = data.get("generated", {})
        if not isinstance(raw_generated, dict):
            raise ManifestError("Manifest field 'generated' must be an object")
        generated: dict[str, str] = {}
        for output, template in raw_generated.items():
            if template is None:
                template = output + TEMPLATE_SUFFIX
            if not isinstance(template, str):
                raise ManifestError(f"Template for generated source '{output}' must be a string or null")
            generated[output] = template
        if generated and config_source is None:
            raise ManifestError("Manifest declares generated sources but no 'config_source'")

        raw_archives = data.get("archives", [])
        if not isinstance(raw_archives, list):
            raise ManifestError("Manifest field 'archives' must be a list")
        archives = []
        for entry in raw_archives:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                raise ManifestError("Each archive needs a 'name' string and an 'objects' object")
            archive_objects = _string_map(entry, "objects", context=f"archive '{entry['name']}'")
            if not archive_objects:
                raise ManifestError(f"Archive '{entry['name']}' has no objects")
            archives.append(ArchiveEntry(name=entry["name"], objects=archive_objects))

        raw_auxiliary = data.get("auxiliary", {})
        if not isinstance(raw_auxiliary, dict):
            raise ManifestError("Manifest field 'auxiliary' must be an object")
        auxiliary = {}
        for name, prerequisites in raw_auxiliary.items():
            if not _is_string_list(prerequisites):
                raise ManifestError(f"Prerequisites of auxiliary target '{name}' must be a list of strings")
            auxiliary[name] = tuple(prerequisites)

        output_dir = data.get("output_dir", DEFAULT_OUTPUT_DIR)
        if not isinstance(output_dir, str) or not output_dir:
            raise ManifestError("Manifest field 'output_dir' must be a non-empty string")

        return cls(
            module=module,
            objects=objects,
            base_dir=base_dir if base_dir is not None else Path("."),
            output_dir=output_dir,
            config_source=config_source,
            generated=generated,
            archives=tuple(archives),
            libraries=_string_tuple(data, "libraries"),
            include_paths=_string_tuple(data, "include_paths"),
            cxxflags=_string_tuple(data, "cxxflags"),
            ldflags=_string_tuple(data, "ldflags"),
            auxiliary=auxiliary,
            required_binaries=_string_tuple(data, "required_binaries"),
        )

    @classmethod
    def load(cls, manifest_path: Path) -> "BuildManifest":
        """Load a manifest file; relative paths resolve against its directory.

        Raises:
            ManifestError: If the file cannot be read or parsed
        """
        manifest_path = Path(manifest_path)
        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ManifestError(f"Manifest not found: {manifest_path}") from None
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid JSON in {manifest_path}: {e}") from e
        except OSError as e:
            raise ManifestError(f"Failed to read {manifest_path}: {e}") from e
        return cls.from_dict(data, base_dir=manifest_path.parent)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (base_dir is not included)."""
        return {
            "module": self.module,
            "output_dir": self.output_dir,
            "objects": dict(self.objects),
            "config_source": self.config_source,
            "generated": dict(self.generated),
            "archives": [archive.to_dict() for archive in self.archives],
            "libraries": list(self.libraries),
            "include_paths": list(self.include_paths),
            "cxxflags": list(self.cxxflags),
            "ldflags": list(self.ldflags),
            "auxiliary": {name: list(prereqs) for name, prereqs in self.auxiliary.items()},
            "required_binaries": list(self.required_binaries),
        }

    def resolve(self, path: str) -> Path:
        """Resolve a manifest-relative path."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.base_dir / candidate

    def default_output_dir(self) -> Path:
        """Output directory declared by the manifest."""
        return self.resolve(self.output_dir)


def _string_map(data: dict[str, Any], key: str, context: str = "Manifest") -> dict[str, str]:
    value = data.get(key, {})
    if not isinstance(value, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise ManifestError(f"{context} field '{key}' must map names to path strings")
    return dict(value)


def _string_tuple(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key, [])
    if not _is_string_list(value):
        raise ManifestError(f"Manifest field '{key}' must be a list of strings")
    return tuple(value)


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)
