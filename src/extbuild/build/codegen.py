"""Template-driven source generation.

Generated sources (option structs, setter functions, serialization code) are
rendered from a template and a configuration-option source before anything
is compiled.

Configuration Source:
    A JSON object, for example::

        {
          "struct_name": "DirConfig",
          "options": [
            {"name": "enabled", "type": "bool", "default": true},
            {"name": "max_pool_size", "type": "int", "default": 6}
          ]
        }

Template Syntax:
    - ``${field}`` or ``$field`` substitutes a value; dotted names walk into
      objects (``${option.name}``); ``$$`` is a literal dollar sign.
    - Lines whose first non-blank characters are ``@@`` are directives:
      ``@@for NAME in PATH``, ``@@if PATH``, ``@@if not PATH``, ``@@else``,
      ``@@end`` and ``@@# comment``. Directive lines produce no output.
    - Inside a loop, ``loop.index``, ``loop.first`` and ``loop.last`` are
      available. ``template_name`` is the template's file name.
    - Booleans render as ``true`` / ``false``; null renders as nothing.

Rendering is deterministic: the same template and configuration always
produce byte-identical output (UTF-8, ``\\n`` line endings). Output is
written atomically, so a failed render never leaves a partial file.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any, List, Optional, Union

from extbuild.errors import TemplateRenderError
from extbuild.graph.actions import Action, ActionKind, ActionSpec

logger = logging.getLogger(__name__)

_DIRECTIVE_PREFIX = "@@"
_FOR_PATTERN = re.compile(r"^for\s+([_A-Za-z][_A-Za-z0-9]*)\s+in\s+([_A-Za-z][_A-Za-z0-9.]*)$")
_IF_PATTERN = re.compile(r"^if\s+(not\s+)?([_A-Za-z][_A-Za-z0-9.]*)$")


class TemplateError(Exception):
    """Raised by TemplateRenderer for invalid syntax or missing fields."""

    pass


class _DottedTemplate(Template):
    """string.Template that accepts dotted names such as ``option.name``."""

    idpattern = r"(?a:[_a-z][_a-z0-9]*(?:\.[_a-z][_a-z0-9]*)*)"


@dataclass
class _Text:
    line: _DottedTemplate
    lineno: int


@dataclass
class _Loop:
    var: str
    path: str
    lineno: int
    body: List["_Block"] = field(default_factory=list)


@dataclass
class _Conditional:
    path: str
    negate: bool
    lineno: int
    body: List["_Block"] = field(default_factory=list)
    orelse: List["_Block"] = field(default_factory=list)
    in_else: bool = False


_Block = Union[_Text, _Loop, _Conditional]


class _Scope:
    """Name lookup through nested loop variables and the configuration."""

    def __init__(self, frames: List[dict[str, Any]]):
        self._frames = frames

    def push(self, frame: dict[str, Any]) -> "_Scope":
        return _Scope(self._frames + [frame])

    def resolve(self, dotted: str) -> Any:
        head, *rest = dotted.split(".")
        for frame in reversed(self._frames):
            if head in frame:
                value = frame[head]
                break
        else:
            raise KeyError(dotted)
        for part in rest:
            if not isinstance(value, dict) or part not in value:
                raise KeyError(dotted)
            value = value[part]
        return value

    def __getitem__(self, dotted: str) -> str:
        return _format_value(self.resolve(dotted))


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class TemplateRenderer:
    """Parses a template once and renders it against configuration data.

    Args:
        text: Template source
        name: Template name used in error messages

    Raises:
        TemplateError: If the template syntax is invalid
    """

    def __init__(self, text: str, name: str = "<template>"):
        self.name = name
        self._blocks = self._parse(text)

    def _parse(self, text: str) -> List[_Block]:
        root: List[_Block] = []
        stack: List[Union[_Loop, _Conditional]] = []

        def current() -> List[_Block]:
            if not stack:
                return root
            top = stack[-1]
            if isinstance(top, _Conditional) and top.in_else:
                return top.orelse
            return top.body

        for lineno, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped.startswith(_DIRECTIVE_PREFIX):
                template = _DottedTemplate(line)
                if not template.is_valid():
                    raise TemplateError(f"{self.name}:{lineno}: invalid placeholder in {line.strip()!r}")
                current().append(_Text(template, lineno))
                continue

            directive = stripped[len(_DIRECTIVE_PREFIX):].strip()
            if directive.startswith("#"):
                continue

            for_match = _FOR_PATTERN.match(directive)
            if_match = _IF_PATTERN.match(directive)
            if for_match:
                loop = _Loop(var=for_match.group(1), path=for_match.group(2), lineno=lineno)
                current().append(loop)
                stack.append(loop)
            elif if_match:
                cond = _Conditional(path=if_match.group(2), negate=bool(if_match.group(1)), lineno=lineno)
                current().append(cond)
                stack.append(cond)
            elif directive == "else":
                if not stack or not isinstance(stack[-1], _Conditional) or stack[-1].in_else:
                    raise TemplateError(f"{self.name}:{lineno}: '@@else' without matching '@@if'")
                stack[-1].in_else = True
            elif directive == "end":
                if not stack:
                    raise TemplateError(f"{self.name}:{lineno}: '@@end' without open block")
                stack.pop()
            else:
                raise TemplateError(f"{self.name}:{lineno}: unknown directive '@@{directive}'")

        if stack:
            raise TemplateError(f"{self.name}:{stack[-1].lineno}: block is never closed with '@@end'")
        return root

    def render(self, config: dict[str, Any]) -> str:
        """Render the template.

        Args:
            config: Configuration data (top-level JSON object)

        Returns:
            Rendered text, every line terminated by ``\\n``

        Raises:
            TemplateError: If the template references a missing field or
                loops over something that is not a list
        """
        builtins = {"template_name": Path(self.name).name}
        lines: List[str] = []
        self._render_blocks(self._blocks, _Scope([builtins, config]), lines)
        return "".join(line + "\n" for line in lines)

    def _render_blocks(self, blocks: List[_Block], scope: _Scope, out: List[str]) -> None:
        for block in blocks:
            if isinstance(block, _Text):
                try:
                    out.append(block.line.substitute(scope))
                except KeyError as e:
                    raise TemplateError(f"{self.name}:{block.lineno}: configuration has no field '{e.args[0]}'") from None
            elif isinstance(block, _Loop):
                items = self._lookup(scope, block.path, block.lineno)
                if not isinstance(items, list):
                    raise TemplateError(f"{self.name}:{block.lineno}: '{block.path}' is not a list")
                for index, item in enumerate(items):
                    loop_info = {"index": index, "first": index == 0, "last": index == len(items) - 1}
                    self._render_blocks(block.body, scope.push({block.var: item, "loop": loop_info}), out)
            else:
                value = bool(self._lookup(scope, block.path, block.lineno))
                if block.negate:
                    value = not value
                self._render_blocks(block.body if value else block.orelse, scope, out)

    def _lookup(self, scope: _Scope, path: str, lineno: int) -> Any:
        try:
            return scope.resolve(path)
        except KeyError:
            raise TemplateError(f"{self.name}:{lineno}: configuration has no field '{path}'") from None


def load_config_source(config_source: Path) -> dict[str, Any]:
    """Load a configuration-option source.

    Raises:
        TemplateError: If the file cannot be read, is not valid JSON or is
            not a JSON object
    """
    try:
        with open(config_source, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise TemplateError(f"cannot read configuration source {config_source}: {e}") from None
    except UnicodeDecodeError as e:
        raise TemplateError(f"configuration source {config_source} is not valid UTF-8: {e}") from None
    except json.JSONDecodeError as e:
        raise TemplateError(f"invalid configuration source {config_source}: {e}") from None
    if not isinstance(data, dict):
        raise TemplateError(f"configuration source {config_source} must contain a JSON object")
    return data


def write_atomically(output_path: Path, text: str) -> None:
    """Write ``text`` to ``output_path`` in one step (temp file + rename)."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = output_path.with_name(output_path.name + ".tmp")
    temp_file.write_bytes(text.encode("utf-8"))
    temp_file.replace(output_path)


class CodeGenerator(Action):
    """Renders generated sources from templates."""

    kind = ActionKind.GENERATE

    def execute(self, spec: Optional[ActionSpec]) -> None:
        """Generate ``spec.output`` from ``spec.sources[0]`` and ``spec.config_source``."""
        if spec is None or not spec.sources or spec.config_source is None:
            raise ValueError("generate action needs a template source and a configuration source")
        self.generate(spec.sources[0], spec.output, spec.config_source)

    def discard_output(self, spec: ActionSpec) -> None:
        """Keep the previous generated file; writes are atomic, so it is complete."""

    def generate(self, template_path: Path, output_path: Path, config_source: Path) -> Path:
        """Render ``template_path`` with ``config_source`` into ``output_path``.

        Args:
            template_path: Template file
            output_path: Generated file to write
            config_source: JSON configuration-option source

        Returns:
            Path to the generated file

        Raises:
            TemplateRenderError: If the template is invalid, references a
                missing field, or either input cannot be read. The output
                file is left untouched in that case.
        """
        template_path = Path(template_path)
        output_path = Path(output_path)
        target = str(output_path)

        try:
            template_text = template_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateRenderError(target, f"cannot read template {template_path}: {e}") from e

        try:
            renderer = TemplateRenderer(template_text, name=str(template_path))
            rendered = renderer.render(load_config_source(Path(config_source)))
        except TemplateError as e:
            raise TemplateRenderError(target, e) from e

        write_atomically(output_path, rendered)
        logger.debug(f"Generated {output_path} from {template_path} ({len(rendered)} bytes)")
        return output_path
