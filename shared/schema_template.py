"""
Schema templating for parameterized conditions.

A condition author writes a JSON Schema containing ``Placeholder`` values
(or keys). ``render_schema`` turns it into a plain schema plus a map of JSON
pointers recording where each placeholder sat; ``resolve_schema`` later fills
those locations from a concrete option object at rule-compile time.

Example::

    inputs = SchemaInputs()
    schema = {"properties": {"a": {"const": inputs.a}, inputs.key: {"type": "integer"}}}
    rendered = render_schema(schema)
    resolve_schema(rendered.schema, rendered.pointers, {"a": 1, "key": "b"})
    # {"properties": {"a": {"const": 1}, "b": {"type": "integer"}}}
"""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from shared.errors import MissingOptionError, TemplatePointerError


@dataclass(frozen=True)
class Placeholder:
    """Opaque marker for a schema location filled from option ``name``."""

    name: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def sentinel(self) -> str:
        """Printable form stored in the rendered schema."""
        return f"{{{{{self.name}:{self.token[:8]}}}}}"

    def __str__(self) -> str:
        return self.sentinel


def schema_input(name: str) -> Placeholder:
    """Create a placeholder for option ``name``."""
    return Placeholder(name)


class SchemaInputs:
    """Hands out a fresh placeholder for every attribute or item accessed."""

    def __getattr__(self, name: str) -> Placeholder:
        if name.startswith("__"):
            raise AttributeError(name)
        return Placeholder(name)

    def __getitem__(self, name: str) -> Placeholder:
        return Placeholder(name)


class TemplatePointer(BaseModel):
    """Where an option is applied inside a rendered schema."""

    name: str
    iskey: bool = False


Pointers = Dict[str, TemplatePointer]


class RenderedSchema(NamedTuple):
    schema: Any
    pointers: Pointers


def _escape(part: str) -> str:
    return part.replace("~", "~0").replace("/", "~1")


def _unescape(part: str) -> str:
    return part.replace("~1", "/").replace("~0", "~")


def compile_pointer(parts: Sequence[str]) -> str:
    """Build an RFC 6901 JSON pointer from path segments."""
    return "".join("/" + _escape(str(part)) for part in parts)


def parse_pointer(pointer: str) -> List[str]:
    """Split an RFC 6901 JSON pointer into path segments."""
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise TemplatePointerError(f"Invalid JSON pointer: {pointer!r}", {"pointer": pointer})
    return [_unescape(part) for part in pointer[1:].split("/")]


def _record(pointers: Pointers, path: List[str], name: str, iskey: bool) -> None:
    pointer = compile_pointer(path)
    if pointer in pointers:
        raise TemplatePointerError(
            "Placeholders collide on the same schema location",
            {"pointer": pointer, "names": [pointers[pointer].name, name]}
        )
    pointers[pointer] = TemplatePointer(name=name, iskey=iskey)


def _render(node: Any, path: List[str], pointers: Pointers) -> Any:
    if isinstance(node, Placeholder):
        _record(pointers, path, node.name, iskey=False)
        return node.sentinel

    if isinstance(node, Mapping):
        rendered = {}
        for key, value in node.items():
            if isinstance(key, Placeholder):
                out_key = key.sentinel
                _record(pointers, path + [out_key], key.name, iskey=True)
            else:
                out_key = key
            rendered[out_key] = _render(value, path + [str(out_key)], pointers)
        return rendered

    if isinstance(node, (list, tuple)):
        return [_render(value, path + [str(index)], pointers) for index, value in enumerate(node)]

    return node


def render_schema(schema: Any) -> RenderedSchema:
    """Replace placeholders with printable sentinels and record their pointers."""
    pointers: Pointers = {}
    rendered = _render(schema, [], pointers)
    return RenderedSchema(rendered, pointers)


def _child(container: Any, part: str, pointer: str) -> Any:
    try:
        if isinstance(container, list):
            return container[int(part)]
        return container[part]
    except (KeyError, IndexError, ValueError, TypeError) as e:
        raise TemplatePointerError(
            "Template pointer does not resolve inside schema",
            {"pointer": pointer}
        ) from e


def _locate(schema: Any, parts: List[str], pointer: str) -> Tuple[Any, str]:
    """Return the container holding the last segment of ``parts``."""
    if not parts:
        raise TemplatePointerError("Template pointer cannot target the schema root", {"pointer": pointer})
    container = schema
    for part in parts[:-1]:
        container = _child(container, part, pointer)
    # Make sure the target itself exists
    _child(container, parts[-1], pointer)
    return container, parts[-1]


def _option(options: Mapping[str, Any], name: str, pointer: str) -> Any:
    if name not in options:
        raise MissingOptionError(
            f"Missing option '{name}' for schema template",
            {"option": name, "pointer": pointer}
        )
    return options[name]


def resolve_schema(
    schema: Any,
    pointers: Optional[Mapping[str, Union[TemplatePointer, Mapping[str, Any]]]],
    options: Optional[Mapping[str, Any]],
) -> Any:
    """Apply ``options`` to a rendered schema, returning a new schema."""
    resolved = copy.deepcopy(schema)
    if not pointers:
        return resolved

    if options is None:
        raise MissingOptionError(
            "Schema template requires options but none were given",
            {"options": sorted(_entry(p).name for p in pointers.values())}
        )

    entries = [(pointer, _entry(entry)) for pointer, entry in pointers.items()]

    # Values first, so pointers under a templated key still match
    for pointer, entry in entries:
        if entry.iskey:
            continue
        container, last = _locate(resolved, parse_pointer(pointer), pointer)
        value = _option(options, entry.name, pointer)
        if isinstance(container, list):
            container[int(last)] = value
        else:
            container[last] = value

    # Deepest keys first, so outer relocations do not invalidate inner paths
    keys = [(parse_pointer(pointer), pointer, entry) for pointer, entry in entries if entry.iskey]
    for parts, pointer, entry in sorted(keys, key=lambda k: len(k[0]), reverse=True):
        container, last = _locate(resolved, parts, pointer)
        if not isinstance(container, dict):
            raise TemplatePointerError("Templated key must belong to an object", {"pointer": pointer})
        new_key = str(_option(options, entry.name, pointer))
        container[new_key] = container.pop(last)

    return resolved


def _entry(entry: Union[TemplatePointer, Mapping[str, Any]]) -> TemplatePointer:
    if isinstance(entry, TemplatePointer):
        return entry
    return TemplatePointer.model_validate(entry)
